"""Chat command front-end for manual and test sends."""

from __future__ import annotations

import logging

from .core.models import SendRequest
from .mail import MailService

LOGGER = logging.getLogger(__name__)

DEFAULT_PREFIX = "#email"


class EmailCommandHandler:
    """Translate chat text such as ``#email send a@b.com Hi body`` into sends."""

    def __init__(self, mail_service: MailService, prefix: str = DEFAULT_PREFIX) -> None:
        self._mail = mail_service
        self._prefix = prefix.strip() or DEFAULT_PREFIX

    @property
    def prefix(self) -> str:
        """Command prefix recognised by :meth:`handle`."""
        return self._prefix

    def handle(self, text: str) -> str | None:
        """Return the reply for ``text``, or ``None`` if it is not a command."""
        stripped = (text or "").strip()
        if not stripped.startswith(self._prefix):
            return None
        remainder = stripped[len(self._prefix) :]
        if remainder and not remainder[0].isspace():
            return None

        args = remainder.split()
        sub_command = args[0].lower() if args else ""
        LOGGER.debug("Handling email command %r", sub_command or "help")
        if sub_command == "send":
            return self._send(args[1:])
        if sub_command == "test":
            return self._test(args[1:])
        return self.help_text()

    def help_text(self) -> str:
        """Usage summary listing every sub-command."""
        prefix = self._prefix
        return "\n".join(
            [
                "[= Email commands =]",
                f"{prefix} send <to> <subject> <content> - send an email",
                f"{prefix} test [to] - send a test email (default: the account address)",
                f"{prefix} help - show this help",
                "",
                "Example:",
                f"{prefix} send user@example.com Hello This is a test message",
            ]
        )

    def _send(self, args: list[str]) -> str:
        if len(args) < 3:
            return "\n".join(
                [
                    "Not enough arguments. Usage:",
                    f"{self._prefix} send <to> <subject> <content>",
                    f"Example: {self._prefix} send user@example.com Hello This is a test message",
                ]
            )
        to, subject, *content = args
        if "@" not in to:
            return "Invalid recipient address, please check the email address"
        result = self._mail.send_mail(
            SendRequest(to=to, subject=subject, text=" ".join(content))
        )
        return result.message

    def _test(self, args: list[str]) -> str:
        to = args[0] if args else None
        if to is not None and "@" not in to:
            return "Invalid recipient address, please check the email address"
        result = self._mail.send_test(to)
        return result.message


__all__ = ["DEFAULT_PREFIX", "EmailCommandHandler"]
