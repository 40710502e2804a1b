"""Compose and deliver messages through a resolved SMTP account."""

from __future__ import annotations

import html as html_lib
import logging
import re
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from ..core.datetime_utils import utc_now
from ..core.interfaces import AccountNotFoundError, AccountProvider, MailSender
from ..core.models import MailAccount, SendRequest, SendResult
from ..transport import (
    MailTransport,
    OutgoingEmail,
    SmtpClient,
    SmtpError,
    format_sender,
)
from .attachments import AttachmentError, resolve_attachment

LOGGER = logging.getLogger(__name__)

TEXT_FALLBACK_LIMIT = 500

TransportFactory = Callable[[MailAccount, float], MailTransport]

_TAG_PATTERN = re.compile(r"<[^>]+>")
_BLOCK_PATTERN = re.compile(r"(?is)<(script|style)\b.*?</\1>")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def default_transport_factory(account: MailAccount, timeout: float) -> MailTransport:
    """Build an SMTP client for ``account``."""
    return SmtpClient(account, timeout=timeout)


def validate_account(account: MailAccount) -> str | None:
    """Return a field-level problem with ``account`` or ``None`` if usable."""
    if not account.host:
        return "SMTP host must not be empty"
    if not 1 <= account.port <= 65535:
        return f"SMTP port is invalid: {account.port}"
    if not account.user:
        return "SMTP username must not be empty"
    if not account.password:
        return "SMTP password must not be empty"
    return None


def split_recipients(to: str) -> list[str]:
    """Split a comma-separated recipient list, dropping blanks."""
    return [item.strip() for item in to.split(",") if item.strip()]


def html_to_text(markup: str, *, limit: int = TEXT_FALLBACK_LIMIT) -> str:
    """Strip markup from ``markup`` and truncate to ``limit`` characters."""
    stripped = _BLOCK_PATTERN.sub(" ", markup)
    stripped = _TAG_PATTERN.sub(" ", stripped)
    text = _WHITESPACE_PATTERN.sub(" ", html_lib.unescape(stripped)).strip()
    return text[:limit]


def apply_subject_prefix(prefix: str, subject: str) -> str:
    """Join the account's subject prefix and ``subject``."""
    prefix = prefix.strip()
    return f"{prefix} {subject}" if prefix else subject


class MailDispatcher(MailSender):
    """Resolve an account, verify the connection, and send a message.

    Every public method returns a :class:`SendResult`; failures never raise.
    History is left to callers.
    """

    def __init__(
        self,
        accounts: AccountProvider,
        *,
        transport_factory: TransportFactory = default_transport_factory,
        timeout_seconds: float = 30,
        attachment_dir: Path | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Store collaborators used for each send."""
        self._accounts = accounts
        self._transport_factory = transport_factory
        self._timeout = timeout_seconds
        self._attachment_dir = attachment_dir
        self._clock = clock

    def resolve_account(self, account_id: str | None) -> MailAccount | None:
        """Return the named account, or the default one, or ``None``."""
        try:
            return self._accounts.resolve(account_id)
        except AccountNotFoundError:
            return None

    def send(self, request: SendRequest) -> SendResult:
        """Send ``request`` and describe the outcome."""
        try:
            account = self._accounts.resolve(request.account_id)
        except AccountNotFoundError as exc:
            return SendResult(False, str(exc))
        problem = validate_account(account)
        if problem:
            return SendResult(False, problem)

        recipients = split_recipients(request.to)
        if not recipients:
            return SendResult(False, "Recipient address must not be empty")

        try:
            attachments = tuple(
                resolve_attachment(item, base_dir=self._attachment_dir)
                for item in request.attachments
            )
        except AttachmentError as exc:
            LOGGER.warning("Attachment preparation failed: %s", exc)
            return SendResult(False, f"Failed to send email: {exc}")

        text = request.text
        if not text and request.html:
            text = html_to_text(request.html)
        message = OutgoingEmail(
            sender=format_sender(account),
            to=tuple(recipients),
            subject=apply_subject_prefix(account.subject_prefix, request.subject),
            text=text or "",
            html=request.html or None,
            attachments=attachments,
        )

        transport = self._transport_factory(account, self._timeout)
        try:
            try:
                transport.verify()
            except SmtpError as exc:
                LOGGER.error("SMTP verification failed for account %s: %s", account.id, exc)
                return SendResult(False, f"SMTP verification failed: {exc}")
            message_id = transport.send(message)
        except SmtpError as exc:
            LOGGER.error("Email send failed via account %s: %s", account.id, exc)
            return SendResult(False, f"Failed to send email: {exc}")
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Unexpected error sending email via account %s", account.id)
            return SendResult(False, f"Failed to send email: {exc}")
        finally:
            _close_quietly(transport)

        LOGGER.info("Email sent via account %s: %s", account.id, message_id)
        return SendResult(True, f"Email sent successfully: {message_id}")

    def verify_connection(self, account_id: str | None = None) -> SendResult:
        """Check that the account can connect and authenticate."""
        try:
            account = self._accounts.resolve(account_id)
        except AccountNotFoundError as exc:
            return SendResult(False, str(exc))
        problem = validate_account(account)
        if problem:
            return SendResult(False, problem)

        transport = self._transport_factory(account, self._timeout)
        try:
            transport.verify()
        except SmtpError as exc:
            LOGGER.error("SMTP connection test failed for account %s: %s", account.id, exc)
            return SendResult(False, f"SMTP connection test failed: {exc}")
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Unexpected error testing account %s", account.id)
            return SendResult(False, f"SMTP connection test failed: {exc}")
        finally:
            _close_quietly(transport)
        return SendResult(True, "SMTP connection test succeeded")

    def send_test_email(self, to: str, account_id: str | None = None) -> SendResult:
        """Send a fixed diagnostic message to ``to``."""
        if not to or "@" not in to:
            return SendResult(False, "Invalid recipient address")
        account = self.resolve_account(account_id)
        sender_name = (account.sender_name or account.user) if account else ""
        stamp = self._clock().astimezone().strftime("%Y-%m-%d %H:%M:%S")
        request = SendRequest(
            to=to,
            subject="SMTP configuration test",
            text=(
                "This is a test message confirming the SMTP configuration works.\n\n"
                f"Sent at: {stamp}"
            ),
            html=(
                '<div style="font-family: Arial, sans-serif; padding: 20px;">'
                '<h2 style="color: #4CAF50;">SMTP configuration test</h2>'
                "<p>This is a test message confirming the SMTP configuration works.</p>"
                '<hr style="border: none; border-top: 1px solid #ddd; margin: 20px 0;">'
                f'<p style="color: #666; font-size: 12px;">Sent at: {stamp}<br>'
                f"Sender: {html_lib.escape(sender_name)}</p></div>"
            ),
            account_id=account_id,
        )
        return self.send(request)


def _close_quietly(transport: MailTransport) -> None:
    try:
        transport.close()
    except Exception:  # pylint: disable=broad-except
        LOGGER.debug("Ignoring error while closing transport", exc_info=True)


__all__ = [
    "MailDispatcher",
    "TEXT_FALLBACK_LIMIT",
    "TransportFactory",
    "apply_subject_prefix",
    "default_transport_factory",
    "html_to_text",
    "split_recipients",
    "validate_account",
]
