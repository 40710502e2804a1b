"""smtplib-backed transport that verifies accounts and delivers MIME mail."""

from __future__ import annotations

import logging
import smtplib
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from typing import Protocol

from ..core.models import MailAccount

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30

# Ordered most specific first.
_FAILURE_LABELS: tuple[tuple[type[BaseException], str], ...] = (
    (smtplib.SMTPAuthenticationError, "SMTP authentication failed"),
    (smtplib.SMTPConnectError, "SMTP server refused the connection"),
    (smtplib.SMTPRecipientsRefused, "All recipients refused"),
    (smtplib.SMTPSenderRefused, "Sender refused"),
    (smtplib.SMTPDataError, "SMTP server rejected the message data"),
    (smtplib.SMTPException, "SMTP protocol error"),
    (OSError, "Network error"),
)


@dataclass(frozen=True, slots=True)
class ResolvedAttachment:
    """Attachment with its payload loaded into memory."""

    filename: str
    content: bytes
    content_type: str


@dataclass(frozen=True, slots=True)
class OutgoingEmail:
    """Fully composed outgoing message.

    Attributes:
        sender: Value for the From header
        to: Recipient addresses
        subject: Final subject line, prefix already applied
        text: Plain text body
        html: Optional HTML alternative
        attachments: Attachments with loaded payloads
    """

    sender: str
    to: tuple[str, ...]
    subject: str
    text: str | None = None
    html: str | None = None
    attachments: tuple[ResolvedAttachment, ...] = ()


class SmtpError(Exception):
    """Any failure talking to the mail server, with a readable reason."""


class MailTransport(Protocol):
    """Connection to a mail server able to verify and deliver messages."""

    def verify(self) -> None:
        """Check connectivity and credentials. Raises :class:`SmtpError`."""
        raise NotImplementedError

    def send(self, message: OutgoingEmail) -> str:
        """Deliver ``message`` and return its Message-ID."""
        raise NotImplementedError

    def close(self) -> None:
        """Release the connection."""
        raise NotImplementedError


class SmtpClient(MailTransport):
    """One SMTP session for one account.

    Secure accounts connect with implicit TLS. Others connect in plain text
    and upgrade with STARTTLS when the server advertises it. Usable as a
    context manager.
    """

    def __init__(
        self, account: MailAccount, *, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> None:
        self._account = account
        self._timeout = timeout
        self._connection: smtplib.SMTP | None = None

    def __enter__(self) -> SmtpClient:
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def connect(self) -> None:
        """Open the session and log in when credentials are present.

        Raises:
            SmtpError: On network, TLS or authentication failure
        """
        account = self._account
        if not account.host:
            raise SmtpError("SMTP host not configured")

        LOGGER.info(
            "Connecting to %s:%d (%s)",
            account.host,
            account.port,
            "ssl" if account.secure else "starttls",
        )
        try:
            with _smtp_errors("connect"):
                self._connection = self._open()
                if account.user and account.password:
                    self._connection.login(account.user, account.password)
                    LOGGER.debug("Logged in as %s", account.user)
        except SmtpError:
            self._discard_connection()
            raise

    def verify(self) -> None:
        """Connect if needed and check that the server answers NOOP with 250.

        Raises:
            SmtpError: If the session cannot be opened or NOOP is rejected
        """
        if self._connection is None:
            self.connect()
        with _smtp_errors("verify"):
            code, response = self._require_connection().noop()
        if code != 250:
            detail = response.decode("utf-8", "replace") if response else ""
            raise SmtpError(f"SMTP verification failed: {code} {detail}".strip())

    def send(self, message: OutgoingEmail) -> str:
        """Deliver ``message`` over the open session.

        Returns:
            The Message-ID header of the delivered message

        Raises:
            SmtpError: If not connected or the server rejects the message
        """
        connection = self._require_connection()
        mime_message = self._build_mime_message(message)
        recipients = list(message.to)
        with _smtp_errors("send"):
            refused = connection.send_message(
                mime_message, from_addr=self._account.user, to_addrs=recipients
            )
        if refused:
            LOGGER.warning("Server refused %d recipient(s): %s", len(refused), refused)
            raise SmtpError(f"Some recipients were refused: {', '.join(sorted(refused))}")

        message_id = mime_message["Message-ID"]
        LOGGER.info("Delivered %s to %d recipient(s)", message_id, len(recipients))
        return message_id

    def close(self) -> None:
        """QUIT the session; errors while quitting are only logged."""
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            connection.quit()
        except (smtplib.SMTPException, OSError) as exc:
            LOGGER.warning("SMTP QUIT failed: %s", exc)

    def _open(self) -> smtplib.SMTP:
        account = self._account
        if account.secure:
            return smtplib.SMTP_SSL(account.host, account.port, timeout=self._timeout)
        connection = smtplib.SMTP(account.host, account.port, timeout=self._timeout)
        try:
            connection.ehlo()
            if connection.has_extn("starttls"):
                connection.starttls()
                connection.ehlo()
        except (smtplib.SMTPException, OSError):
            _close_quietly(connection)
            raise
        return connection

    def _require_connection(self) -> smtplib.SMTP:
        if self._connection is None:
            raise SmtpError("Not connected to SMTP server")
        return self._connection

    def _discard_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            _close_quietly(connection)

    def _build_mime_message(self, message: OutgoingEmail) -> MIMEMultipart:
        """Compose ``multipart/alternative`` text and HTML parts.

        The alternative part is wrapped in ``multipart/mixed`` when there
        are attachments.
        """
        body = MIMEMultipart("alternative")
        for content, subtype in ((message.text, "plain"), (message.html, "html")):
            if content is not None:
                body.attach(MIMEText(content, subtype, "utf-8"))

        envelope = body
        if message.attachments:
            envelope = MIMEMultipart("mixed")
            envelope.attach(body)
            for attachment in message.attachments:
                envelope.attach(_build_attachment_part(attachment))

        envelope["From"] = message.sender
        envelope["To"] = ", ".join(message.to)
        envelope["Subject"] = message.subject
        envelope["Date"] = formatdate(localtime=True)
        envelope["Message-ID"] = make_msgid(
            domain=self._account.user.rpartition("@")[2] or None
        )
        return envelope


@contextmanager
def _smtp_errors(stage: str) -> Iterator[None]:
    """Re-raise smtplib and socket errors as :class:`SmtpError`."""
    try:
        yield
    except (smtplib.SMTPException, OSError) as exc:
        label = next(text for kind, text in _FAILURE_LABELS if isinstance(exc, kind))
        LOGGER.error("SMTP %s step failed. %s: %s", stage, label, exc)
        raise SmtpError(f"{label}: {exc}") from exc


def _close_quietly(connection: smtplib.SMTP) -> None:
    try:
        connection.close()
    except OSError:
        LOGGER.debug("Ignoring error while discarding SMTP connection")


def _build_attachment_part(attachment: ResolvedAttachment) -> MIMEBase:
    maintype, _, subtype = attachment.content_type.partition("/")
    part = MIMEBase(maintype or "application", subtype or "octet-stream")
    part.set_payload(attachment.content)
    encoders.encode_base64(part)
    part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
    return part


def format_sender(account: MailAccount) -> str:
    """Return the From header value for ``account``."""
    if account.sender_name:
        return formataddr((account.sender_name, account.user))
    return account.user


__all__ = [
    "MailTransport",
    "OutgoingEmail",
    "ResolvedAttachment",
    "SmtpClient",
    "SmtpError",
    "format_sender",
]
