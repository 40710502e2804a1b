"""Transport adapters for outbound mail servers."""

from .smtp_client import (
    MailTransport,
    OutgoingEmail,
    ResolvedAttachment,
    SmtpClient,
    SmtpError,
    format_sender,
)

__all__ = [
    "MailTransport",
    "OutgoingEmail",
    "ResolvedAttachment",
    "SmtpClient",
    "SmtpError",
    "format_sender",
]
