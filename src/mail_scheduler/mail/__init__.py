"""Message composition, attachment loading and delivery."""

from .attachments import AttachmentError, guess_content_type, resolve_attachment, store_upload
from .dispatcher import MailDispatcher, TransportFactory, html_to_text, validate_account
from .service import MailService

__all__ = [
    "AttachmentError",
    "MailDispatcher",
    "MailService",
    "TransportFactory",
    "guess_content_type",
    "html_to_text",
    "resolve_attachment",
    "store_upload",
    "validate_account",
]
