"""Manual and test sends with history recording."""

from __future__ import annotations

import logging

from ..core.interfaces import HistoryRecorder
from ..core.models import SendRequest, SendResult
from .dispatcher import MailDispatcher, split_recipients

LOGGER = logging.getLogger(__name__)


class MailService:
    """Operation surface for sends that bypass the task store.

    Every send attempt, successful or not, produces exactly one history
    record. Connection tests are not recorded.
    """

    def __init__(self, dispatcher: MailDispatcher, history: HistoryRecorder) -> None:
        self._dispatcher = dispatcher
        self._history = history

    @property
    def dispatcher(self) -> MailDispatcher:
        """Underlying dispatcher."""
        return self._dispatcher

    def send_mail(self, request: SendRequest, send_type: str = "manual") -> SendResult:
        """Send ``request`` and record the attempt as ``send_type``."""
        problem = _recipient_problem(request.to)
        if problem:
            result = SendResult(False, problem)
        else:
            result = self._dispatcher.send(request)
        self._record(request, send_type, result)
        return result

    def send_test(self, to: str | None = None, account_id: str | None = None) -> SendResult:
        """Send the diagnostic message to ``to`` or the account's own address.

        Args:
            to: Recipient; defaults to the resolved account's user
            account_id: Account to test; defaults to the default account

        Returns:
            Outcome of the send, also recorded as ``test`` history
        """
        recipient = to
        if not recipient:
            account = self._dispatcher.resolve_account(account_id)
            recipient = account.user if account else ""
        result = self._dispatcher.send_test_email(recipient, account_id)
        self._history.add_record(
            send_type="test",
            to=recipient,
            subject="SMTP configuration test",
            status="success" if result.success else "failed",
            account_id=account_id,
            error_message=None if result.success else result.message,
        )
        return result

    def test_connection(self, account_id: str | None = None) -> SendResult:
        """Verify the account without sending or recording anything."""
        return self._dispatcher.verify_connection(account_id)

    def _record(self, request: SendRequest, send_type: str, result: SendResult) -> None:
        self._history.add_record(
            send_type=send_type,
            to=request.to,
            subject=request.subject,
            status="success" if result.success else "failed",
            account_id=request.account_id,
            text=request.text,
            html=request.html,
            error_message=None if result.success else result.message,
            attachments=request.attachments,
        )
        if not result.success:
            LOGGER.warning("%s email to %s failed: %s", send_type, request.to, result.message)


def _recipient_problem(to: str) -> str | None:
    recipients = split_recipients(to or "")
    if not recipients:
        return "Recipient address must not be empty"
    invalid = [item for item in recipients if "@" not in item]
    if invalid:
        return f"Invalid recipient address: {', '.join(invalid)}"
    return None


__all__ = ["MailService"]
