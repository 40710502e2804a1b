"""Shared fixtures: fake SMTP transport, controllable clock, seeded stores."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from mail_scheduler.core.models import MailAccount
from mail_scheduler.mail import MailDispatcher
from mail_scheduler.storage import AccountParams, HistoryLog, JsonAccountStore
from mail_scheduler.transport import OutgoingEmail, SmtpError


class FakeTransport:
    """In-memory transport recording every message it is asked to send."""

    def __init__(
        self,
        outbox: list[OutgoingEmail],
        *,
        verify_error: str | None = None,
        send_error: str | None = None,
    ) -> None:
        self.outbox = outbox
        self.verify_error = verify_error
        self.send_error = send_error
        self.closed = False

    def verify(self) -> None:
        if self.verify_error:
            raise SmtpError(self.verify_error)

    def send(self, message: OutgoingEmail) -> str:
        if self.send_error:
            raise SmtpError(self.send_error)
        self.outbox.append(message)
        return f"<msg-{len(self.outbox)}@example.com>"

    def close(self) -> None:
        self.closed = True


class FakeTransportFactory:
    """Transport factory whose failure mode can be flipped between calls."""

    def __init__(self) -> None:
        self.outbox: list[OutgoingEmail] = []
        self.verify_error: str | None = None
        self.send_error: str | None = None
        self.accounts: list[MailAccount] = []
        self.transports: list[FakeTransport] = []

    def __call__(self, account: MailAccount, timeout: float) -> FakeTransport:
        self.accounts.append(account)
        transport = FakeTransport(
            self.outbox, verify_error=self.verify_error, send_error=self.send_error
        )
        self.transports.append(transport)
        return transport


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 3, 10, 9, 0, tzinfo=UTC))


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def account_store(tmp_path: Path, clock: FrozenClock) -> JsonAccountStore:
    store = JsonAccountStore(tmp_path / "accounts.json", clock=clock)
    store.create_account(
        AccountParams(
            name="Primary",
            host="smtp.example.com",
            port=465,
            user="bot@example.com",
            password="secret",
            sender_name="Notifier",
            subject_prefix="[Bot]",
        )
    )
    return store


@pytest.fixture
def dispatcher(
    account_store: JsonAccountStore,
    transport_factory: FakeTransportFactory,
    clock: FrozenClock,
    tmp_path: Path,
) -> MailDispatcher:
    return MailDispatcher(
        account_store,
        transport_factory=transport_factory,
        attachment_dir=tmp_path,
        clock=clock,
    )


@pytest.fixture
def history(tmp_path: Path, clock: FrozenClock) -> HistoryLog:
    log = HistoryLog(tmp_path / "email_history.json", clock=clock)
    log.init()
    return log
