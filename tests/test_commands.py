"""Tests for the chat command front-end."""

from __future__ import annotations

import pytest

from mail_scheduler.commands import EmailCommandHandler
from mail_scheduler.mail import MailDispatcher, MailService
from mail_scheduler.storage import HistoryLog


@pytest.fixture
def handler(dispatcher: MailDispatcher, history: HistoryLog) -> EmailCommandHandler:
    return EmailCommandHandler(MailService(dispatcher, history))


@pytest.mark.parametrize("text", ["hello", "", "#emailsend a@b.com x y", "  #other send"])
def test_non_commands_ignored(handler: EmailCommandHandler, text: str) -> None:
    assert handler.handle(text) is None


@pytest.mark.parametrize("text", ["#email", "#email help", "#email unknown"])
def test_help_is_default(handler: EmailCommandHandler, text: str) -> None:
    reply = handler.handle(text)
    assert reply is not None
    assert "#email send <to> <subject> <content>" in reply


def test_send_joins_content(
    handler: EmailCommandHandler, transport_factory, history: HistoryLog
) -> None:
    reply = handler.handle("#email send a@b.com Weekly  This is the   body")

    assert reply is not None and reply.startswith("Email sent successfully")
    message = transport_factory.outbox[0]
    assert message.to == ("a@b.com",)
    assert message.subject == "[Bot] Weekly"
    assert message.text == "This is the body"
    assert history.get_history().records[0].send_type == "manual"


def test_send_requires_three_arguments(handler: EmailCommandHandler, transport_factory) -> None:
    reply = handler.handle("#email send a@b.com Subject")
    assert reply is not None and reply.startswith("Not enough arguments")
    assert transport_factory.outbox == []


def test_send_rejects_bad_recipient(handler: EmailCommandHandler, transport_factory) -> None:
    reply = handler.handle("#email SEND nobody Subject body")
    assert reply is not None and "Invalid recipient" in reply
    assert transport_factory.outbox == []


def test_test_command(handler: EmailCommandHandler, transport_factory, history: HistoryLog) -> None:
    reply = handler.handle("#email test")
    assert reply is not None and reply.startswith("Email sent successfully")
    assert transport_factory.outbox[0].to == ("bot@example.com",)

    handler.handle("#email test ops@example.com")
    assert transport_factory.outbox[1].to == ("ops@example.com",)
    assert history.get_stats().test == 2


def test_custom_prefix(dispatcher: MailDispatcher, history: HistoryLog) -> None:
    handler = EmailCommandHandler(MailService(dispatcher, history), prefix="/mail")
    assert handler.handle("#email help") is None
    reply = handler.handle("/mail")
    assert reply is not None and "/mail send" in reply
