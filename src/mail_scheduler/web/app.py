"""FastAPI application exposing accounts, sends, scheduled emails and history."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status as http_status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mail_scheduler.context import AppContext
from mail_scheduler.core import AppSettings, load_app_settings
from mail_scheduler.core.models import (
    Attachment,
    HistoryStats,
    SendRequest,
    SendResult,
    TaskParams,
)
from mail_scheduler.mail import AttachmentError, store_upload
from mail_scheduler.scheduling import TaskValidationError
from mail_scheduler.storage import AccountParams
from mail_scheduler.storage.serialization import (
    account_to_dict,
    record_to_dict,
    task_to_dict,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AttachmentPayload(_CamelModel):
    """Attachment supplied inline (base64) or by server-side path."""

    filename: str
    content: str | None = None
    path: str | None = None
    content_type: str | None = None

    def to_attachment(self) -> Attachment:
        return Attachment(
            filename=self.filename,
            content=self.content,
            path=self.path,
            content_type=self.content_type,
        )


class SendPayload(_CamelModel):
    """Body of ``POST /email/send``."""

    to: str
    subject: str
    text: str | None = None
    html: str | None = None
    attachments: list[AttachmentPayload] = Field(default_factory=list)
    account_id: str | None = None


class UploadPayload(_CamelModel):
    """Body of ``POST /email/upload``; ``content`` is base64."""

    filename: str
    content: str


class TestEmailPayload(_CamelModel):
    """Body of ``POST /email/test``."""

    to: str | None = None
    account_id: str | None = None


class CommandPayload(_CamelModel):
    """Body of ``POST /commands``."""

    text: str


class ConnectionPayload(_CamelModel):
    """Body of ``POST /email/test-connection``."""

    account_id: str | None = None


class AccountPayload(_CamelModel):
    """Body of ``POST /accounts``."""

    name: str
    host: str
    port: int = 465
    user: str
    password: str = Field(alias="pass")
    sender_name: str = ""
    subject_prefix: str = ""
    secure: bool = True
    is_default: bool | None = None


class AccountUpdatePayload(_CamelModel):
    """Body of ``PUT /accounts/{id}``; omitted fields are left unchanged."""

    name: str | None = None
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = Field(default=None, alias="pass")
    sender_name: str | None = None
    subject_prefix: str | None = None
    secure: bool | None = None
    is_default: bool | None = None


class TaskPayload(_CamelModel):
    """Body of ``POST /scheduled-emails``."""

    name: str
    to: str
    subject: str
    schedule_type: str
    scheduled_at: str
    account_id: str | None = None
    text: str | None = None
    html: str | None = None
    attachments: list[AttachmentPayload] = Field(default_factory=list)
    interval_minutes: int | None = None
    weekday: int | None = None
    day_of_month: int | None = None
    max_send_count: int | None = None


class TaskUpdatePayload(_CamelModel):
    """Body of ``PUT /scheduled-emails/{id}``; only supplied fields change."""

    name: str | None = None
    to: str | None = None
    subject: str | None = None
    schedule_type: str | None = None
    scheduled_at: str | None = None
    account_id: str | None = None
    text: str | None = None
    html: str | None = None
    attachments: list[AttachmentPayload] | None = None
    interval_minutes: int | None = None
    weekday: int | None = None
    day_of_month: int | None = None
    max_send_count: int | None = None
    status: str | None = None


def create_app(
    settings: AppSettings | None = None, *, context: AppContext | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings used to build a context when none is given
        context: Pre-built context, mainly for tests

    Returns:
        Application whose lifespan starts and stops the context
    """
    app_context = context or AppContext.from_settings(settings or load_app_settings())

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        app_context.start()
        try:
            yield
        finally:
            await asyncio.to_thread(app_context.shutdown)

    app = FastAPI(title="Mail Scheduler", lifespan=lifespan)
    app.state.context = app_context

    @app.exception_handler(TaskValidationError)
    async def task_validation_handler(_: Request, exc: TaskValidationError) -> JSONResponse:
        return _error(str(exc), http_status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        _: Request, exc: RequestValidationError
    ) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return _error(
            f"{location}: {message}" if location else message,
            http_status.HTTP_400_BAD_REQUEST,
        )

    # Status ------------------------------------------------------------------
    @app.get("/status")
    async def get_status() -> dict[str, Any]:
        """Report uptime, scheduler state and today's send counts."""
        return _ok(
            {
                "uptime": round(app_context.uptime_seconds, 3),
                "schedulerRunning": app_context.scheduler.running,
                "accountCount": len(app_context.accounts.list_accounts()),
                "todayStats": _serialize_stats(app_context.history.get_today_stats()),
            }
        )

    # Accounts ----------------------------------------------------------------
    @app.get("/accounts")
    async def list_accounts() -> dict[str, Any]:
        default = app_context.accounts.get_default_account()
        return _ok(
            {
                "accounts": [
                    account_to_dict(account, include_secret=False)
                    for account in app_context.accounts.list_accounts()
                ],
                "defaultAccountId": default.id if default else None,
            }
        )

    @app.post("/accounts")
    async def create_account(payload: AccountPayload) -> dict[str, Any]:
        account = app_context.accounts.create_account(
            AccountParams(**payload.model_dump(by_alias=False))
        )
        return _ok(account_to_dict(account, include_secret=False), "Account created")

    @app.put("/accounts/{account_id}", response_model=None)
    async def update_account(
        account_id: str, payload: AccountUpdatePayload
    ) -> dict[str, Any] | JSONResponse:
        changes = payload.model_dump(by_alias=False, exclude_unset=True)
        account = app_context.accounts.update_account(account_id, **changes)
        if account is None:
            return _not_found(f"Mail account not found: {account_id}")
        return _ok(account_to_dict(account, include_secret=False), "Account updated")

    @app.delete("/accounts/{account_id}", response_model=None)
    async def delete_account(account_id: str) -> dict[str, Any] | JSONResponse:
        if not app_context.accounts.delete_account(account_id):
            return _not_found(f"Mail account not found: {account_id}")
        return _ok(message="Account deleted")

    @app.post("/accounts/{account_id}/default", response_model=None)
    async def set_default_account(account_id: str) -> dict[str, Any] | JSONResponse:
        if not app_context.accounts.set_default_account(account_id):
            return _not_found(f"Mail account not found: {account_id}")
        return _ok(message="Default account updated")

    @app.post("/accounts/{account_id}/test", response_model=None)
    async def test_account(account_id: str) -> dict[str, Any] | JSONResponse:
        if app_context.accounts.get_account(account_id) is None:
            return _not_found(f"Mail account not found: {account_id}")
        result = await asyncio.to_thread(app_context.mail.test_connection, account_id)
        return _result(result)

    # Sending -----------------------------------------------------------------
    @app.post("/email/send", response_model=None)
    async def send_email(payload: SendPayload) -> dict[str, Any] | JSONResponse:
        request = SendRequest(
            to=payload.to,
            subject=payload.subject,
            text=payload.text,
            html=payload.html,
            attachments=[item.to_attachment() for item in payload.attachments],
            account_id=payload.account_id,
        )
        if not request.text and not request.html:
            return _error("Email content must not be empty", http_status.HTTP_400_BAD_REQUEST)
        result = await asyncio.to_thread(app_context.mail.send_mail, request)
        return _result(result)

    @app.post("/email/test", response_model=None)
    async def send_test_email(payload: TestEmailPayload) -> dict[str, Any] | JSONResponse:
        result = await asyncio.to_thread(
            app_context.mail.send_test, payload.to, payload.account_id
        )
        return _result(result)

    @app.post("/email/test-connection", response_model=None)
    async def test_connection(
        payload: ConnectionPayload | None = None,
    ) -> dict[str, Any] | JSONResponse:
        account_id = payload.account_id if payload else None
        result = await asyncio.to_thread(app_context.mail.test_connection, account_id)
        return _result(result)

    @app.post("/email/upload", response_model=None)
    async def upload_attachment(payload: UploadPayload) -> dict[str, Any] | JSONResponse:
        """Store an attachment for later sends that reference it by ``path``."""
        if not payload.filename.strip() or not payload.content.strip():
            return _error(
                "Missing required fields: filename, content", http_status.HTTP_400_BAD_REQUEST
            )
        try:
            stored = await asyncio.to_thread(
                store_upload,
                Path(app_context.settings.storage.data_dir),
                payload.filename,
                payload.content,
            )
        except AttachmentError as exc:
            return _error(str(exc), http_status.HTTP_400_BAD_REQUEST)
        return _ok(
            {
                "path": str(stored),
                "filename": payload.filename,
                "size": stored.stat().st_size,
            }
        )

    # Chat commands ---------------------------------------------------------
    @app.post("/commands")
    async def handle_command(payload: CommandPayload) -> dict[str, Any]:
        """Run a chat command; ``reply`` is null when the text is not one."""
        reply = await asyncio.to_thread(app_context.commands.handle, payload.text)
        return _ok({"reply": reply})

    # Scheduled emails --------------------------------------------------------
    @app.get("/scheduled-emails")
    async def list_scheduled_emails() -> dict[str, Any]:
        tasks = app_context.manager.list_tasks()
        return _ok([task_to_dict(task, include_content=False) for task in tasks])

    @app.post("/scheduled-emails")
    async def create_scheduled_email(payload: TaskPayload) -> dict[str, Any]:
        fields = payload.model_dump(by_alias=False, exclude={"attachments"})
        params = TaskParams(
            **fields,
            attachments=[item.to_attachment() for item in payload.attachments],
        )
        task = app_context.manager.create(params)
        return _ok(task_to_dict(task, include_content=False), "Scheduled email created")

    @app.get("/scheduled-emails/{task_id}", response_model=None)
    async def get_scheduled_email(task_id: str) -> dict[str, Any] | JSONResponse:
        task = app_context.manager.get_task(task_id)
        if task is None:
            return _not_found(f"Scheduled email not found: {task_id}")
        return _ok(task_to_dict(task, include_content=False))

    @app.put("/scheduled-emails/{task_id}", response_model=None)
    async def update_scheduled_email(
        task_id: str, payload: TaskUpdatePayload
    ) -> dict[str, Any] | JSONResponse:
        changes = payload.model_dump(
            by_alias=False, exclude_unset=True, exclude={"attachments"}
        )
        if "attachments" in payload.model_fields_set:
            changes["attachments"] = [
                item.to_attachment() for item in payload.attachments or ()
            ]
        task = app_context.manager.update(task_id, **changes)
        if task is None:
            return _not_found(f"Scheduled email not found: {task_id}")
        return _ok(task_to_dict(task, include_content=False), "Scheduled email updated")

    @app.delete("/scheduled-emails/{task_id}", response_model=None)
    async def delete_scheduled_email(task_id: str) -> dict[str, Any] | JSONResponse:
        if not app_context.manager.delete(task_id):
            return _not_found(f"Scheduled email not found: {task_id}")
        return _ok(message="Scheduled email deleted")

    @app.post("/scheduled-emails/{task_id}/execute", response_model=None)
    async def execute_scheduled_email(task_id: str) -> dict[str, Any] | JSONResponse:
        if app_context.manager.get_task(task_id) is None:
            return _not_found(f"Scheduled email not found: {task_id}")
        result = await asyncio.to_thread(app_context.manager.execute_now, task_id)
        return _result(result)

    @app.post("/scheduled-emails/{task_id}/cancel", response_model=None)
    async def cancel_scheduled_email(task_id: str) -> dict[str, Any] | JSONResponse:
        if not app_context.manager.cancel(task_id):
            return _not_found(f"Scheduled email not found: {task_id}")
        return _ok(message="Scheduled email cancelled")

    # History -----------------------------------------------------------------
    @app.get("/history")
    async def get_history(
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        send_type: str | None = None,
        status: str | None = None,
    ) -> dict[str, Any]:
        result = app_context.history.get_history(
            page=page,
            page_size=min(page_size, MAX_PAGE_SIZE),
            send_type=send_type or None,
            status=status or None,
        )
        return _ok(
            {
                "list": [record_to_dict(record) for record in result.records],
                "total": result.total,
                "page": result.page,
                "pageSize": result.page_size,
            }
        )

    @app.get("/history/stats")
    async def get_history_stats() -> dict[str, Any]:
        return _ok(_serialize_stats(app_context.history.get_stats()))

    @app.get("/history/today")
    async def get_today_stats() -> dict[str, Any]:
        return _ok(_serialize_stats(app_context.history.get_today_stats()))

    @app.delete("/history/{record_id}", response_model=None)
    async def delete_history_record(record_id: str) -> dict[str, Any] | JSONResponse:
        if not app_context.history.delete_record(record_id):
            return _not_found(f"History record not found: {record_id}")
        return _ok(message="History record deleted")

    @app.delete("/history")
    async def clear_history() -> dict[str, Any]:
        app_context.history.clear_history()
        return _ok(message="History cleared")

    return app


def _ok(data: Any = None, message: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"code": 0}
    if message is not None:
        payload["message"] = message
    if data is not None:
        payload["data"] = data
    return payload


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"code": -1, "message": message})


def _not_found(message: str) -> JSONResponse:
    return _error(message, http_status.HTTP_404_NOT_FOUND)


def _result(result: SendResult) -> dict[str, Any] | JSONResponse:
    if result.success:
        return _ok(message=result.message)
    return _error(result.message, http_status.HTTP_500_INTERNAL_SERVER_ERROR)


def _serialize_stats(stats: HistoryStats) -> dict[str, int]:
    return {
        "total": stats.total,
        "success": stats.success,
        "failed": stats.failed,
        "scheduled": stats.scheduled,
        "manual": stats.manual,
        "test": stats.test,
    }


__all__ = ["create_app"]
