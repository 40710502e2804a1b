"""Command-line entry point for the mail scheduler."""

from __future__ import annotations

import argparse
import time
from pathlib import Path

from mail_scheduler.context import AppContext
from mail_scheduler.core import AppSettings, configure_logging, load_app_settings
from mail_scheduler.core.datetime_utils import display_datetime
from mail_scheduler.core.models import SEND_STATUSES, SEND_TYPES, SendRequest

COMMANDS = ["info", "run", "serve", "tasks", "history", "stats", "send", "test-connection"]


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Scheduled email notifications")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=COMMANDS,
        help="Operation to execute.",
    )
    parser.add_argument(
        "--host", default="127.0.0.1", help="Bind address for the serve command."
    )
    parser.add_argument(
        "--port", type=int, default=8000, help="Bind port for the serve command."
    )
    parser.add_argument(
        "--page", type=int, default=1, help="History page to show (default: 1)."
    )
    parser.add_argument(
        "--page-size",
        dest="page_size",
        type=int,
        default=20,
        help="Records per history page (default: 20).",
    )
    parser.add_argument(
        "--send-type",
        dest="send_type",
        choices=SEND_TYPES,
        default=None,
        help="Filter history by send type.",
    )
    parser.add_argument(
        "--status",
        choices=SEND_STATUSES,
        default=None,
        help="Filter history by outcome.",
    )
    parser.add_argument("--to", default=None, help="Recipient(s) for the send command.")
    parser.add_argument("--subject", default=None, help="Subject for the send command.")
    parser.add_argument("--text", default=None, help="Plain text body for the send command.")
    parser.add_argument("--html", default=None, help="HTML body for the send command.")
    parser.add_argument(
        "--account",
        dest="account_id",
        default=None,
        help="Mail account id; defaults to the default account.",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return the exit status."""
    command = args.command
    if command == "info":
        _print_info(settings)
        return 0
    if command == "serve":
        return _serve(settings, host=args.host, port=args.port)

    context = AppContext.from_settings(settings)
    if command == "run":
        return _run_forever(context)

    context.history.init()
    if command == "tasks":
        _print_tasks(context)
    elif command == "history":
        _print_history(
            context,
            page=args.page,
            page_size=args.page_size,
            send_type=args.send_type,
            status=args.status,
        )
    elif command == "stats":
        _print_stats(context)
    elif command == "send":
        return _send(context, args)
    elif command == "test-connection":
        result = context.mail.test_connection(args.account_id)
        print(result.message)
        return 0 if result.success else 1
    return 0


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    raise SystemExit(execute(args, settings))


def _print_info(settings: AppSettings) -> None:
    print("Mail scheduler is ready. Configure an SMTP account to get started.")
    print(f"Data directory: {settings.storage.data_dir}")
    print(f"Legacy SMTP host: {settings.smtp.host or '-'}")
    state = "enabled" if settings.scheduler.enabled else "disabled"
    print(f"Scheduler: {state}, every {settings.scheduler.interval_seconds:g}s")


def _run_forever(context: AppContext) -> int:
    """Start the scheduler and block until interrupted."""
    with context:
        print("Mail scheduler running. Press Ctrl+C to stop.")
        try:
            while True:
                time.sleep(1.0)
        except KeyboardInterrupt:
            print("Stopping...")
    return 0


def _serve(settings: AppSettings, *, host: str, port: int) -> int:
    """Run the HTTP API with uvicorn."""
    import uvicorn  # pylint: disable=import-outside-toplevel

    from mail_scheduler.web import create_app  # pylint: disable=import-outside-toplevel

    uvicorn.run(create_app(settings), host=host, port=port)
    return 0


def _print_tasks(context: AppContext) -> None:
    tasks = context.manager.list_tasks()
    if not tasks:
        print("No scheduled emails found.")
        return

    print(f"Showing {len(tasks)} scheduled email(s):")
    header = f"{'ID':<22}  {'Type':<8}  {'Status':<9}  {'Next run':<22}  {'Sent':>4}  Name"
    print(header)
    print("-" * len(header))
    for task in tasks:
        next_text = display_datetime(task.scheduled_at) or "-"
        print(
            f"{task.id:<22}  {task.schedule_type:<8}  {task.status:<9}  "
            f"{next_text:<22}  {task.send_count:>4}  {task.name}"
        )


def _print_history(
    context: AppContext,
    *,
    page: int,
    page_size: int,
    send_type: str | None,
    status: str | None,
) -> None:
    result = context.history.get_history(
        page=page, page_size=page_size, send_type=send_type, status=status
    )
    if not result.records:
        print("No history records found.")
        return

    print(f"Page {result.page} ({len(result.records)} of {result.total} record(s)):")
    header = f"{'Sent at':<22}  {'Type':<9}  {'Status':<7}  {'To':<30}  Subject"
    print(header)
    print("-" * len(header))
    for record in result.records:
        sent_text = display_datetime(record.sent_at) or "-"
        print(
            f"{sent_text:<22}  {record.send_type:<9}  {record.status:<7}  "
            f"{record.to:<30}  {record.subject}"
        )


def _print_stats(context: AppContext) -> None:
    for label, stats in (
        ("All time", context.history.get_stats()),
        ("Today", context.history.get_today_stats()),
    ):
        print(
            f"{label}: total={stats.total} success={stats.success} "
            f"failed={stats.failed} scheduled={stats.scheduled} "
            f"manual={stats.manual} test={stats.test}"
        )


def _send(context: AppContext, args: argparse.Namespace) -> int:
    if not args.to or not args.subject:
        print("The send command requires --to and --subject.")
        return 2
    if not args.text and not args.html:
        print("The send command requires --text or --html.")
        return 2
    result = context.mail.send_mail(
        SendRequest(
            to=args.to,
            subject=args.subject,
            text=args.text,
            html=args.html,
            account_id=args.account_id,
        )
    )
    print(result.message)
    return 0 if result.success else 1


if __name__ == "__main__":
    main()
