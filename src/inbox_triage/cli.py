"""Command-line interface for Inbox Triage.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from inbox_triage import __version__
from inbox_triage.config import Settings, get_settings
from inbox_triage.exceptions import InboxTriageError
from inbox_triage.gateway import GmailGateway, ProviderGateway
from inbox_triage.gmail.client import GmailClient
from inbox_triage.models import ClassifiedMessage, SessionMode
from inbox_triage.session import Notification, SessionController
from inbox_triage.utils import configure_logging

logger = structlog.get_logger()

REVIEW_HELP = "a=apply  s=skip  t <n>=toggle  all  none  r=start over  q=quit"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inbox-triage", description="Inbox Triage")
    subparsers = parser.add_subparsers(dest="command", required=True)

    modes = [m.value for m in SessionMode]

    scan_parser = subparsers.add_parser("scan", help="List classified candidates for a mode")
    scan_parser.add_argument("--mode", choices=modes, default=SessionMode.DELETE.value)
    scan_parser.add_argument("--pages", type=int, default=1, help="Number of pages to scan")

    review_parser = subparsers.add_parser("review", help="Review candidates batch by batch")
    review_parser.add_argument("--mode", choices=modes, default=SessionMode.DELETE.value)
    review_parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Messages per batch (default: settings batch_size)",
    )

    show_parser = subparsers.add_parser("show", help="Print the body of one message")
    show_parser.add_argument("message_id", help="Gmail message id")

    return parser


async def _open_gateway(settings: Settings) -> ProviderGateway:
    client = GmailClient(settings)
    await client.authenticate()
    return GmailGateway(client, settings)


def _format_row(index: int, message: ClassifiedMessage, selected: bool | None = None) -> str:
    mark = "" if selected is None else ("[x] " if selected else "[ ] ")
    c = message.classification
    return (
        f"{mark}{index:>2}. {c.action.value:<11} {c.confidence:.2f}  "
        f"{message.sender.email:<32} {message.subject}"
    )


async def _cmd_scan(args: argparse.Namespace, settings: Settings) -> int:
    gateway = await _open_gateway(settings)
    mode = SessionMode(args.mode)

    token: str | None = None
    shown = 0
    for _ in range(max(args.pages, 1)):
        page = await gateway.list_messages(mode, token)
        for message in page.messages:
            shown += 1
            print(_format_row(shown, message))
            if message.classification.reasons:
                print(f"      {', '.join(message.classification.reasons)}")
        token = page.next_page_token
        if token is None:
            break

    print(f"{shown} candidates for {mode.value}")
    return 0


def _print_batch(controller: SessionController) -> None:
    stats = controller.stats
    print(
        f"\n{controller.mode.value}: {len(controller.selected_ids)} selected, "
        f"{stats.total} processed so far"
    )
    for index, message in enumerate(controller.current_batch, start=1):
        print(_format_row(index, message, message.id in controller.selected_ids))
    print(REVIEW_HELP)


async def _review_loop(controller: SessionController) -> None:
    await controller.initialize()
    while True:
        if controller.error is not None:
            print(f"Could not load messages: {controller.error}")
            return
        if not controller.current_batch and controller.has_more:
            pending = controller.state.next_page_token
            await controller.prefetch()
            if controller.state.next_page_token == pending:
                print("Could not load more messages")
                return
            continue
        if controller.is_complete:
            summary = controller.summary()
            print(f"\n{summary.headline} {summary.detail}")
            for label, count in summary.counts:
                print(f"  {label}: {count}")
            return

        _print_batch(controller)
        command = (await asyncio.to_thread(input, "> ")).strip().lower()

        if command == "q":
            return
        if command == "a":
            await controller.process_selected()
        elif command == "s":
            controller.skip_batch()
        elif command == "all":
            controller.select_all()
        elif command == "none":
            controller.deselect_all()
        elif command == "r":
            await controller.start_over()
        elif command.startswith("t "):
            _toggle(controller, command[2:])
        else:
            print(f"Unknown command: {command!r}")


def _print_notification(notification: Notification) -> None:
    print(notification.message)


def _toggle(controller: SessionController, value: str) -> None:
    batch = controller.current_batch
    try:
        message = batch[int(value) - 1]
    except (ValueError, IndexError):
        print(f"No row {value!r} in this batch")
        return
    controller.toggle_selection(message.id, message.id not in controller.selected_ids)


async def _cmd_review(args: argparse.Namespace, settings: Settings) -> int:
    gateway = await _open_gateway(settings)
    controller = SessionController(
        gateway,
        SessionMode(args.mode),
        batch_size=args.batch_size,
        settings=settings,
        notifier=_print_notification,
    )
    try:
        await _review_loop(controller)
    finally:
        controller.dispose()
    return 0


async def _cmd_show(args: argparse.Namespace, settings: Settings) -> int:
    gateway = await _open_gateway(settings)
    body = await gateway.get_message_body(args.message_id)
    if body.to:
        print(f"To: {body.to}\n")
    print(body.body_text)
    return 0


_COMMANDS = {
    "scan": _cmd_scan,
    "review": _cmd_review,
    "show": _cmd_show,
}


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Inbox Triage CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, 1 for configuration or authentication
        failures, 2 for unknown commands).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()

    configure_logging(settings)

    logger.info("inbox_triage_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    command = _COMMANDS.get(parsed.command)
    if command is None:
        logger.error("unknown_command", command=parsed.command)
        return 2

    try:
        return asyncio.run(command(parsed, settings))
    except InboxTriageError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
