"""Entry point for the mbox_engine package.

Usage::

    python -m mbox_engine parse archive.mbox [--json]
    python -m mbox_engine validate archive.mbox
    python -m mbox_engine export archive.mbox out.mbox [--edits edits.json]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

import structlog

from .config import EngineConfig
from .errors import ContainerError, ParseCancelledError, UnreadableContainerError, WorkerFailedError
from .export import MboxExporter
from .logging import setup_logging
from .models import ParseResult, ProgressEvent
from .parser import MboxParser, validate_container
from .shutdown import install_signal_handlers, remove_signal_handlers
from .stats import summarize
from .worker import ParseWorker

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mbox-engine", description="Parse and re-export MBOX containers")
    parser.add_argument("--log-level", default=None, help="Root log level (default: MBOX_LOG_LEVEL or INFO)")
    parser.add_argument("--log-json", action="store_true", help="Emit JSON log lines")
    commands = parser.add_subparsers(dest="command", required=True)

    parse_cmd = commands.add_parser("parse", help="Parse a container and report its contents")
    parse_cmd.add_argument("file", type=Path)
    parse_cmd.add_argument("--json", action="store_true", help="Print messages, errors and stats as JSON")
    parse_cmd.add_argument("--quiet", action="store_true", help="Do not print progress to stderr")

    validate_cmd = commands.add_parser("validate", help="Check that a file looks like an MBOX container")
    validate_cmd.add_argument("file", type=Path)

    export_cmd = commands.add_parser("export", help="Parse a container and write it back out")
    export_cmd.add_argument("file", type=Path)
    export_cmd.add_argument("output", type=Path)
    export_cmd.add_argument(
        "--edits",
        type=Path,
        help="JSON object mapping Message-ID to {header: replacement value}",
    )
    return parser


def _read(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise UnreadableContainerError(f"cannot read {path}: {exc.strerror or exc}") from exc


# ----------------------------------------------------------------------
# parse
# ----------------------------------------------------------------------


def _print_progress(event: ProgressEvent) -> None:
    print(
        f"\r{event.percent_complete:5.1f}%  {event.records_processed} records  "
        f"{event.bytes_processed} bytes",
        end="",
        file=sys.stderr,
        flush=True,
    )


async def _parse_in_worker(data: bytes, parser: MboxParser, *, quiet: bool) -> ParseResult:
    worker = ParseWorker(parser)
    install_signal_handlers(worker.cancel)
    try:
        return await worker.run(data, on_progress=None if quiet else _print_progress)
    finally:
        remove_signal_handlers()
        if not quiet:
            print(file=sys.stderr)


def _render_summary(result: ParseResult) -> str:
    stats = result.stats
    summary = summarize(result.messages)
    lines = [
        f"messages:     {stats.total_emails}",
        f"errors:       {stats.error_count}",
        f"total bytes:  {stats.total_bytes}",
        f"average size: {stats.avg_email_size:.1f}",
        f"parse time:   {stats.parse_time:.3f}s",
    ]
    if summary.earliest and summary.latest:
        lines.append(f"date range:   {summary.earliest.isoformat()} .. {summary.latest.isoformat()}")
    for sender in summary.top_senders:
        lines.append(f"  {sender.count:6d}  {sender.address}")
    for error in result.errors:
        lines.append(f"[{error.kind.value}] record {error.record_index}: {error.message}")
    return "\n".join(lines)


def _cmd_parse(args: argparse.Namespace, config: EngineConfig) -> int:
    data = _read(args.file)
    parser = MboxParser(config.parser)
    try:
        result = asyncio.run(_parse_in_worker(data, parser, quiet=args.quiet))
    except WorkerFailedError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    except ParseCancelledError:
        print("Cancelled", file=sys.stderr)
        return EXIT_CANCELLED

    if args.json:
        payload = {
            "messages": [message.to_dict() for message in result.messages],
            "errors": [error.model_dump(mode="json") for error in result.errors],
            "stats": result.stats.model_dump(mode="json"),
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print(_render_summary(result))
    return EXIT_OK


# ----------------------------------------------------------------------
# validate
# ----------------------------------------------------------------------


def _cmd_validate(args: argparse.Namespace, config: EngineConfig) -> int:
    verdict = validate_container(_read(args.file))
    if verdict.valid:
        print(f"{args.file}: valid MBOX container")
        return EXIT_OK
    print(f"{args.file}: {verdict.error}", file=sys.stderr)
    return EXIT_FAILURE


# ----------------------------------------------------------------------
# export
# ----------------------------------------------------------------------


def _load_edits(path: Path, result: ParseResult) -> dict[str, dict[str, str]]:
    """Translate a Message-ID keyed edit file into a uid keyed overlay."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise UnreadableContainerError(f"cannot load edits from {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise UnreadableContainerError(f"edits file {path} must contain a JSON object")

    by_message_id: dict[str, list[str]] = {}
    for message in result.messages:
        by_message_id.setdefault(message.message_id, []).append(message.uid)

    overlay: dict[str, dict[str, str]] = {}
    for message_id, headers in raw.items():
        uids = by_message_id.get(message_id)
        if not uids:
            logger.warning("export_edit_unmatched", message_id=message_id)
            continue
        if not isinstance(headers, dict):
            logger.warning("export_edit_invalid", message_id=message_id)
            continue
        for uid in uids:
            overlay[uid] = {str(name): str(value) for name, value in headers.items()}
    return overlay


def _cmd_export(args: argparse.Namespace, config: EngineConfig) -> int:
    result = MboxParser(config.parser).parse(_read(args.file))
    overlay = _load_edits(args.edits, result) if args.edits else None

    exported = MboxExporter(config.export).export_result(result, overlay)
    for error in exported.errors:
        print(f"Warning: {error.uid}: {error.message}", file=sys.stderr)
    try:
        args.output.write_bytes(exported.to_bytes())
    except OSError as exc:
        print(f"Error: cannot write {args.output}: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    print(f"Exported {exported.exported} messages to {args.output}")
    return EXIT_OK


_COMMANDS = {
    "parse": _cmd_parse,
    "validate": _cmd_validate,
    "export": _cmd_export,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    config = EngineConfig()
    setup_logging(json=args.log_json or config.log_json, level=args.log_level or config.log_level)

    try:
        return _COMMANDS[args.command](args, config)
    except ContainerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
