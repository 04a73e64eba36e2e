"""MboxParser: container buffer -> messages, errors and stats.

Control flow per call::

    normalize -> frame -> {headers, body} per record -> metadata -> result

Every call owns its working state; nothing is shared between calls, so
separate parses may run concurrently in different threads.
"""

from __future__ import annotations

import re
import threading
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import structlog

from .config import ParserConfig
from .errors import EmptyContainerError, ParseCancelledError
from .escaping import unescape_from_lines
from .framer import split_records
from .headers import HeaderParser
from .metadata import extract_metadata
from .models import (
    Body,
    ErrorKind,
    Message,
    ParseError,
    ParseResult,
    ProgressEvent,
    RawRecord,
    ValidationResult,
)
from .normalize import has_undecodable, normalize_container, redecode
from .stats import compute_stats, merge_results

logger = structlog.get_logger()

ProgressCallback = Callable[[ProgressEvent], None]

_SNIFF_BYTES = 1024
_SNIFF_RE = re.compile(r"^From \S+")


@dataclass
class _ParseSession:
    """Working set of one parse call."""

    total_bytes: int
    messages: list[Message] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)
    bytes_processed: int = 0
    generated_ids: int = 0


class MboxParser:
    """Parse MBOX containers into :class:`~mbox_engine.models.Message` records.

    ``uid_factory`` lets embedders supply their own message identifiers;
    by default uids are ``<uid_prefix>-<uuid4 hex>``.
    """

    def __init__(
        self,
        config: ParserConfig | None = None,
        *,
        uid_factory: Callable[[], str] | None = None,
    ) -> None:
        self._config = config or ParserConfig()
        self._headers = HeaderParser()
        self._uid_factory = uid_factory or self._default_uid

    @property
    def config(self) -> ParserConfig:
        return self._config

    def _default_uid(self) -> str:
        return f"{self._config.uid_prefix}-{uuid.uuid4().hex}"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(
        self,
        container: str | bytes,
        *,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ParseResult:
        """Parse one container.

        Raises :class:`EmptyContainerError` for a zero-length buffer,
        :class:`UnreadableContainerError` for anything that is not text
        or bytes, and :class:`ParseCancelledError` when *cancel_event*
        is set before the last record is processed.  Per-record problems
        never raise; they are returned in ``ParseResult.errors``.
        """
        started = time.perf_counter()
        normalized = normalize_container(container, self._config.encoding)
        if normalized.original_length == 0:
            raise EmptyContainerError()

        records = split_records(normalized.text)
        session = _ParseSession(total_bytes=normalized.original_length)
        logger.info("mbox_parse_started", records=len(records), total_bytes=session.total_bytes)

        interval = self._config.progress_interval
        last = len(records) - 1
        for position, record in enumerate(records):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("mbox_parse_cancelled", records_processed=position)
                raise ParseCancelledError(position)

            message = self._process_record(record, session)
            session.bytes_processed += record.size

            if progress_callback is not None and (position % interval == 0 or position == last):
                progress_callback(self._progress(session, position, last, message))

        parse_time = time.perf_counter() - started
        stats = compute_stats(
            session.messages,
            session.errors,
            total_bytes=session.total_bytes,
            parse_time=parse_time,
        )
        logger.info(
            "mbox_parse_completed",
            messages=stats.total_emails,
            errors=stats.error_count,
            parse_time=round(parse_time, 6),
        )
        return ParseResult(
            messages=session.messages,
            errors=session.errors,
            stats=stats,
            line_ending=normalized.line_ending,
        )

    def parse_many(
        self,
        containers: Sequence[str | bytes],
        *,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ParseResult:
        """Parse several containers and merge the results in order.

        Progress is reported on one overall scale: each container owns an
        equal share of the percentage, and record and byte counts keep
        growing across containers.
        """
        results: list[ParseResult] = []
        count = len(containers)
        records_before = 0
        bytes_before = 0

        for index, container in enumerate(containers):
            forward: ProgressCallback | None = None
            if progress_callback is not None:
                forward = self._scaled_progress(
                    progress_callback, index, count, records_before, bytes_before
                )
            seen: list[ProgressEvent] = []

            def track(event: ProgressEvent, _forward=forward, _seen=seen) -> None:
                _seen.append(event)
                if _forward is not None:
                    _forward(event)

            results.append(self.parse(container, progress_callback=track, cancel_event=cancel_event))
            if seen:
                records_before += seen[-1].records_processed
                bytes_before += seen[-1].bytes_processed

        return merge_results(results)

    # ------------------------------------------------------------------
    # Record conversion
    # ------------------------------------------------------------------

    def _process_record(self, record: RawRecord, session: _ParseSession) -> Message | None:
        try:
            return self._convert(record, session)
        except Exception as exc:
            logger.exception("mbox_record_failed", record_index=record.index)
            self._report(
                session,
                ErrorKind.CRITICAL_PARSE_FAILURE,
                f"Failed to parse email {record.index}: {exc}",
                record.index,
                record.lines[0] if record.lines else None,
            )
            return None

    def _convert(self, record: RawRecord, session: _ParseSession) -> Message | None:
        lines = record.lines
        encoding_issue = has_undecodable(record.text)
        if encoding_issue:
            lines = tuple(
                redecode(record.text, self._config.encoding, self._config.fallback_encoding).split("\n")
            )

        block = self._headers.parse(lines, has_delimiter=record.delimiter is not None)
        body_lines = block.body_lines
        if body_lines and body_lines[-1] == "":
            # Blank separator before the next delimiter (or the final newline).
            body_lines = body_lines[:-1]

        if len(block.table) == 0 and not any(line.strip() for line in body_lines):
            self._report(
                session,
                ErrorKind.CRITICAL_PARSE_FAILURE,
                f"Record {record.index} has no header fields and no body",
                record.index,
                lines[0] if lines else None,
            )
            logger.warning("mbox_record_dropped", record_index=record.index)
            return None

        if encoding_issue:
            self._report(
                session,
                ErrorKind.ENCODING_ERROR,
                f"Undecodable bytes in record {record.index} replaced using "
                f"{self._config.fallback_encoding!r}",
                record.index,
            )
        for issue in block.malformed:
            self._report(
                session,
                ErrorKind.MALFORMED_HEADER,
                f"Skipped malformed header line in record {record.index}: {issue.reason}",
                record.index,
                issue.line,
            )
        if record.delimiter is None:
            self._report(
                session,
                ErrorKind.DELIMITER_AMBIGUITY,
                "Content before the first From_ line was recovered as a separate message",
                record.index,
                lines[0],
            )
        for offset in record.ambiguous_lines:
            self._report(
                session,
                ErrorKind.DELIMITER_AMBIGUITY,
                f"Unescaped From_ line in record {record.index} kept as message text",
                record.index,
                lines[offset] if offset < len(lines) else None,
            )

        raw_body = "\n".join(body_lines)
        text = unescape_from_lines(raw_body)
        content_type = (block.table.first("Content-Type") or "").lower()
        metadata = extract_metadata(block.table, self._config.subject_placeholder)

        message_id = block.table.first("Message-ID")
        if not message_id:
            message_id = f"<generated-{session.generated_ids}@{self._config.generated_id_domain}>"
            session.generated_ids += 1

        message = Message(
            uid=self._uid_factory(),
            message_id=message_id,
            headers=block.table,
            body=Body(text=text, raw=raw_body, html=text if "text/html" in content_type else ""),
            metadata=metadata,
            raw_size=record.size,
            envelope=record.delimiter,
            record_index=record.index,
        )
        session.messages.append(message)
        return message

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _report(
        self,
        session: _ParseSession,
        kind: ErrorKind,
        message: str,
        record_index: int | None,
        context: str | None = None,
    ) -> None:
        if context is not None:
            if has_undecodable(context):
                context = redecode(context, self._config.encoding, self._config.fallback_encoding)
            context = context[: self._config.max_error_context]
        session.errors.append(
            ParseError(kind=kind, message=message, record_index=record_index, context=context)
        )

    @staticmethod
    def _progress(
        session: _ParseSession, position: int, last: int, message: Message | None
    ) -> ProgressEvent:
        if position == last or session.total_bytes == 0:
            percent = 100.0
        else:
            percent = min(100.0, session.bytes_processed / session.total_bytes * 100)
        return ProgressEvent(
            percent_complete=percent,
            records_processed=position + 1,
            bytes_processed=session.bytes_processed,
            current_subject=message.metadata.subject if message else None,
        )

    @staticmethod
    def _scaled_progress(
        callback: ProgressCallback,
        index: int,
        count: int,
        records_before: int,
        bytes_before: int,
    ) -> ProgressCallback:
        def forward(event: ProgressEvent) -> None:
            callback(
                ProgressEvent(
                    percent_complete=min(100.0, (index * 100 + event.percent_complete) / count),
                    records_processed=records_before + event.records_processed,
                    bytes_processed=bytes_before + event.bytes_processed,
                    current_subject=event.current_subject,
                )
            )

        return forward


def validate_container(head: str | bytes) -> ValidationResult:
    """Quick sniff: does the buffer start with an MBOX ``From_`` line?

    Only the first 1024 bytes (or characters) are examined.
    """
    chunk = head[:_SNIFF_BYTES]
    if isinstance(chunk, (bytes, bytearray)):
        chunk = bytes(chunk).decode("utf-8", "replace")
    first_line = re.split(r"\r\n|\r|\n", chunk, maxsplit=1)[0]
    if not _SNIFF_RE.match(first_line):
        return ValidationResult(valid=False, error="File does not start with a valid MBOX From_ line")
    return ValidationResult(valid=True)
