"""MboxExporter: parsed messages (+ header edits) -> MBOX container.

The output uses the same conventions the parser reads: a ``From_`` line
per record, one physical line per header value, ``>From`` quoting in
bodies and a single blank line between records.  Re-parsing an export
of unedited messages yields the same headers, bodies and metadata.
"""

from __future__ import annotations

import re
import time
from collections.abc import Mapping, Sequence

import structlog

from .config import ExportConfig
from .escaping import escape_from_lines
from .models import Envelope, ExportError, ExportResult, HeaderTable, Message, ParseResult
from .normalize import CRLF, LF

logger = structlog.get_logger()

EditOverlay = Mapping[str, Mapping[str, str]]

_HEADER_NAME_RE = re.compile(r"^[^:\s]+$")
_EPOCH = 0.0

_LINE_ENDINGS = {"lf": LF, "crlf": CRLF}


class MboxExporter:
    """Serialize messages back into an MBOX container.

    Pure and synchronous: safe to call repeatedly and from several
    threads on distinct inputs.
    """

    def __init__(self, config: ExportConfig | None = None) -> None:
        self._config = config or ExportConfig()

    def export(
        self,
        messages: Sequence[Message],
        overlay: EditOverlay | None = None,
        *,
        line_ending: str | None = None,
    ) -> ExportResult:
        """Serialize *messages* in order, applying *overlay* edits.

        *overlay* maps message uid -> header name -> replacement value.
        An edited header keeps only the replacement value.  Entries that
        cannot be applied are reported in ``ExportResult.errors`` and
        skipped; they never stop the rest of the export.

        *line_ending* overrides the configured convention; pass the
        ``line_ending`` of a :class:`ParseResult` to reproduce the source.
        """
        overlay = overlay or {}
        errors: list[ExportError] = []
        selected = {message.uid for message in messages}

        for uid in overlay:
            if uid not in selected:
                errors.append(ExportError(uid=uid, message="Overlay references a message that is not exported"))

        records: list[str] = []
        for message in messages:
            edits = self._valid_edits(message.uid, overlay.get(message.uid, {}), errors)
            headers = message.headers.with_replacements(edits) if edits else message.headers
            records.append(self.serialize_message(message, headers))

        content = LF.join(records)
        eol = self._resolve_line_ending(line_ending)
        if eol != LF:
            content = content.replace(LF, eol)

        logger.info("mbox_export_completed", exported=len(records), errors=len(errors))
        return ExportResult(content=content, exported=len(records), errors=errors)

    def export_result(
        self,
        result: ParseResult,
        overlay: EditOverlay | None = None,
        *,
        uids: Sequence[str] | None = None,
    ) -> ExportResult:
        """Export the messages of *result*, optionally only those in *uids*.

        Source order is kept regardless of the order of *uids*.  With
        ``line_ending="preserve"`` the parsed convention is reproduced.
        """
        messages = result.messages
        if uids is not None:
            wanted = set(uids)
            messages = [message for message in messages if message.uid in wanted]
        line_ending = result.line_ending if self._config.line_ending == "preserve" else None
        return self.export(messages, overlay, line_ending=line_ending)

    def serialize_message(self, message: Message, headers: HeaderTable | None = None) -> str:
        """Render one record with LF line endings, terminated by a newline."""
        headers = headers if headers is not None else message.headers
        lines = [self.delimiter_for(message).line]
        for name, value in headers:
            lines.append(f"{name}: {value}" if value else f"{name}:")
        lines.append("")
        body = escape_from_lines(message.body.text)
        if body:
            lines.extend(body.split(LF))
        return LF.join(lines) + LF

    def delimiter_for(self, message: Message) -> Envelope:
        """Reuse the parsed envelope, or synthesize ``From sender asctime``."""
        if message.envelope is not None:
            return message.envelope
        sender = self._config.default_sender
        for address in message.metadata.from_:
            if address and not any(char.isspace() for char in address):
                sender = address
                break
        date = message.metadata.date
        timestamp = date.timestamp() if date is not None else _EPOCH
        return Envelope(sender=sender, trailer=time.asctime(time.gmtime(timestamp)))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _valid_edits(
        self,
        uid: str,
        edits: Mapping[str, str],
        errors: list[ExportError],
    ) -> dict[str, str]:
        valid: dict[str, str] = {}
        for name, value in edits.items():
            if not isinstance(name, str) or not _HEADER_NAME_RE.match(name):
                errors.append(ExportError(uid=uid, header=str(name), message="Invalid header name"))
                continue
            if not isinstance(value, str):
                errors.append(ExportError(uid=uid, header=name, message="Replacement value is not a string"))
                continue
            if "\n" in value or "\r" in value:
                errors.append(
                    ExportError(uid=uid, header=name, message="Replacement value contains a line break")
                )
                continue
            valid[name] = value.strip()
        return valid

    def _resolve_line_ending(self, line_ending: str | None) -> str:
        if line_ending is not None:
            return line_ending
        return _LINE_ENDINGS.get(self._config.line_ending, LF)
