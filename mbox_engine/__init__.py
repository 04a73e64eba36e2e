"""mbox_engine — MBOX framing, header parsing and round-trip export.

Public API re-exported here for convenience::

    from mbox_engine import MboxParser, MboxExporter, ParseWorker
"""

from .config import EngineConfig, ExportConfig, ParserConfig
from .errors import (
    ContainerError,
    EmptyContainerError,
    MboxEngineError,
    ParseCancelledError,
    UnreadableContainerError,
    WorkerFailedError,
)
from .escaping import escape_from_lines, unescape_from_lines
from .export import EditOverlay, MboxExporter
from .framer import split_records
from .headers import HeaderParser
from .logging import setup_logging
from .metadata import DEFAULT_SUBJECT, extract_metadata, parse_addresses
from .models import (
    Body,
    Envelope,
    ErrorKind,
    ExportError,
    ExportResult,
    HeaderTable,
    MailboxSummary,
    Message,
    Metadata,
    ParseError,
    ParseResult,
    ParseStats,
    ProgressEvent,
    RawRecord,
    ValidationResult,
)
from .normalize import normalize_eol
from .parser import MboxParser, ProgressCallback, validate_container
from .stats import merge_results, summarize
from .worker import CompleteMessage, FailedMessage, ParseWorker, ProgressMessage

__all__ = [
    "DEFAULT_SUBJECT",
    "Body",
    "CompleteMessage",
    "ContainerError",
    "EditOverlay",
    "EmptyContainerError",
    "EngineConfig",
    "Envelope",
    "ErrorKind",
    "ExportConfig",
    "ExportError",
    "ExportResult",
    "FailedMessage",
    "HeaderParser",
    "HeaderTable",
    "MailboxSummary",
    "MboxEngineError",
    "MboxExporter",
    "MboxParser",
    "Message",
    "Metadata",
    "ParseCancelledError",
    "ParseError",
    "ParseResult",
    "ParseStats",
    "ParseWorker",
    "ParserConfig",
    "ProgressCallback",
    "ProgressEvent",
    "ProgressMessage",
    "RawRecord",
    "UnreadableContainerError",
    "ValidationResult",
    "WorkerFailedError",
    "escape_from_lines",
    "extract_metadata",
    "merge_results",
    "normalize_eol",
    "parse_addresses",
    "setup_logging",
    "split_records",
    "summarize",
    "unescape_from_lines",
    "validate_container",
]
