"""Exception hierarchy for container-level failures.

Per-record problems are never raised; they are collected as
:class:`~mbox_engine.models.ParseError` entries on the parse result.
"""

from __future__ import annotations


class MboxEngineError(Exception):
    """Base class for every exception raised by mbox_engine."""


class ContainerError(MboxEngineError):
    """The container as a whole cannot be parsed."""


class EmptyContainerError(ContainerError):
    """The input buffer has zero length."""

    def __init__(self) -> None:
        super().__init__("MBOX container is empty")


class UnreadableContainerError(ContainerError):
    """The input buffer is not text or bytes, or could not be read."""


class ParseCancelledError(MboxEngineError):
    """The caller cancelled the parse; no partial result is returned."""

    def __init__(self, records_processed: int) -> None:
        super().__init__(f"parse cancelled after {records_processed} records")
        self.records_processed = records_processed


class WorkerFailedError(MboxEngineError):
    """A parse running in a :class:`~mbox_engine.worker.ParseWorker` failed."""

    def __init__(self, message: str, error_type: str) -> None:
        super().__init__(message)
        self.error_type = error_type
