"""ParseWorker — run a parse off the event loop and talk to it by messages.

The parse runs in a worker thread with its own working set.  The only
channel back to the caller is a queue of immutable messages:

* :class:`ProgressMessage` — zero or more, in increasing order
* :class:`CompleteMessage` — the final :class:`ParseResult`
* :class:`FailedMessage` — a container-level failure

After :meth:`ParseWorker.cancel` no further messages are delivered and
the partial result is thrown away.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

import structlog

from .errors import MboxEngineError, ParseCancelledError, WorkerFailedError
from .models import ParseResult, ProgressEvent
from .parser import MboxParser

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProgressMessage:
    event: ProgressEvent


@dataclass(frozen=True)
class CompleteMessage:
    result: ParseResult


@dataclass(frozen=True)
class FailedMessage:
    error: str
    error_type: str


WorkerMessage = ProgressMessage | CompleteMessage | FailedMessage


class ParseWorker:
    """One-shot parse running in an isolated worker thread.

    Usage::

        worker = ParseWorker(MboxParser())
        worker.start(data)
        async for message in worker.events():
            ...

    or simply ``result = await worker.run(data, on_progress=...)``.
    """

    def __init__(self, parser: MboxParser | None = None) -> None:
        self._parser = parser or MboxParser()
        # None marks the end of delivery.
        self._queue: asyncio.Queue[WorkerMessage | None] = asyncio.Queue()
        self._cancel = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[ParseResult | None] | None = None
        self._records_seen = 0

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def started(self) -> bool:
        return self._task is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, container: str | bytes) -> None:
        """Begin parsing *container*.  Must be called from a running loop."""
        if self._task is not None:
            raise RuntimeError("ParseWorker can only be started once")
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.create_task(self._work(container))

    def cancel(self) -> None:
        """Stop delivery now; the worker thread stops at the next record."""
        if self._cancel.is_set():
            return
        self._cancel.set()
        logger.info("parse_worker_cancelled", records_seen=self._records_seen)
        self._queue.put_nowait(None)

    async def wait(self) -> ParseResult | None:
        """Wait for the worker to finish; ``None`` if it was cancelled or failed."""
        if self._task is None:
            raise RuntimeError("ParseWorker has not been started")
        return await self._task

    async def events(self) -> AsyncIterator[WorkerMessage]:
        """Yield worker messages until completion, failure or cancellation."""
        while True:
            item = await self._queue.get()
            if item is None or self._cancel.is_set():
                return
            if isinstance(item, ProgressMessage):
                self._records_seen = item.event.records_processed
            yield item
            if isinstance(item, (CompleteMessage, FailedMessage)):
                return

    async def run(
        self,
        container: str | bytes,
        *,
        on_progress: Callable[[ProgressEvent], None] | None = None,
    ) -> ParseResult:
        """Start, relay progress to *on_progress* and return the result.

        Raises :class:`WorkerFailedError` on a container-level failure and
        :class:`ParseCancelledError` if :meth:`cancel` was called.
        """
        self.start(container)
        async for message in self.events():
            if isinstance(message, ProgressMessage):
                if on_progress is not None:
                    on_progress(message.event)
            elif isinstance(message, CompleteMessage):
                return message.result
            else:
                raise WorkerFailedError(message.error, message.error_type)
        raise ParseCancelledError(self._records_seen)

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    async def _work(self, container: str | bytes) -> ParseResult | None:
        try:
            result = await asyncio.to_thread(
                self._parser.parse,
                container,
                progress_callback=self._post_progress,
                cancel_event=self._cancel,
            )
        except ParseCancelledError:
            return None
        except MboxEngineError as exc:
            logger.warning("parse_worker_failed", error=str(exc))
            self._post(FailedMessage(error=str(exc), error_type=type(exc).__name__))
            return None
        except Exception as exc:
            logger.exception("parse_worker_crashed")
            self._post(FailedMessage(error=str(exc), error_type=type(exc).__name__))
            return None

        if self._cancel.is_set():
            return None
        self._post(CompleteMessage(result=result))
        return result

    def _post_progress(self, event: ProgressEvent) -> None:
        # Runs in the worker thread.
        if self._cancel.is_set() or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._post, ProgressMessage(event=event))

    def _post(self, message: WorkerMessage) -> None:
        if not self._cancel.is_set():
            self._queue.put_nowait(message)
