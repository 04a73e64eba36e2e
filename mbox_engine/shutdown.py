"""Cancel a running parse on SIGTERM / SIGINT."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable

import structlog

logger = structlog.get_logger()

_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_signal_handlers(on_signal: Callable[[], None]) -> None:
    """Register SIGTERM and SIGINT handlers that call *on_signal*.

    Call this once from the running event loop, typically with
    ``worker.cancel`` so an interrupted parse stops at the next record
    instead of killing the process mid-write.
    """
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        logger.info("shutdown_signal_received", signal=sig.name)
        on_signal()

    for sig in _SIGNALS:
        loop.add_signal_handler(sig, _handle, sig)


def remove_signal_handlers() -> None:
    """Undo :func:`install_signal_handlers` for the running loop."""
    loop = asyncio.get_running_loop()
    for sig in _SIGNALS:
        loop.remove_signal_handler(sig)
