"""
Cancellation token — lets a CLI interrupt stop blocking waits promptly.

The readiness prober and the log streamer both wait in short slices and
check the token between slices. ``cancel_on_interrupt`` installs a scoped
SIGINT/SIGTERM handler that trips the token instead of raising
KeyboardInterrupt in the middle of a subprocess call, and restores the
previous handlers on exit.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class CancelToken:
    """A one-shot, thread-safe cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return True if cancelled meanwhile."""
        return self._event.wait(timeout)


@contextmanager
def cancel_on_interrupt(token: CancelToken | None = None) -> Iterator[CancelToken]:
    """Route SIGINT/SIGTERM to ``token`` for the duration of the block."""
    token = token or CancelToken()

    # signal.signal() only works from the main thread
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def _handle_signal(signum: int, frame: object) -> None:
        logger.info("Stop signal received: %s", signum)
        token.cancel()

    originals = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        originals[sig] = signal.getsignal(sig)
        signal.signal(sig, _handle_signal)
    try:
        yield token
    finally:
        for sig, handler in originals.items():
            signal.signal(sig, handler)
