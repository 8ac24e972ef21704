"""Hard wall-clock deadline around blocking backend I/O.

Neither socket reads nor reads from a child's stdout can be interrupted
directly, so the operation runs on a worker thread while the caller waits
with a timeout. When the deadline passes, the CancelScope releases whatever
the operation registered (shutting a socket, killing a child), which makes
the stuck worker fail fast and run its own cleanup.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import DeadlineError

logger = logging.getLogger(__name__)

_active = threading.local()


class CancelScope:
    def __init__(self):
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], Any]] = []
        self.cancelled = False

    def register(self, callback: Callable[[], Any]):
        with self._lock:
            if not self.cancelled:
                self._callbacks.append(callback)
                return
        # Already past the deadline; release right away
        _release(callback)

    def cancel(self):
        with self._lock:
            if self.cancelled:
                return
            self.cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        for callback in reversed(callbacks):
            _release(callback)


def _release(callback: Callable[[], Any]):
    try:
        callback()
    except OSError as e:
        # socket already closed, child already reaped
        logger.debug("deadline: release callback failed: %s", e)


@dataclass(frozen=True)
class OperationResult:
    status: str
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def completed(cls, value: Any) -> "OperationResult":
        return cls("completed", value)

    @classmethod
    def timed_out(cls) -> "OperationResult":
        return cls("timed_out")

    @classmethod
    def failed(cls, error: BaseException) -> "OperationResult":
        return cls("failed", error=error)


def run_with_deadline(
    seconds: float,
    operation: Callable[[], Any],
    scope: Optional[CancelScope] = None,
) -> OperationResult:
    """
    Run ``operation`` and give up after ``seconds``.
    Only one deadline may be active per thread at a time.
    """
    if not seconds or seconds <= 0:
        return OperationResult.failed(DeadlineError(f"invalid timeout: {seconds!r}"))
    if getattr(_active, "armed", False):
        return OperationResult.failed(DeadlineError("nested deadline"))

    scope = scope or CancelScope()
    outcome: dict[str, Any] = {}

    def worker():
        _active.armed = True
        try:
            outcome["value"] = operation()
        except BaseException as e:  # handed back to the waiting caller
            outcome["error"] = e

    thread = threading.Thread(target=worker, name="dcc-deadline", daemon=True)
    _active.armed = True
    try:
        try:
            thread.start()
        except RuntimeError as e:
            return OperationResult.failed(DeadlineError(f"cannot start worker: {e}"))

        started = time.monotonic()
        thread.join(seconds)
        if thread.is_alive():
            logger.debug("deadline: timed out after %.1f secs, releasing resources", seconds)
            scope.cancel()
            return OperationResult.timed_out()
        logger.debug("deadline: finished in %.3f secs", time.monotonic() - started)
    finally:
        _active.armed = False

    if "error" in outcome:
        return OperationResult.failed(outcome["error"])
    return OperationResult.completed(outcome.get("value"))
