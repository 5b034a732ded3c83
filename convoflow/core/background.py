"""Fire-and-forget execution of side effects outside the request path."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    def submit(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool: ...


def _guarded(label: str, fn: Callable[..., Any]) -> Callable[..., Any]:
    def _run(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except Exception:
            logger.exception("Background task %s failed", label)
            return None

    return _run


class BackgroundDispatcher:
    """Thin wrapper around :class:`ThreadPoolExecutor` for detached work.

    Submitted callables run on worker threads. Their exceptions are logged
    and swallowed, and a failure to enqueue is logged and reported through
    the boolean return value instead of being raised to the caller.
    """

    def __init__(self, max_workers: int = 4):
        self.executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="convoflow-bg"
        )

    def submit(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        try:
            future: Future = self.executor.submit(_guarded(label, fn), *args, **kwargs)
        except RuntimeError:
            logger.exception("Could not enqueue background task %s", label)
            return False
        logger.debug("Enqueued background task %s (%r)", label, future)
        return True

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)


class InlineDispatcher:
    """Run submitted work immediately on the calling thread."""

    def submit(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        _guarded(label, fn)(*args, **kwargs)
        return True

    def shutdown(self, wait: bool = True) -> None:
        return None


__all__ = ["BackgroundDispatcher", "Dispatcher", "InlineDispatcher"]
