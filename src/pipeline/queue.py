"""Single-worker queue for remote inference calls.

All calls to the inference backend go through one :class:`InferenceQueue`, so
at most one remote request is in flight at any time no matter how many
callers are waiting.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple


class InferenceTimeout(RuntimeError):
    """Raised when a queued call does not resolve within its time limit."""


_Job = Tuple[Callable[..., Awaitable[Any]], tuple, Optional[float], "asyncio.Future[Any]"]


class InferenceQueue:
    def __init__(self, timeout_sec: Optional[float] = None, logger: Optional[logging.Logger] = None) -> None:
        self._timeout = timeout_sec if timeout_sec and timeout_sec > 0 else None
        self._logger = logger or logging.getLogger(__name__)
        self._pending: Deque[_Job] = deque()
        self._worker: Optional[asyncio.Task] = None
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def submit(self, fn: Callable[..., Awaitable[Any]], *args: Any, timeout: Optional[float] = None) -> Any:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        self._pending.append((fn, args, timeout if timeout is not None else self._timeout, future))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
        return await future

    async def _drain(self) -> None:
        while self._pending:
            fn, args, timeout, future = self._pending.popleft()
            if future.cancelled():
                continue
            self._in_flight += 1
            try:
                result = await asyncio.wait_for(fn(*args), timeout=timeout)
            except asyncio.TimeoutError:
                self._logger.warning("Inference call %s timed out after %ss", getattr(fn, "__name__", fn), timeout)
                if not future.done():
                    future.set_exception(InferenceTimeout(f"Inference call timed out after {timeout}s"))
            except Exception as error:
                if not future.done():
                    future.set_exception(error)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._in_flight -= 1


__all__ = ["InferenceQueue", "InferenceTimeout"]
