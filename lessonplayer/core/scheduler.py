"""Timers and animation frames for step runtimes.

Three primitives mirror what a browser step uses: one-shot timeouts,
recurring intervals and per-frame callbacks. `AsyncioScheduler` drives them
from a running event loop; `ManualScheduler` runs on a virtual clock so game
loops can be stepped deterministically. `ScopedScheduler` tracks everything a
single step schedules so teardown can cancel it in one call.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_FRAME_MS = 1000 / 60

FrameCallback = Callable[[float], None]


class Handle:
    """A cancellable scheduled callback."""

    __slots__ = ("kind", "_cancel", "active")

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.active = True
        self._cancel: Callable[[], None] | None = None

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._cancel is not None:
            self._cancel()
            self._cancel = None


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Handle: ...

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> Handle: ...

    def request_frame(self, callback: FrameCallback) -> Handle: ...


class ManualScheduler:
    """Virtual-clock scheduler. Nothing runs until `advance()` is called."""

    def __init__(self, *, frame_ms: float = DEFAULT_FRAME_MS) -> None:
        self.frame_ms = frame_ms
        self._now = 0.0
        self._seq = itertools.count()
        self._queue: list[tuple[float, int, Handle, Callable[[], None]]] = []
        self.fired = 0

    def now(self) -> float:
        return self._now

    def _push(self, when: float, handle: Handle, fn: Callable[[], None]) -> None:
        heapq.heappush(self._queue, (when, next(self._seq), handle, fn))

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Handle:
        handle = Handle("timeout")

        def _run() -> None:
            handle.active = False
            callback()

        self._push(self._now + max(0.0, delay_ms), handle, _run)
        return handle

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> Handle:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        handle = Handle("interval")

        def _run() -> None:
            callback()
            if handle.active:
                self._push(self._now + interval_ms, handle, _run)

        self._push(self._now + interval_ms, handle, _run)
        return handle

    def request_frame(self, callback: FrameCallback) -> Handle:
        handle = Handle("frame")

        def _run() -> None:
            handle.active = False
            callback(self._now)

        self._push(self._now + self.frame_ms, handle, _run)
        return handle

    def pending(self) -> int:
        return sum(1 for _, _, h, _ in self._queue if h.active)

    def advance(self, ms: float) -> int:
        """Run everything due within the next `ms` milliseconds, in time order."""

        deadline = self._now + ms
        ran = 0
        while self._queue and self._queue[0][0] <= deadline:
            when, _, handle, fn = heapq.heappop(self._queue)
            if not handle.active:
                continue
            self._now = max(self._now, when)
            fn()
            ran += 1
        self._now = deadline
        self.fired += ran
        return ran

    def advance_frames(self, frames: int) -> int:
        return self.advance(self.frame_ms * frames)


class AsyncioScheduler:
    """Scheduler backed by the running asyncio loop (frames are fixed-rate timers)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None, *, frame_ms: float = DEFAULT_FRAME_MS) -> None:
        self._loop = loop
        self.frame_ms = frame_ms

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Handle:
        handle = Handle("timeout")

        def _run() -> None:
            if handle.active:
                handle.active = False
                callback()

        timer = self.loop.call_later(max(0.0, delay_ms) / 1000.0, _run)
        handle._cancel = timer.cancel
        return handle

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> Handle:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        handle = Handle("interval")

        def _run() -> None:
            if not handle.active:
                return
            callback()
            if handle.active:
                nxt = self.loop.call_later(interval_ms / 1000.0, _run)
                handle._cancel = nxt.cancel

        first = self.loop.call_later(interval_ms / 1000.0, _run)
        handle._cancel = first.cancel
        return handle

    def request_frame(self, callback: FrameCallback) -> Handle:
        handle = Handle("frame")

        def _run() -> None:
            if handle.active:
                handle.active = False
                callback(self.now())

        timer = self.loop.call_later(self.frame_ms / 1000.0, _run)
        handle._cancel = timer.cancel
        return handle


class ScopedScheduler:
    """Records every handle created through it; `dispose()` cancels the survivors.

    With `on_error` set, an exception raised by a scheduled callback is handed
    to it instead of propagating into the parent scheduler or event loop.
    """

    def __init__(self, parent: Scheduler, *, on_error: Callable[[Exception], None] | None = None) -> None:
        self._parent = parent
        self._on_error = on_error
        self._handles: list[Handle] = []
        self._disposed = False

    def now(self) -> float:
        return self._parent.now()

    def _track(self, handle: Handle) -> Handle:
        if self._disposed:
            # A step scheduling after its own teardown gets a dead handle.
            handle.cancel()
            return handle
        self._handles = [h for h in self._handles if h.active]
        self._handles.append(handle)
        return handle

    def _guarded(self, fn: Callable[..., None]) -> Callable[..., None]:
        on_error = self._on_error
        if on_error is None:
            return fn

        def _run(*args: float) -> None:
            try:
                fn(*args)
            except Exception as e:
                on_error(e)

        return _run

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Handle:
        return self._track(self._parent.call_later(delay_ms, self._guarded(callback)))

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> Handle:
        return self._track(self._parent.call_every(interval_ms, self._guarded(callback)))

    def request_frame(self, callback: FrameCallback) -> Handle:
        return self._track(self._parent.request_frame(self._guarded(callback)))

    def active_count(self) -> int:
        return sum(1 for h in self._handles if h.active)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> int:
        leaked = self.active_count()
        if leaked:
            logger.debug("Cancelling %d scheduled callback(s) left by a step", leaked)
        for h in self._handles:
            h.cancel()
        self._handles.clear()
        self._disposed = True
        return leaked
