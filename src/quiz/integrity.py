"""
Integrity Monitor for timed exams.

Watches two environment signals, page hidden and window blur, and
reports each occurrence to the session. The two are not deduplicated:
one switch-away may count once or twice. The count is advisory and
nothing here penalizes it.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Protocol

from loguru import logger


class IntegritySignal(str, Enum):
    """Environment signals that count as an infraction."""

    PAGE_HIDDEN = "page_hidden"
    WINDOW_BLUR = "window_blur"


SignalHandler = Callable[[IntegritySignal], None]


class SignalSource(Protocol):
    """Anything the monitor can subscribe to for focus/visibility signals."""

    def subscribe(self, signal: IntegritySignal, handler: SignalHandler) -> None: ...

    def unsubscribe(self, signal: IntegritySignal, handler: SignalHandler) -> None: ...


class SignalBus:
    """In-process pub/sub for integrity signals."""

    def __init__(self) -> None:
        self._subs: dict[IntegritySignal, list[SignalHandler]] = {}

    def subscribe(self, signal: IntegritySignal, handler: SignalHandler) -> None:
        self._subs.setdefault(signal, []).append(handler)

    def unsubscribe(self, signal: IntegritySignal, handler: SignalHandler) -> None:
        handlers = self._subs.get(signal, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, signal: IntegritySignal) -> None:
        # Copy: a handler may unsubscribe while we iterate
        for handler in list(self._subs.get(signal, [])):
            handler(signal)

    def listener_count(self, signal: IntegritySignal) -> int:
        return len(self._subs.get(signal, []))


class IntegrityMonitor:
    """
    Scoped subscription to integrity signals.

    ``start()`` subscribes, ``stop()`` unsubscribes; both are idempotent.
    Signals arriving while stopped are ignored.
    """

    WATCHED = (IntegritySignal.PAGE_HIDDEN, IntegritySignal.WINDOW_BLUR)

    def __init__(self, source: SignalSource | None, on_infraction: SignalHandler):
        self.source = source
        self.on_infraction = on_infraction
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        if self.source is not None:
            for signal in self.WATCHED:
                self.source.subscribe(signal, self._handle)
        logger.debug("Integrity monitor started")

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        if self.source is not None:
            for signal in self.WATCHED:
                self.source.unsubscribe(signal, self._handle)
        logger.debug("Integrity monitor stopped")

    def _handle(self, signal: IntegritySignal) -> None:
        if self._active:
            self.on_infraction(signal)
