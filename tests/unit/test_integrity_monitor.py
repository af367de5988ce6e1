"""
Unit tests for integrity signals and the monitor.
"""

from src.quiz.integrity import IntegrityMonitor, IntegritySignal, SignalBus


class TestSignalBus:
    def test_emit_reaches_subscribers(self):
        bus = SignalBus()
        seen = []
        bus.subscribe(IntegritySignal.WINDOW_BLUR, seen.append)

        bus.emit(IntegritySignal.WINDOW_BLUR)
        bus.emit(IntegritySignal.PAGE_HIDDEN)

        assert seen == [IntegritySignal.WINDOW_BLUR]

    def test_unsubscribe_unknown_handler(self):
        bus = SignalBus()
        bus.unsubscribe(IntegritySignal.WINDOW_BLUR, print)
        assert bus.listener_count(IntegritySignal.WINDOW_BLUR) == 0

    def test_handler_may_unsubscribe_during_emit(self):
        bus = SignalBus()
        seen = []

        def once(signal):
            seen.append(signal)
            bus.unsubscribe(signal, once)

        bus.subscribe(IntegritySignal.PAGE_HIDDEN, once)
        bus.subscribe(IntegritySignal.PAGE_HIDDEN, seen.append)
        bus.emit(IntegritySignal.PAGE_HIDDEN)
        bus.emit(IntegritySignal.PAGE_HIDDEN)

        assert len(seen) == 3


class TestIntegrityMonitor:
    def test_counts_both_signals_without_dedup(self):
        bus = SignalBus()
        seen = []
        monitor = IntegrityMonitor(bus, seen.append)
        monitor.start()

        bus.emit(IntegritySignal.PAGE_HIDDEN)
        bus.emit(IntegritySignal.WINDOW_BLUR)

        assert seen == [IntegritySignal.PAGE_HIDDEN, IntegritySignal.WINDOW_BLUR]

    def test_ignores_signals_before_start_and_after_stop(self):
        bus = SignalBus()
        seen = []
        monitor = IntegrityMonitor(bus, seen.append)

        bus.emit(IntegritySignal.WINDOW_BLUR)
        monitor.start()
        monitor.stop()
        bus.emit(IntegritySignal.WINDOW_BLUR)

        assert seen == []
        assert not monitor.active

    def test_start_stop_idempotent(self):
        bus = SignalBus()
        monitor = IntegrityMonitor(bus, lambda s: None)

        monitor.start()
        monitor.start()
        assert bus.listener_count(IntegritySignal.PAGE_HIDDEN) == 1

        monitor.stop()
        monitor.stop()
        assert bus.listener_count(IntegritySignal.PAGE_HIDDEN) == 0
        assert bus.listener_count(IntegritySignal.WINDOW_BLUR) == 0

    def test_without_source(self):
        monitor = IntegrityMonitor(None, lambda s: None)
        monitor.start()
        assert monitor.active
        monitor.stop()
        assert not monitor.active
