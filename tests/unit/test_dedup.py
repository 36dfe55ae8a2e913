from expiringset import Deduper
from tests.helpers.fake_loop import FakeLoop


def test_check_and_mark_suppresses_within_window():
    loop = FakeLoop()
    d = Deduper(ttl_ms=30, gc_ms=10, loop=loop, clock=loop.clock)
    assert d.check_and_mark("alert:NVDA") is True
    assert d.check_and_mark("alert:NVDA") is False
    assert d.seen_recently("alert:NVDA")
    assert d.suppressed == 1


def test_window_expires_and_is_reclaimed():
    loop = FakeLoop()
    d = Deduper(ttl_ms=30, gc_ms=10, loop=loop, clock=loop.clock)
    d.mark("k")
    loop.advance(50)
    assert not d.seen_recently("k")
    assert len(d) == 0
    assert d.check_and_mark("k") is True


def test_close_disarms():
    loop = FakeLoop()
    d = Deduper(ttl_ms=30, gc_ms=10, loop=loop, clock=loop.clock)
    d.mark("a")
    d.mark("b")
    d.close()
    assert len(d) == 0
    assert loop.pending() == []
