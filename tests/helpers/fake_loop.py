import heapq
import itertools


class FakeHandle:
    def __init__(self, loop, when_ms, callback):
        self.loop = loop
        self.when_ms = when_ms
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """
    Minimal stand-in for the asyncio loop timer API used by ExpiringSet.
    Time only moves when the test calls advance(); `clock` is the matching
    millisecond clock to pass as ExpiringSet(clock=...).
    """
    def __init__(self, start_ms: int = 1_000_000):
        self.now_ms = start_ms
        self.closed = False
        self.scheduled = []   # every handle ever created, for assertions
        self._heap = []
        self._seq = itertools.count()

    def clock(self) -> int:
        return self.now_ms

    def is_closed(self) -> bool:
        return self.closed

    def call_later(self, delay_s, callback):
        h = FakeHandle(self, self.now_ms + int(round(delay_s * 1000)), callback)
        self.scheduled.append(h)
        heapq.heappush(self._heap, (h.when_ms, next(self._seq), h))
        return h

    def pending(self):
        return [h for (_, _, h) in self._heap if not h.cancelled]

    def advance(self, ms: int) -> None:
        """Move time forward, firing due callbacks in order (including ones they schedule)."""
        target = self.now_ms + ms
        while self._heap and self._heap[0][0] <= target:
            when, _, h = heapq.heappop(self._heap)
            if h.cancelled:
                continue
            self.now_ms = max(self.now_ms, when)
            h.callback()
        self.now_ms = target
