from __future__ import annotations

import asyncio
from collections.abc import MutableSet, Set as AbstractSet
from typing import Any, Callable, Generic, Hashable, Iterable, Iterator, Optional, TypeVar

import structlog

from expiringset.config import ExpiringSetOptions, OptionsLike, resolve_options
from expiringset.utils.time import bucket_id, expiry_threshold, ms_to_s, utc_now_ms

log = structlog.get_logger("expiring_set")

T = TypeVar("T", bound=Hashable)

ExpiringSetListener = Callable[[list], None]


class ExpiringSet(MutableSet, Generic[T]):
    """
    Set whose members expire `ttl` ms after their last add().

    Values are grouped into coarse buckets of width `gc` ms (bucket id =
    floor(now / gc)), so there is no per-value timer. A single timer is armed
    on the host loop while the set is non-empty; each time it fires, every
    bucket at or before floor((now - ttl) / gc) is dropped and the reclaimed
    values are handed to listeners in one batch.

    Two views of expiry:
      - has() / iteration are logical: a value past its ttl is gone even if
        the sweep hasn't run yet.
      - size / len() are physical: they count what is still stored.

    Usage:
        seen = ExpiringSet(options={"ttl": 30_000, "gc": 1_000})
        seen.listen(lambda values: print("expired", values))
        seen.add("nonce-1")
        "nonce-1" in seen   # True until ~30s later

    Must be used from a single asyncio loop thread. `loop` can be any object
    with call_later(delay_s, cb) -> handle.cancel(); by default the running
    asyncio loop is picked up when the first timer is armed.
    """

    __slots__ = (
        "options", "_entries", "_buckets", "_listeners", "_gc_timer", "_gc_loop", "_loop", "_clock",
    )

    def __init__(
        self,
        values: Optional[Iterable[T]] = None,
        options: OptionsLike = None,
        *,
        loop: Optional[Any] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.options: ExpiringSetOptions = resolve_options(options)
        self._entries: dict[T, int] = {}        # value -> bucket id
        self._buckets: dict[int, dict[T, None]] = {}  # bucket id -> values in add order, ascending ids
        self._listeners: list[ExpiringSetListener] = []
        self._gc_timer: Optional[Any] = None
        self._gc_loop: Optional[Any] = None      # loop the pending timer was armed on
        self._loop = loop
        self._clock = clock or utc_now_ms

        if values:
            for v in values:
                self.add(v)

    # ---------------------------- public API ---------------------------- #

    @property
    def size(self) -> int:
        """Physically stored values (may include expired-but-unswept ones)."""
        return len(self._entries)

    def add(self, value: T) -> "ExpiringSet[T]":
        if self._gc_timer is None or self._timer_is_stale():
            self._timer_loop()  # raises before mutating when no loop is available
        bid = bucket_id(self._clock(), self.options.gc)

        current = self._entries.get(value)
        if current is not None and current != bid:
            self._drop_from_bucket(current, value)

        bucket = self._buckets.get(bid)
        if bucket is None:
            bucket = {}
            self._buckets[bid] = bucket
        bucket[value] = None
        self._entries[value] = bid

        self._schedule_gc()
        return self

    def delete(self, value: T) -> bool:
        bid = self._entries.pop(value, None)
        if bid is None:
            return False
        self._drop_from_bucket(bid, value)
        self._schedule_gc()
        return True

    def discard(self, value: T) -> None:
        self.delete(value)

    def clear(self) -> None:
        self._entries.clear()
        self._buckets.clear()
        self._schedule_gc()

    def has(self, value: T) -> bool:
        bid = self._entries.get(value)
        if bid is None:
            return False
        return bid >= self._threshold()

    def values(self) -> Iterator[T]:
        """Lazily yield values that are not logically expired."""
        threshold = self._threshold()
        for value, bid in list(self._entries.items()):
            if bid < threshold:
                continue
            yield value

    def for_each(self, callback: Callable[[T, T, "ExpiringSet[T]"], Any]) -> None:
        """Call callback(value, value, self) for every live value."""
        for value in self.values():
            callback(value, value, self)

    def listen(self, callback: ExpiringSetListener) -> None:
        """Register callback(values) to receive each non-empty sweep batch."""
        self._listeners.append(callback)

    # ------------------------- MutableSet protocol ------------------------ #

    def __contains__(self, value: object) -> bool:
        try:
            return self.has(value)  # type: ignore[arg-type]
        except TypeError:
            # unhashable values can't be members
            return False

    def __iter__(self) -> Iterator[T]:
        return self.values()

    def __len__(self) -> int:
        return self.size

    @classmethod
    def _from_iterable(cls, it: Iterable[T]) -> set:
        # operators (&, |, -, ^) return a plain snapshot set, not a new timed set
        return set(it)

    def _live(self) -> set:
        return set(self.values())

    # comparisons use live members, len() counts unswept ones too
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AbstractSet):
            return NotImplemented
        return self._live() == set(other)

    def __le__(self, other: AbstractSet) -> bool:
        if not isinstance(other, AbstractSet):
            return NotImplemented
        return self._live() <= set(other)

    def __lt__(self, other: AbstractSet) -> bool:
        if not isinstance(other, AbstractSet):
            return NotImplemented
        return self._live() < set(other)

    def __ge__(self, other: AbstractSet) -> bool:
        if not isinstance(other, AbstractSet):
            return NotImplemented
        return self._live() >= set(other)

    def __gt__(self, other: AbstractSet) -> bool:
        if not isinstance(other, AbstractSet):
            return NotImplemented
        return self._live() > set(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(size={self.size}, buckets={len(self._buckets)}, "
            f"ttl={self.options.ttl}, gc={self.options.gc})"
        )

    # --------------------------- core internals ------------------------- #

    def _threshold(self) -> int:
        return expiry_threshold(self._clock(), self.options.ttl, self.options.gc)

    def _timer_loop(self) -> Any:
        return self._loop or asyncio.get_running_loop()

    def _timer_is_stale(self) -> bool:
        """True if the pending timer sits on a loop that has been closed since."""
        is_closed = getattr(self._gc_loop, "is_closed", None)
        return self._gc_timer is not None and is_closed is not None and is_closed()

    def _drop_from_bucket(self, bid: int, value: T) -> None:
        bucket = self._buckets[bid]
        bucket.pop(value, None)
        if not bucket:
            del self._buckets[bid]

    def _schedule_gc(self) -> None:
        """Keep exactly one timer armed while non-empty, none while empty."""
        if not self._entries:
            if self._gc_timer is not None:
                self._gc_timer.cancel()
                self._gc_timer = None
                self._gc_loop = None
                log.debug("expiring_set_gc_disarmed")
            return
        if self._gc_timer is not None:
            if not self._timer_is_stale():
                return
            log.debug("expiring_set_gc_loop_closed")
            self._gc_timer = None

        loop = self._timer_loop()
        self._gc_timer = loop.call_later(ms_to_s(self.options.gc), self._perform_gc)
        self._gc_loop = loop
        log.debug("expiring_set_gc_armed", gc_ms=self.options.gc, size=len(self._entries))

    def _perform_gc(self) -> None:
        self._gc_timer = None
        self._gc_loop = None

        threshold = self._threshold()
        values: list[T] = []
        for bid in list(self._buckets):
            if bid > threshold:
                continue
            values.extend(self._buckets.pop(bid))

        for value in values:
            del self._entries[value]

        self._schedule_gc()

        log.debug(
            "expiring_set_gc_sweep",
            reclaimed=len(values),
            remaining=len(self._entries),
            threshold=threshold,
        )
        if not values:
            return

        for listener in list(self._listeners):
            try:
                listener(list(values))
            except Exception as e:
                log.warning("expiring_set_listener_failed", err=str(e), listener=repr(listener))
