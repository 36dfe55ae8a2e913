from __future__ import annotations

from typing import Any, Callable, Hashable, Optional

import structlog

from expiringset.config import ExpiringSetOptions
from expiringset.engine.expiring_set import ExpiringSet

log = structlog.get_logger("dedup")


class Deduper:
    """
    Dedupe window: a key counts as "seen" for ttl_ms after it was last marked.
    Expired keys are reclaimed by the underlying ExpiringSet sweep, so the
    window never needs manual cleanup.
    """
    def __init__(
        self,
        ttl_ms: int,
        gc_ms: int = 1000,
        *,
        loop: Optional[Any] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._seen: ExpiringSet[Hashable] = ExpiringSet(
            options=ExpiringSetOptions(ttl=ttl_ms, gc=gc_ms),
            loop=loop,
            clock=clock,
        )
        self.suppressed = 0

    def seen_recently(self, key: Hashable) -> bool:
        return self._seen.has(key)

    def mark(self, key: Hashable) -> None:
        self._seen.add(key)

    def check_and_mark(self, key: Hashable) -> bool:
        """True if key is new in the window (and is now marked), False if it is a duplicate."""
        if self._seen.has(key):
            self.suppressed += 1
            log.debug("dedup_suppressed", key=str(key)[:200], suppressed=self.suppressed)
            return False
        self._seen.add(key)
        return True

    def close(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)
