from __future__ import annotations

import time

# --- wall clock ---

def utc_now_ms() -> int:
    """Unix epoch milliseconds (int)."""
    return time.time_ns() // 1_000_000

def ms_to_s(ms: int | float) -> float:
    """Milliseconds -> seconds, for loop.call_later()."""
    return ms / 1000.0

# --- bucket math ---

def bucket_id(now_ms: int, gc_ms: int) -> int:
    """Coarse time slot a value inserted at now_ms lands in."""
    return now_ms // gc_ms

def expiry_threshold(now_ms: int, ttl_ms: int, gc_ms: int) -> int:
    """
    Expiry cut-off bucket at now_ms.
    A sweep reclaims buckets with id <= threshold, while has() still
    accepts id == threshold (the boundary bucket is swept on the next tick).
    """
    return (now_ms - ttl_ms) // gc_ms
