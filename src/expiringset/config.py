from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional, Union

from dotenv import load_dotenv


@dataclass(slots=True)
class ExpiringSetOptions:
    ttl: int = 5000  # ms a value stays present after its last add()
    gc: int = 1000   # ms between sweeps; also the bucket width

    def validate(self) -> "ExpiringSetOptions":
        for name in ("ttl", "gc"):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, int):
                raise ValueError(f"{name} must be an integer number of milliseconds, got {v!r}")
            if v <= 0:
                raise ValueError(f"{name} must be > 0, got {v}")
        return self


OptionsLike = Union[ExpiringSetOptions, Mapping[str, int], None]

_OPTION_NAMES = frozenset(f.name for f in fields(ExpiringSetOptions))


def resolve_options(options: OptionsLike = None) -> ExpiringSetOptions:
    """
    Normalize constructor options.
    - None -> defaults
    - ExpiringSetOptions -> copied as-is
    - partial mapping, e.g. {"ttl": 30} -> merged over defaults
    """
    if options is None:
        return ExpiringSetOptions().validate()
    if isinstance(options, ExpiringSetOptions):
        return replace(options).validate()
    unknown = set(options) - _OPTION_NAMES
    if unknown:
        raise ValueError(f"unknown option(s): {', '.join(sorted(unknown))}")
    return ExpiringSetOptions(**dict(options)).validate()


def _int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def options_from_env(prefix: str = "EXPIRINGSET_") -> ExpiringSetOptions:
    """
    Build options from the environment (and a .env file if present):
      <prefix>TTL_MS, <prefix>GC_MS
    Missing variables fall back to defaults.
    """
    load_dotenv()
    base = ExpiringSetOptions()
    ttl = _int_env(f"{prefix}TTL_MS")
    gc = _int_env(f"{prefix}GC_MS")
    return ExpiringSetOptions(
        ttl=base.ttl if ttl is None else ttl,
        gc=base.gc if gc is None else gc,
    ).validate()
