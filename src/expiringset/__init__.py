from expiringset.config import ExpiringSetOptions, options_from_env, resolve_options
from expiringset.dedup import Deduper
from expiringset.engine.expiring_set import ExpiringSet, ExpiringSetListener

__all__ = [
    "ExpiringSet",
    "ExpiringSetListener",
    "ExpiringSetOptions",
    "Deduper",
    "options_from_env",
    "resolve_options",
]
