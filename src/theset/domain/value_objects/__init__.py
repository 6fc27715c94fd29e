"""Domain value objects."""

from theset.domain.value_objects.freshness import (
    NATURAL_KEYS,
    FreshnessPolicy,
    ensure_utc,
    has_stronger_data,
)

__all__ = ["NATURAL_KEYS", "FreshnessPolicy", "ensure_utc", "has_stronger_data"]
