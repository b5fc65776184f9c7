"""
Catalog domain.

Entity model, availability state machine, field merge rules,
popularity scoring and refresh scheduling.
"""

from catalog_mirror.catalog.availability import (
    AvailabilityVerdict,
    evaluate_availability,
    evaluate_experience_availability,
)
from catalog_mirror.catalog.manager import RefreshScheduler
from catalog_mirror.catalog.models import (
    UNKNOWN_ARTIST,
    UNKNOWN_TITLE,
    AvailabilityReason,
    AvailabilityState,
    CatalogEntity,
    Collection,
)
from catalog_mirror.catalog.scoring import compute_popularity_score

__all__ = [
    "UNKNOWN_ARTIST",
    "UNKNOWN_TITLE",
    "AvailabilityReason",
    "AvailabilityState",
    "AvailabilityVerdict",
    "CatalogEntity",
    "Collection",
    "RefreshScheduler",
    "compute_popularity_score",
    "evaluate_availability",
    "evaluate_experience_availability",
]
