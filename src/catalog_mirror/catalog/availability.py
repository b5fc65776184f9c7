"""
Availability state machine.

unverified -> checking -> ready | not_ready(reason)
"""

from dataclasses import dataclass

from catalog_mirror.catalog.models import AvailabilityReason, AvailabilityState


@dataclass(frozen=True)
class AvailabilityVerdict:
    """Outcome of one availability evaluation."""

    state: AvailabilityState
    reason: AvailabilityReason | None = None

    @property
    def is_ready(self) -> bool:
        return self.state == AvailabilityState.READY


def delivery_ok(status: int | None) -> bool:
    """2xx or a redirect to the CDN both mean the binary is reachable."""
    return status is not None and 200 <= status < 400


def delivery_reason(status: int | None) -> AvailabilityReason:
    if status == 403:
        return AvailabilityReason.DELIVERY_FORBIDDEN
    if status == 404:
        return AvailabilityReason.DELIVERY_NOT_FOUND
    return AvailabilityReason.DELIVERY_UNAVAILABLE


def evaluate_availability(
    *,
    primary_ok: bool,
    asset_type_id: int | None,
    expected_type_id: int,
    delivery_status: int | None,
) -> AvailabilityVerdict:
    """
    Resolve the CHECKING state once all lookups have returned.

    Args:
        primary_ok: Primary metadata lookup returned 2xx with a body
        asset_type_id: Declared type from the first lookup that reported one
        expected_type_id: Type the collection expects (audio for tracks)
        delivery_status: HTTP status of the delivery probe (None if it failed)
    """
    if not primary_ok:
        return AvailabilityVerdict(
            AvailabilityState.NOT_READY, AvailabilityReason.SOURCE_METADATA_UNAVAILABLE
        )
    if asset_type_id != expected_type_id:
        return AvailabilityVerdict(AvailabilityState.NOT_READY, AvailabilityReason.WRONG_TYPE)
    if not delivery_ok(delivery_status):
        return AvailabilityVerdict(AvailabilityState.NOT_READY, delivery_reason(delivery_status))
    return AvailabilityVerdict(AvailabilityState.READY)


def evaluate_experience_availability(
    *,
    found: bool,
    root_place_id: int | None,
) -> AvailabilityVerdict:
    """
    Experiences are ready when the details endpoint knows them and they
    have a start place to link to.
    """
    if not found or not root_place_id:
        return AvailabilityVerdict(
            AvailabilityState.NOT_READY, AvailabilityReason.SOURCE_METADATA_UNAVAILABLE
        )
    return AvailabilityVerdict(AvailabilityState.READY)
