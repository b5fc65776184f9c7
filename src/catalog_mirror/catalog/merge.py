"""
Field-level merge rules for enrichment.

Candidates arrive in a fixed precedence order. Outside force mode a
fresh value only fills a gap (empty or placeholder); in force mode the
first non-empty candidate wins. An empty candidate never replaces
anything.
"""

from typing import Any

from catalog_mirror.catalog.models import is_placeholder

ENRICHMENT_KEY = "enrichment"


def normalize_text(value: Any) -> str | None:
    """Trimmed string, or None for non-strings and blanks."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_number(value: Any) -> float | None:
    """Numbers and numeric strings; bools and garbage are None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def first_present(*values: Any) -> Any:
    """First value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def pick_text(force: bool, current: str | None, candidates: list[str | None]) -> str | None:
    """
    Choose a replacement text value.

    Returns:
        The value to write, or None to leave the stored value alone
    """
    candidate = next((c for c in (normalize_text(v) for v in candidates) if c), None)
    if candidate is None:
        return None
    if force or is_placeholder(current):
        return candidate
    return None


def pick_number(force: bool, current: float | None, candidate: Any) -> float | None:
    """Numeric counterpart of pick_text."""
    candidate = normalize_number(candidate)
    if candidate is None:
        return None
    if force or current is None:
        return candidate
    return None


def merge_raw_payload(existing: dict[str, Any] | None, enrichment: dict[str, Any]) -> dict[str, Any]:
    """Keep every prior section and set the enrichment section."""
    base = dict(existing) if isinstance(existing, dict) else {}
    base[ENRICHMENT_KEY] = enrichment
    return base
