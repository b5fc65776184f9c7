"""
Helpers shared by the response contracts.
"""

from typing import Any, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def clean_cursor(value: Any) -> str | None:
    """Continuation token, or None when absent or blank (= exhausted)."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def as_dict_list(value: Any) -> list[dict[str, Any]]:
    """Keep only the object entries of an array field."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def validate_items(model: type[M], items: list[dict[str, Any]]) -> list[tuple[dict[str, Any], M]]:
    """
    Validate array entries one at a time.

    A malformed entry is dropped instead of failing the whole page.

    Returns:
        (raw entry, parsed model) pairs for every valid entry
    """
    parsed = []
    for item in items:
        try:
            parsed.append((item, model.model_validate(item)))
        except PydanticValidationError as e:
            logger.debug("Dropping malformed entry", model=model.__name__, errors=e.error_count())
    return parsed
