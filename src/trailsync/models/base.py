"""
Base pydantic model and common utilities for trail sync models.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DomainModel(BaseModel):
    """
    Base class for all trail domain models.

    Instances are frozen: every change produces a new object via
    ``model_copy(update=...)`` so consumers can detect change by identity.
    Field names are snake_case in Python and camelCase on the wire.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        """
        Serialize to the remote service's JSON shape.

        Unset optional fields are dropped so PATCH/POST bodies only carry
        what the caller provided.
        """
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def round_half_up(numerator: int, denominator: int) -> int:
    """
    Integer percentage-style rounding, halves rounded up.

    Examples:
        >>> round_half_up(1, 2)
        1
        >>> round_half_up(1, 3)
        0
    """
    return (2 * numerator + denominator) // (2 * denominator)


def coerce_percentage(value: Any) -> Any:
    """Round fractional percentages (the remote sends decimals like 33.33)."""
    if isinstance(value, float):
        return int(value + 0.5) if value >= 0 else value
    return value
