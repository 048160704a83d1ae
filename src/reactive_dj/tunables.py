"""Tunable option models that clamp bad values instead of rejecting them.

A misconfigured knob (negative duration, threshold outside 0-100, fraction
outside 0-1) must never take the engine down.  Every option model derives
from :class:`Tunables` and declares the accepted range per field in
``field_bounds``; a value outside its range is replaced by the field's
declared default and a warning is logged.
"""

from __future__ import annotations

from typing import Any, ClassVar

import structlog
from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

logger = structlog.get_logger(__name__)

Bounds = tuple[float | None, float | None]

# Commonly used ranges
NON_NEGATIVE: Bounds = (0.0, None)
POSITIVE: Bounds = (1e-9, None)
UNIT_INTERVAL: Bounds = (0.0, 1.0)
SCORE_RANGE: Bounds = (0.0, 100.0)


def clamp_to_default(model: type[BaseModel], name: str, value: Any, bounds: Bounds | None) -> Any:
    """Return *value*, or the declared default of *name* when out of *bounds*."""
    if bounds is None or value is None or isinstance(value, bool):
        return value
    lo, hi = bounds
    if (lo is not None and value < lo) or (hi is not None and value > hi):
        default = model.model_fields[name].default
        logger.warning(
            "tunables.out_of_range",
            model=model.__name__,
            field=name,
            value=value,
            replaced_with=default,
        )
        return default
    return value


class Tunables(BaseModel):
    """Base class for frozen component option models."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    field_bounds: ClassVar[dict[str, Bounds]] = {}

    @field_validator("*", mode="after")
    @classmethod
    def clamp_out_of_range(cls, value: Any, info: ValidationInfo) -> Any:
        return clamp_to_default(cls, info.field_name, value, cls.field_bounds.get(info.field_name))
