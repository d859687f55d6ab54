"""
Normalized lab indicator reading.

``IndicatorReading`` is the uniform record every rule consumes, regardless of
whether the analysis store kept the results as an array, a ``name -> values``
mapping, or a ``{"indicators": [...]}`` document. Produced by
``recommendations.normalizer``; frozen once built.
"""

from __future__ import annotations

import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class IndicatorReading(BaseModel):
    """A single lab value with its reference range and normal/abnormal flag.

    Attributes:
        name: Free-text indicator name as written on the lab report.
        value: Measured value.
        unit: Measurement unit, ``""`` when the report omitted it.
        reference_min: Lower bound of the reference range, if known.
        reference_max: Upper bound of the reference range, if known.
        is_normal: Whether the lab flagged the value as within range.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    value: float
    unit: str = ""
    reference_min: Optional[float] = None
    reference_max: Optional[float] = None
    is_normal: bool = True

    @field_validator("name")
    @classmethod
    def validate_name_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name must not be empty.")
        return v.strip()

    @field_validator("value")
    @classmethod
    def validate_value_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"value must be a finite number, got {v}.")
        return v

    @field_validator("reference_min", "reference_max")
    @classmethod
    def drop_non_finite_bounds(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not math.isfinite(v):
            return None
        return v

    @property
    def is_below_range(self) -> bool:
        """True when the value is strictly below a known ``reference_min``."""
        return self.reference_min is not None and self.value < self.reference_min

    @property
    def is_above_range(self) -> bool:
        """True when the value is strictly above a known ``reference_max``."""
        return self.reference_max is not None and self.value > self.reference_max

    @property
    def range_label(self) -> str:
        """Reference range as ``"min-max"`` for descriptions and metadata."""
        low = "?" if self.reference_min is None else f"{self.reference_min:g}"
        high = "?" if self.reference_max is None else f"{self.reference_max:g}"
        return f"{low}-{high}"
