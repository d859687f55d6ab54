"""
Indicator normalizer: turns a stored analysis results blob into a uniform
list of ``IndicatorReading`` records.

Accepted shapes
---------------
1. Array of reading-like objects::

       [{"name": "Glucose", "value": 6.2, "unit": "mmol/L",
         "referenceMin": 3.3, "referenceMax": 5.5, "isNormal": false}, ...]

2. Mapping of ``name -> values`` (legacy ``normal`` key honoured)::

       {"Glucose": {"value": 6.2, "unit": "mmol/L", "min": 3.3, "max": 5.5,
                    "normal": false}}

3. Stored document with an ``indicators`` array (shape 1 inside)::

       {"indicators": [...], "findings": {...}}

Any of these may arrive as JSON text. ``isNormal`` defaults to ``True``.
Numeric fields are coerced (``"6,2"`` → ``6.2``); an entry whose value or a
present reference bound cannot be coerced is dropped, never fatal.

``normalize()`` never raises: ``None`` or unparseable input yields ``[]``.
``parse_results()`` is the strict variant the evaluator uses so it can log
which analysis was skipped.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import ValidationError

from selfcare_recommender.errors import ParseError
from selfcare_recommender.models.indicator import IndicatorReading

logger = logging.getLogger(__name__)

_NAME_KEYS      = ("name", "Name")
_VALUE_KEYS     = ("value", "Value")
_UNIT_KEYS      = ("unit", "Unit")
_REF_MIN_KEYS   = ("referenceMin", "reference_min", "ReferenceMin", "min")
_REF_MAX_KEYS   = ("referenceMax", "reference_max", "ReferenceMax", "max")
_IS_NORMAL_KEYS = ("isNormal", "is_normal", "normal", "Normal")

_TRUE_STRINGS  = frozenset({"true", "1", "yes", "y", "норма", "normal"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "n", "abnormal"})


class _Uncoercible(ValueError):
    """A present numeric field could not be turned into a finite float."""


def normalize(results_blob: Any) -> list[IndicatorReading]:
    """Extract readings from any supported results shape.

    Returns ``[]`` for ``None``, empty, or unparseable input — callers treat
    "no indicators" as "no rules apply", never as an error.
    """
    try:
        return parse_results(results_blob)
    except ParseError as exc:
        logger.debug("Results blob not parseable, treating as empty: %s", exc)
        return []


def parse_results(
    results_blob: Any,
    analysis_id: Optional[int] = None,
) -> list[IndicatorReading]:
    """Strict variant of ``normalize()``.

    Args:
        results_blob: Raw results as stored (JSON text, list, or mapping).
        analysis_id:  Used only to label a ``ParseError``.

    Returns:
        Readings in source order; entries that fail coercion are dropped.

    Raises:
        ParseError: If the blob is text that is not valid JSON, or decodes to
            something other than an array or an object.
    """
    if results_blob is None:
        return []

    data = results_blob
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8", errors="replace")
    if isinstance(data, str):
        if not data.strip():
            return []
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise ParseError(f"results are not valid JSON: {exc}", analysis_id) from exc

    if data is None:
        return []
    if isinstance(data, Mapping):
        indicators = data.get("indicators")
        if isinstance(indicators, list):
            return _from_array(indicators)
        return _from_mapping(data)
    if isinstance(data, list):
        return _from_array(data)

    raise ParseError(
        f"results must be an array or an object, got {type(data).__name__}",
        analysis_id,
    )


# ── Shape handlers ─────────────────────────────────────────────────────────────

def _from_array(items: list[Any]) -> list[IndicatorReading]:
    readings: list[IndicatorReading] = []
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            logger.debug("Dropping indicator #%d: not an object", index)
            continue
        reading = _build_reading(_first(item, _NAME_KEYS), item)
        if reading is not None:
            readings.append(reading)
    return readings


def _from_mapping(data: Mapping[str, Any]) -> list[IndicatorReading]:
    readings: list[IndicatorReading] = []
    for name, entry in data.items():
        fields = entry if isinstance(entry, Mapping) else {"value": entry}
        reading = _build_reading(name, fields)
        if reading is not None:
            readings.append(reading)
    return readings


def _build_reading(name: Any, fields: Mapping[str, Any]) -> Optional[IndicatorReading]:
    if name is None or not str(name).strip():
        logger.debug("Dropping indicator without a name: %r", dict(fields))
        return None
    label = str(name).strip()

    try:
        value = _to_float(_first(fields, _VALUE_KEYS))
        reference_min = _to_float(_first(fields, _REF_MIN_KEYS))
        reference_max = _to_float(_first(fields, _REF_MAX_KEYS))
    except _Uncoercible as exc:
        logger.debug("Dropping indicator '%s': %s", label, exc)
        return None

    if value is None:
        logger.debug("Dropping indicator '%s': missing value", label)
        return None

    unit = _first(fields, _UNIT_KEYS)
    try:
        return IndicatorReading(
            name=label,
            value=value,
            unit="" if unit is None else str(unit),
            reference_min=reference_min,
            reference_max=reference_max,
            is_normal=_to_bool(_first(fields, _IS_NORMAL_KEYS), default=True),
        )
    except ValidationError as exc:
        logger.debug("Dropping indicator '%s': %s", label, exc)
        return None


# ── Coercion helpers ───────────────────────────────────────────────────────────

def _first(fields: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    """Return the value of the first key present (``None`` values count as absent)."""
    for key in keys:
        value = fields.get(key)
        if value is not None:
            return value
    return None


def _to_float(raw: Any) -> Optional[float]:
    """Coerce a numeric-ish value; ``None``/``""`` mean absent."""
    if raw is None or isinstance(raw, bool):
        if isinstance(raw, bool):
            raise _Uncoercible(f"boolean is not a number: {raw!r}")
        return None
    if isinstance(raw, (int, float)):
        number = float(raw)
    elif isinstance(raw, str):
        text = raw.strip().replace(",", ".").replace(" ", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            raise _Uncoercible(f"not a number: {raw!r}") from None
    else:
        raise _Uncoercible(f"not a number: {raw!r}")
    if not math.isfinite(number):
        raise _Uncoercible(f"not finite: {raw!r}")
    return number


def _to_bool(raw: Any, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return raw != 0
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    return default
