"""Quantity checks carried across workflow stages.

Each transition that records a quantity is bounded by the quantity recorded
at the previous stage: issued <= approved and acknowledged <= issued. The
bound is inclusive and zero is never a valid quantity.
"""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation

from siteflow.errors import ValidationError


MUST_BE_POSITIVE = "must be greater than 0"


def coerce_quantity(value) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            return float(value)
        except OverflowError:
            return None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            return float(Decimal(raw))
        except (InvalidOperation, ValueError):
            return None
    return None


def quantity_error(candidate, ceiling, stage: str | None = None) -> str | None:
    quantity = coerce_quantity(candidate)
    if quantity is None or not math.isfinite(quantity) or quantity <= 0:
        return MUST_BE_POSITIVE
    if ceiling is not None and quantity > float(ceiling):
        return f"cannot exceed {stage or 'previous'} quantity"
    return None


def require_quantity(field: str, value, ceiling, stage: str | None = None) -> float:
    reason = quantity_error(value, ceiling, stage)
    if reason is not None:
        raise ValidationError(
            details=f"{field} {reason}",
            payload={"field": field},
        )
    return coerce_quantity(value)
