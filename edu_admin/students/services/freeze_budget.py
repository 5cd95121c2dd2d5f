"""Freeze-day budget arithmetic.

The budget only ever shrinks here: a freeze consumes days up front and an
unfreeze (early or not) gives nothing back.
"""
from datetime import date, timedelta
from typing import Any, Dict, Optional

from edu_admin.core.exceptions import InvalidInputError, NotEnoughBudgetError


def validate_freeze_days(days: Any, available: int) -> int:
    """Return ``days`` if ``1 <= days <= available``, raise otherwise."""
    # bool is an int subclass, but True is not "one day"
    if isinstance(days, bool) or not isinstance(days, int):
        raise InvalidInputError(
            "Freeze days must be an integer", {"field": "days", "value": str(days)}
        )

    if days <= 0:
        raise InvalidInputError(
            "Freeze days must be positive", {"field": "days", "value": days}
        )

    available = available or 0
    if days > available:
        raise NotEnoughBudgetError(requested=days, available=available)

    return days


def apply_freeze(record, days: Any, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Changes that consume ``days`` from the record's freeze budget.

    Returns ``freeze_days`` and ``freeze_end_date``; the caller decides when
    (and whether) to persist them.
    """
    days = validate_freeze_days(days, record.freeze_days)
    today = today or date.today()

    return {
        "freeze_days": record.freeze_days - days,
        "freeze_end_date": today + timedelta(days=days),
    }


def clear_freeze() -> Dict[str, Any]:
    return {"freeze_end_date": None}
