"""Tranche consistency: the total is always derived from the tranches."""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from edu_admin.core.exceptions import InvalidInputError
from edu_admin.students.models.students import PaymentPlan, PAYMENT_PLAN_TRANCHES

logger = logging.getLogger(__name__)

TRANCHE_AMOUNT_FIELDS = ("tranche1_amount", "tranche2_amount", "tranche3_amount")
AMOUNT_FIELDS = TRANCHE_AMOUNT_FIELDS + ("total_amount", "monthly_payment")

_CENTS = Decimal("0.01")


def _to_amount(field: str, value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInputError(
            f"{field} must be a number", {"field": field, "value": str(value)}
        )
    if not amount.is_finite() or amount < 0:
        raise InvalidInputError(
            f"{field} must be a non-negative amount", {"field": field, "value": str(value)}
        )
    return amount.quantize(_CENTS)


def present_tranches(amounts) -> List[Decimal]:
    return [amount for amount in amounts if amount is not None]


def payment_plan_mismatch(payment_plan: Optional[PaymentPlan], amounts) -> bool:
    """True when the declared plan disagrees with the number of filled tranches."""
    if payment_plan is None:
        return False
    filled = len(present_tranches(amounts))
    if filled == 0:
        return False
    return PAYMENT_PLAN_TRANCHES[PaymentPlan(payment_plan)] != filled


def reconcile_payment(record, patch: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Merge payment fields from ``patch`` onto ``record`` and keep the total consistent.

    When any tranche amount or the total is written, ``total_amount`` becomes
    the sum of the non-null tranches; a total sent alongside is discarded.
    With no tranche left the caller's total (or the stored one) is kept.

    Returns the changes to persist and a list of non-fatal warnings.
    """
    changes: Dict[str, Any] = {}
    warnings: List[str] = []

    for field in AMOUNT_FIELDS:
        if field in patch:
            changes[field] = _to_amount(field, patch[field])

    for field, value in patch.items():
        if field not in changes:
            changes[field] = value

    touched = any(field in patch for field in TRANCHE_AMOUNT_FIELDS + ("total_amount",))

    amounts = [
        changes[field] if field in changes else getattr(record, field)
        for field in TRANCHE_AMOUNT_FIELDS
    ]
    filled = present_tranches(amounts)

    if touched and filled:
        derived = sum(filled, Decimal("0")).quantize(_CENTS)
        supplied = changes.get("total_amount")
        if "total_amount" in patch and supplied is not None and supplied != derived:
            warnings.append(
                f"total_amount {supplied} replaced by the tranche sum {derived}"
            )
        changes["total_amount"] = derived

    payment_plan = changes.get("payment_plan", getattr(record, "payment_plan", None))
    if payment_plan_mismatch(payment_plan, amounts):
        warnings.append(
            f"payment plan {PaymentPlan(payment_plan).value} does not match "
            f"{len(filled)} filled tranche(s)"
        )

    for warning in warnings:
        logger.warning(
            f"Payment inconsistency: {warning}",
            extra={"student_id": str(getattr(record, "id", None)), "category": "payment"},
        )

    return changes, warnings
