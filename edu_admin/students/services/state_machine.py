"""Enrollment lifecycle transition table.

``TRANSITIONS`` is the only place that says which action may move a record
from one status to another. ``plan_transition`` checks an action against it
and returns the field changes the action implies, without touching storage.
"""
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from edu_admin.core.exceptions import (
    AlreadyConfirmedError,
    AlreadyProcessedError,
    InvalidTransitionError,
    NotActiveError,
    NotFrozenError,
)
from edu_admin.students.models.students import StudentStatus
from edu_admin.students.services.freeze_budget import apply_freeze, clear_freeze


class TransitionAction(str, Enum):
    approve = "approve"
    reject = "reject"
    confirm_contract = "confirmContract"
    freeze = "freeze"
    unfreeze = "unfreeze"
    deactivate = "deactivate"
    reactivate = "reactivate"
    graduate = "graduate"
    expel = "expel"
    refund = "refund"


S = StudentStatus
A = TransitionAction

TRANSITIONS: Dict[tuple, StudentStatus] = {
    (S.PENDING_APPROVAL, A.approve): S.ACTIVE,
    (S.PENDING_APPROVAL, A.reject): S.PENDING_APPROVAL,
    (S.ACTIVE, A.confirm_contract): S.ACTIVE,
    (S.ACTIVE, A.freeze): S.FROZEN,
    (S.FROZEN, A.unfreeze): S.ACTIVE,
    (S.ACTIVE, A.deactivate): S.INACTIVE,
    (S.FROZEN, A.deactivate): S.INACTIVE,
    (S.INACTIVE, A.reactivate): S.ACTIVE,
    (S.ACTIVE, A.graduate): S.GRADUATED,
    (S.ACTIVE, A.expel): S.EXPELLED,
    (S.ACTIVE, A.refund): S.REFUND,
}

# Generic status writes map onto these actions. approve, freeze and
# unfreeze have dedicated operations and are not reachable this way.
STATUS_ACTIONS: Dict[StudentStatus, TransitionAction] = {
    S.INACTIVE: A.deactivate,
    S.GRADUATED: A.graduate,
    S.EXPELLED: A.expel,
    S.REFUND: A.refund,
}


def allowed_actions(status: StudentStatus):
    return [action for (source, action) in TRANSITIONS if source == StudentStatus(status)]


def action_for_status(current: StudentStatus, target: StudentStatus) -> TransitionAction:
    """Action behind a generic ``status`` write, or ``InvalidTransition``."""
    current = StudentStatus(current)
    target = StudentStatus(target)

    if target == S.ACTIVE and current == S.INACTIVE:
        return A.reactivate

    action = STATUS_ACTIONS.get(target)
    if action is None:
        raise InvalidTransitionError(current.value, target.value)
    return action


def _precondition_error(record, action: TransitionAction, current: StudentStatus):
    student_id = str(record.id)
    if action in (A.approve, A.reject):
        return AlreadyProcessedError(student_id, current.value)
    if action in (A.confirm_contract, A.freeze):
        return NotActiveError(student_id, current.value)
    if action == A.unfreeze:
        return NotFrozenError(student_id, current.value)
    return InvalidTransitionError(current.value, action.value)


def plan_transition(
    record,
    action: TransitionAction,
    *,
    days: Any = None,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Validate ``action`` against the record's current state.

    Returns the changes the action implies (always including ``status``).
    Raises the operation-specific error when the action does not apply.
    """
    action = TransitionAction(action)
    current = StudentStatus(record.status)
    now = now or datetime.now(timezone.utc)
    today = today or date.today()

    # A rejected record stays PENDING_APPROVAL but is out of the queue
    if current == S.PENDING_APPROVAL and record.rejected_at is not None:
        raise _precondition_error(record, action, current)

    target = TRANSITIONS.get((current, action))
    if target is None:
        raise _precondition_error(record, action, current)

    changes: Dict[str, Any] = {"status": target}

    if action == A.reject:
        changes["rejected_at"] = now

    elif action == A.confirm_contract:
        if record.contract_confirmed:
            confirmed_at = record.contract_confirmed_at
            raise AlreadyConfirmedError(
                str(record.id), confirmed_at.isoformat() if confirmed_at else None
            )
        changes["contract_confirmed"] = True
        changes["contract_confirmed_at"] = now

    elif action == A.freeze:
        changes.update(apply_freeze(record, days, today))
        # Frozen days are added to the study period
        if record.study_end_date is not None:
            frozen_days = record.freeze_days - changes["freeze_days"]
            changes["study_end_date"] = record.study_end_date + timedelta(days=frozen_days)

    elif action == A.unfreeze or (action == A.deactivate and current == S.FROZEN):
        changes.update(clear_freeze())

    return changes
