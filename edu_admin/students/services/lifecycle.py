"""Enrollment lifecycle operations.

Each operation authorizes the actor, plans the change with the transition
table, and persists it with a single version-checked UPDATE. If another
request changed the record in between, the record is re-read and the plan is
made again, so every check runs against the state that is actually written.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from edu_admin.core.config import CONCURRENT_UPDATE_ATTEMPTS
from edu_admin.core.exceptions import (
    BaseAppException,
    ConcurrentModificationError,
    InvalidInputError,
)
from edu_admin.core.logging_utils import log_business_event
from edu_admin.core.permissions import Actor, Capability, SYSTEM_ACTOR
from edu_admin.students.crud.students import (
    compare_and_set,
    get_expired_freezes,
    get_student,
    get_student_or_404,
)
from edu_admin.students.models.students import Student, StudentStatus
from edu_admin.students.services.state_machine import (
    TransitionAction,
    action_for_status,
    plan_transition,
)
from edu_admin.students.services.tranches import reconcile_payment

logger = logging.getLogger(__name__)

FINANCIAL_FIELDS = frozenset(
    [
        "payment_plan",
        "tranche1_amount",
        "tranche1_date",
        "tranche2_amount",
        "tranche2_date",
        "tranche3_amount",
        "tranche3_date",
        "total_amount",
        "monthly_payment",
    ]
)
STUDY_PERIOD_FIELDS = frozenset(["study_start_date", "study_end_date"])
ENROLLMENT_FIELDS = frozenset(
    ["contract_number", "standard_months", "bonus_months", "intensive_months"]
)
EDITABLE_FIELDS = FINANCIAL_FIELDS | STUDY_PERIOD_FIELDS | ENROLLMENT_FIELDS

Planner = Callable[[Student], Dict[str, Any]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _apply(
    session: AsyncSession,
    student_id: str,
    plan: Planner,
    event: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Student:
    """Load, plan, conditionally write; repeat on a lost race."""
    for attempt in range(CONCURRENT_UPDATE_ATTEMPTS):
        student = await get_student_or_404(session, student_id)
        from_status = StudentStatus(student.status).value
        changes = plan(student)

        if not changes:
            return student

        if await compare_and_set(session, student, changes):
            updated = await get_student_or_404(session, student_id)
            if event:
                log_business_event(
                    event,
                    "student",
                    student_id,
                    {
                        **(details or {}),
                        "from_status": from_status,
                        "to_status": StudentStatus(updated.status).value,
                    },
                )
            return updated

        logger.warning(
            f"Retrying {event or 'update'} after concurrent modification",
            extra={"student_id": student_id, "attempt": attempt + 1},
        )

    raise ConcurrentModificationError("Student", student_id, CONCURRENT_UPDATE_ATTEMPTS)


async def approve_student(session: AsyncSession, student_id: str, actor: Actor) -> Student:
    """PendingApproval -> Active, contract still unconfirmed"""
    actor.require(Capability.approve_enrollment, "approve student")

    return await _apply(
        session,
        student_id,
        lambda student: plan_transition(student, TransitionAction.approve),
        "student_approved",
        {"actor_id": actor.id},
    )


async def reject_student(session: AsyncSession, student_id: str, actor: Actor) -> Student:
    """Take the record out of the approval queue; nothing is deleted"""
    actor.require(Capability.approve_enrollment, "reject student")

    def plan(student: Student) -> Dict[str, Any]:
        changes = plan_transition(student, TransitionAction.reject, now=_now())
        changes["rejected_by"] = actor.id
        return changes

    return await _apply(session, student_id, plan, "student_rejected", {"actor_id": actor.id})


async def confirm_contract(session: AsyncSession, student_id: str, actor: Actor) -> Student:
    actor.require(Capability.confirm_contract, "confirm contract")

    def plan(student: Student) -> Dict[str, Any]:
        changes = plan_transition(student, TransitionAction.confirm_contract, now=_now())
        changes["contract_confirmed_by"] = actor.id
        return changes

    return await _apply(session, student_id, plan, "contract_confirmed", {"actor_id": actor.id})


async def freeze_student(
    session: AsyncSession,
    student_id: str,
    days: Any,
    actor: Actor,
    today: Optional[date] = None,
) -> Student:
    actor.require(Capability.manage_freeze, "freeze student")

    return await _apply(
        session,
        student_id,
        lambda student: plan_transition(
            student, TransitionAction.freeze, days=days, today=today
        ),
        "student_frozen",
        {"actor_id": actor.id, "days": days},
    )


async def unfreeze_student(session: AsyncSession, student_id: str, actor: Actor) -> Student:
    """Frozen -> Active; consumed freeze days stay consumed"""
    actor.require(Capability.manage_freeze, "unfreeze student")

    return await _apply(
        session,
        student_id,
        lambda student: plan_transition(student, TransitionAction.unfreeze),
        "student_unfrozen",
        {"actor_id": actor.id},
    )


def _status_planner(target: StudentStatus) -> Planner:
    """Generic status write; the stored status again is not a transition"""

    def plan(student: Student) -> Dict[str, Any]:
        if target == StudentStatus(student.status):
            return {}
        action = action_for_status(student.status, target)
        return plan_transition(student, action)

    return plan


def _require_field_capabilities(actor: Actor, fields) -> None:
    fields = set(fields)

    unknown = fields - EDITABLE_FIELDS
    if unknown:
        raise InvalidInputError(
            "Fields cannot be updated here", {"fields": sorted(unknown)}
        )

    if fields & FINANCIAL_FIELDS:
        actor.require(Capability.edit_financials, "edit payment fields")
    if fields & STUDY_PERIOD_FIELDS:
        actor.require(Capability.edit_study_period, "edit study period")
    if fields & ENROLLMENT_FIELDS:
        actor.require(Capability.edit_enrollment, "edit enrollment")


def _validate_plain_fields(student: Student, patch: Dict[str, Any]) -> None:
    for field in ("standard_months", "bonus_months", "intensive_months"):
        if field in patch:
            value = patch[field]
            if value is None or value < 0:
                raise InvalidInputError(
                    f"{field} must be a non-negative integer",
                    {"field": field, "value": value},
                )

    start = patch.get("study_start_date", student.study_start_date)
    end = patch.get("study_end_date", student.study_end_date)
    if start and end and end < start:
        raise InvalidInputError(
            "study_end_date must not be before study_start_date",
            {"study_start_date": start.isoformat(), "study_end_date": end.isoformat()},
        )


def _fields_planner(patch: Dict[str, Any], warnings: List[str]) -> Planner:
    """Payment/contract/study-period fields; ``warnings`` is refilled on every plan"""

    def plan(student: Student) -> Dict[str, Any]:
        _validate_plain_fields(student, patch)
        changes, found = reconcile_payment(student, patch)
        warnings[:] = found
        return changes

    return plan


async def set_student_status(
    session: AsyncSession,
    student_id: str,
    target: StudentStatus,
    actor: Actor,
) -> Student:
    """
    Generic status write (deactivate, reactivate, graduate, expel, refund).

    The target is translated into a transition action, so it gets exactly the
    same checks and side effects as any other transition.
    """
    actor.require(Capability.change_status, "change student status")
    target = StudentStatus(target)

    return await _apply(
        session,
        student_id,
        _status_planner(target),
        "student_status_changed",
        {"actor_id": actor.id, "requested": target.value},
    )


async def update_payment_fields(
    session: AsyncSession,
    student_id: str,
    patch: Dict[str, Any],
    actor: Actor,
) -> Tuple[Student, List[str]]:
    """Write payment/contract/study-period fields, deriving the total"""
    actor.require(Capability.edit_enrollment, "edit student")
    _require_field_capabilities(actor, patch.keys())

    warnings: List[str] = []
    student = await _apply(
        session,
        student_id,
        _fields_planner(patch, warnings),
        "student_payment_updated",
        {"actor_id": actor.id, "fields": sorted(patch.keys())},
    )
    return student, warnings


async def update_student(
    session: AsyncSession,
    student_id: str,
    patch: Dict[str, Any],
    actor: Actor,
) -> Tuple[Student, List[str]]:
    """
    PATCH semantics: an optional ``status`` plus payment fields.

    Only a status goes to ``set_student_status``, only fields go to
    ``update_payment_fields``. Both together are planned by the same two
    planners and written in one conditional update.
    """
    patch = dict(patch)
    requested = patch.pop("status", None)

    if requested is None:
        return await update_payment_fields(session, student_id, patch, actor)

    requested = StudentStatus(requested)
    if not patch:
        student = await set_student_status(session, student_id, requested, actor)
        return student, []

    actor.require(Capability.change_status, "change student status")
    actor.require(Capability.edit_enrollment, "edit student")
    _require_field_capabilities(actor, patch.keys())

    warnings: List[str] = []
    status_plan = _status_planner(requested)
    fields_plan = _fields_planner(patch, warnings)

    def plan(student: Student) -> Dict[str, Any]:
        changes = status_plan(student)
        changes.update(fields_plan(student))
        return changes

    student = await _apply(
        session,
        student_id,
        plan,
        "student_updated",
        {"actor_id": actor.id, "fields": sorted(patch.keys()), "requested": requested.value},
    )
    return student, warnings


async def process_expired_freezes(
    session: AsyncSession,
    today: Optional[date] = None,
    actor: Actor = SYSTEM_ACTOR,
) -> Dict[str, int]:
    """Unfreeze every record whose freeze period is over."""
    actor.require(Capability.process_freezes, "process expired freezes")
    today = today or date.today()

    expired = await get_expired_freezes(session, today)
    expired_ids = [student.id for student in expired]
    updated = 0

    for student_id in expired_ids:
        # Перечитываем: после неудачной записи сессия откатывается
        student = await get_student(session, student_id)
        if student is None or student.freeze_end_date is None:
            continue
        freeze_end_date = student.freeze_end_date

        try:
            changes = plan_transition(student, TransitionAction.unfreeze)
        except BaseAppException as e:
            logger.info(
                f"Skipping freeze expiry for student {student.id}: {e.message}",
                extra={"student_id": str(student.id)},
            )
            continue

        if await compare_and_set(session, student, changes):
            updated += 1
            log_business_event(
                "freeze_expired",
                "student",
                student.id,
                {"freeze_end_date": freeze_end_date.isoformat()},
            )
        else:
            logger.info(
                f"Student {student.id} changed during freeze expiry, skipped",
                extra={"student_id": str(student.id)},
            )

    logger.info(
        f"Freeze expiry processed: {len(expired_ids)} found, {updated} unfrozen",
        extra={"processed": len(expired_ids), "updated": updated, "today": today.isoformat()},
    )
    return {"processed": len(expired_ids), "updated": updated}
