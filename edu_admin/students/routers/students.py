"""Student Router - Endpoints for the enrollment lifecycle"""
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from edu_admin.core.database import get_session
from edu_admin.core.limits import limiter
from edu_admin.core.permissions import Actor, Capability
from edu_admin.core.security import get_current_actor
from edu_admin.students.crud.students import get_student_or_404, get_students
from edu_admin.students.models.students import StudentStatus
from edu_admin.students.schemas.students import (
    FreezeRequest,
    StudentFilters,
    StudentListResponse,
    StudentRead,
    StudentUpdate,
    StudentUpdateResponse,
    build_student_read,
)
from edu_admin.students.services.lifecycle import (
    approve_student,
    freeze_student,
    reject_student,
    unfreeze_student,
    update_student,
)

router = APIRouter(prefix="/students", tags=["Students"])


@router.get("", response_model=StudentListResponse, response_model_by_alias=True)
@limiter.limit("60/minute")
async def list_students(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(50, ge=1, le=200, description="Items per page"),
    status: Optional[StudentStatus] = Query(None, description="Filter by status"),
    pending: bool = Query(False, description="Only the approval queue"),
    awaiting_contract: bool = Query(
        False, alias="awaitingContract", description="Active records without a confirmed contract"
    ),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """
    List enrollment records.

    Without filters the approval queue is not included; use `pending=true`
    to get it (rejected records are never in the queue).
    """
    actor.require(Capability.view_enrollments, "list students")

    filters = StudentFilters(
        status=status, pending=pending, awaiting_contract=awaiting_contract
    )
    skip = (page - 1) * size
    students, total = await get_students(db, skip, size, filters)

    pages = math.ceil(total / size) if total > 0 else 1

    return StudentListResponse(
        students=[build_student_read(student) for student in students],
        total=total,
        page=page,
        size=size,
        pages=pages,
    )


@router.get("/{student_id}", response_model=StudentRead, response_model_by_alias=True)
@limiter.limit("60/minute")
async def get_student_detail(
    request: Request,
    student_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    actor.require(Capability.view_enrollments, "view student")
    student = await get_student_or_404(db, student_id)
    return build_student_read(student)


@router.post("/{student_id}/approve", response_model=StudentRead, response_model_by_alias=True)
@limiter.limit("30/minute")
async def approve(
    request: Request,
    student_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Одобрить заявку: PENDING_APPROVAL -> ACTIVE, договор ещё не подтверждён"""
    student = await approve_student(db, student_id, actor)
    return build_student_read(student)


@router.post("/{student_id}/reject", response_model=StudentRead, response_model_by_alias=True)
@limiter.limit("30/minute")
async def reject(
    request: Request,
    student_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Отклонить заявку. Запись остаётся, но уходит из очереди"""
    student = await reject_student(db, student_id, actor)
    return build_student_read(student)


@router.post("/{student_id}/freeze", response_model=StudentRead, response_model_by_alias=True)
@limiter.limit("30/minute")
async def freeze(
    request: Request,
    student_id: str,
    freeze_request: FreezeRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """
    Freeze an active student for `days` days starting today.

    The days are taken from the freeze budget immediately and the study
    period is extended by the same amount.
    """
    student = await freeze_student(db, student_id, freeze_request.days, actor)
    return build_student_read(student)


@router.post("/{student_id}/unfreeze", response_model=StudentRead, response_model_by_alias=True)
@limiter.limit("30/minute")
async def unfreeze(
    request: Request,
    student_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    student = await unfreeze_student(db, student_id, actor)
    return build_student_read(student)


@router.patch(
    "/{student_id}", response_model=StudentUpdateResponse, response_model_by_alias=True
)
@limiter.limit("30/minute")
async def patch_student(
    request: Request,
    student_id: str,
    student_update: StudentUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """
    Update status and/or contract and payment fields.

    When tranche amounts are written the total is recalculated from them.
    A tranche count that does not match the payment plan is reported in
    `warnings`, the write still happens.
    """
    patch = student_update.model_dump(exclude_unset=True)
    student, warnings = await update_student(db, student_id, patch, actor)
    return build_student_read(student, warnings)
