"""Contract Router - list of contracts and contract confirmation"""
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from edu_admin.core.database import get_session
from edu_admin.core.limits import limiter
from edu_admin.core.permissions import Actor, Capability
from edu_admin.core.security import get_current_actor
from edu_admin.students.crud.students import get_contracts
from edu_admin.students.schemas.students import (
    ContractRead,
    StudentRead,
    build_contract_read,
    build_student_read,
)
from edu_admin.students.services.lifecycle import confirm_contract

router = APIRouter(prefix="/contracts", tags=["Contracts"])


@router.get("", response_model=List[ContractRead], response_model_by_alias=True)
@limiter.limit("60/minute")
async def list_contracts(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Договоры всех записей, прошедших одобрение (новые сверху)"""
    actor.require(Capability.view_enrollments, "list contracts")
    students = await get_contracts(db)
    return [build_contract_read(student) for student in students]


@router.post("/{student_id}/confirm", response_model=StudentRead, response_model_by_alias=True)
@limiter.limit("30/minute")
async def confirm(
    request: Request,
    student_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """
    Confirm the signed contract of an active student.

    One-way: a second confirmation fails with AlreadyConfirmed and the
    original timestamp is kept.
    """
    student = await confirm_contract(db, student_id, actor)
    return build_student_read(student)
