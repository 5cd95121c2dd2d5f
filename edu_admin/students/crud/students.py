"""Student CRUD - reads and the version-checked write used by every transition"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, update
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from edu_admin.core.database import db_operation
from edu_admin.core.exceptions import NotFoundError
from edu_admin.students.models.students import Student, StudentStatus
from edu_admin.students.schemas.students import StudentFilters

logger = logging.getLogger(__name__)


@db_operation
async def get_student(session: AsyncSession, student_id: str) -> Optional[Student]:
    """Fresh read of one record, bypassing the session identity map"""
    query = (
        select(Student)
        .where(Student.id == student_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_student_or_404(session: AsyncSession, student_id: str) -> Student:
    student = await get_student(session, student_id)
    if not student:
        raise NotFoundError("Student", str(student_id))
    return student


def _apply_filters(query, filters: Optional[StudentFilters]):
    filters = filters or StudentFilters()

    if filters.pending:
        return query.where(
            and_(
                Student.status == StudentStatus.PENDING_APPROVAL,
                Student.rejected_at.is_(None),
            )
        )

    if filters.status:
        query = query.where(Student.status == filters.status)
    else:
        # Как и в исходном списке: без фильтра ожидающие не показываются
        query = query.where(Student.status != StudentStatus.PENDING_APPROVAL)

    if filters.awaiting_contract:
        query = query.where(
            and_(
                Student.status == StudentStatus.ACTIVE,
                Student.contract_confirmed.is_(False),
            )
        )

    return query


@db_operation
async def get_students(
    session: AsyncSession,
    skip: int = 0,
    limit: int = 50,
    filters: Optional[StudentFilters] = None,
) -> Tuple[List[Student], int]:
    """Paginated student list; newest first"""
    base_query = _apply_filters(select(Student), filters)

    count_query = select(func.count()).select_from(base_query.subquery())
    total_result = await session.execute(count_query)
    total = total_result.scalar() or 0

    query = (
        base_query.order_by(Student.created_at.desc(), Student.id)
        .offset(skip)
        .limit(limit)
    )
    result = await session.execute(query)
    return list(result.scalars().all()), total


@db_operation
async def get_contracts(session: AsyncSession) -> List[Student]:
    """Records that have left the approval queue, for the contracts view"""
    query = (
        select(Student)
        .where(Student.status != StudentStatus.PENDING_APPROVAL)
        .order_by(Student.created_at.desc(), Student.id)
    )
    result = await session.execute(query)
    return list(result.scalars().all())


@db_operation
async def get_expired_freezes(session: AsyncSession, today: date) -> List[Student]:
    query = (
        select(Student)
        .where(
            and_(
                Student.status == StudentStatus.FROZEN,
                Student.freeze_end_date.is_not(None),
                Student.freeze_end_date <= today,
            )
        )
        .order_by(Student.freeze_end_date, Student.id)
    )
    result = await session.execute(query)
    return list(result.scalars().all())


@db_operation
async def compare_and_set(
    session: AsyncSession,
    student: Student,
    changes: Dict[str, Any],
) -> bool:
    """
    Write ``changes`` only if nobody has updated the record since it was read.

    The ``version`` the caller saw is part of the WHERE clause and is bumped in
    the same statement. Returns False when another writer got there first; in
    that case nothing is written and the transaction is rolled back.
    """
    seen_version = student.version
    stmt = (
        update(Student)
        .where(
            and_(
                Student.id == student.id,
                Student.version == seen_version,
            )
        )
        .values(**changes, version=Student.version + 1)
        .execution_options(synchronize_session=False)
    )

    try:
        result = await session.execute(stmt)
        if result.rowcount != 1:
            await session.rollback()
            logger.info(
                "Concurrent update detected",
                extra={"student_id": str(student.id), "seen_version": seen_version},
            )
            return False
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return True
