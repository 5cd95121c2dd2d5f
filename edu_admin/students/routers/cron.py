"""Cron Router - endpoints called by the external scheduler"""
from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from edu_admin.core.database import get_session
from edu_admin.core.permissions import Actor
from edu_admin.core.security import verify_cron_secret
from edu_admin.students.schemas.students import ProcessFreezeResponse
from edu_admin.students.services.lifecycle import process_expired_freezes

router = APIRouter(prefix="/cron", tags=["Cron"])


@router.get("/process-freeze", response_model=ProcessFreezeResponse)
async def process_freeze(
    actor: Actor = Depends(verify_cron_secret),
    db: AsyncSession = Depends(get_session),
):
    """Снять заморозку со всех, у кого она закончилась (раз в сутки)"""
    result = await process_expired_freezes(db, date.today(), actor)
    return ProcessFreezeResponse(**result)
