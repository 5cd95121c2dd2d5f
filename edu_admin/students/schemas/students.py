"""Student Schemas - request and response bodies for the enrollment lifecycle"""
from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal

from edu_admin.students.models.students import StudentStatus, PaymentPlan
from edu_admin.students.services.tranches import TRANCHE_AMOUNT_FIELDS, payment_plan_mismatch


class CamelModel(BaseModel):
    """Поля в JSON в camelCase, как ждет клиент"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class StudentRead(CamelModel):
    """Снимок записи ученика"""
    id: str
    status: StudentStatus

    # Договор
    contract_number: Optional[str] = None
    contract_confirmed: bool = False
    contract_confirmed_at: Optional[datetime] = None
    contract_confirmed_by: Optional[str] = None
    awaiting_contract: bool = False

    # Очередь подтверждения
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None

    # Заморозка
    freeze_days: int = 0
    freeze_end_date: Optional[date] = None

    # Абонемент
    standard_months: int = 0
    bonus_months: int = 0
    intensive_months: int = 0
    total_months: int = 0

    study_start_date: Optional[date] = None
    study_end_date: Optional[date] = None

    # Оплата
    payment_plan: Optional[PaymentPlan] = None
    tranche1_amount: Optional[float] = None
    tranche1_date: Optional[date] = None
    tranche2_amount: Optional[float] = None
    tranche2_date: Optional[date] = None
    tranche3_amount: Optional[float] = None
    tranche3_date: Optional[date] = None
    total_amount: Optional[float] = None
    monthly_payment: Optional[float] = None
    payment_plan_mismatch: bool = False

    created_at: datetime
    updated_at: Optional[datetime] = None


class StudentUpdateResponse(StudentRead):
    """Снимок после PATCH плюс предупреждения по оплате"""
    warnings: List[str] = Field(default_factory=list)


class StudentListResponse(CamelModel):
    students: List[StudentRead]
    total: int
    page: int
    size: int
    pages: int


class StudentFilters(BaseModel):
    """Фильтры для списка учеников"""
    status: Optional[StudentStatus] = Field(None, description="Filter by status")
    pending: bool = Field(False, description="Only the approval queue")
    awaiting_contract: bool = Field(False, description="Only active records without a confirmed contract")


class FreezeRequest(BaseModel):
    """Заморозка на N дней начиная с сегодня"""
    days: StrictInt

    model_config = ConfigDict(
        json_schema_extra={"example": {"days": 14}},
    )


class PaymentFieldsUpdate(CamelModel):
    """Поля договора и оплаты; отсутствующие поля не меняются"""
    contract_number: Optional[str] = Field(None, max_length=50)

    standard_months: Optional[int] = None
    bonus_months: Optional[int] = None
    intensive_months: Optional[int] = None

    study_start_date: Optional[date] = None
    study_end_date: Optional[date] = None

    payment_plan: Optional[PaymentPlan] = None
    tranche1_amount: Optional[Decimal] = None
    tranche1_date: Optional[date] = None
    tranche2_amount: Optional[Decimal] = None
    tranche2_date: Optional[date] = None
    tranche3_amount: Optional[Decimal] = None
    tranche3_date: Optional[date] = None
    total_amount: Optional[Decimal] = None
    monthly_payment: Optional[Decimal] = None


class StudentUpdate(PaymentFieldsUpdate):
    """Тело PATCH /students/{id}: статус и/или поля оплаты"""
    status: Optional[StudentStatus] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "INACTIVE",
                "tranche1Amount": 100000,
                "tranche2Amount": 50000,
            }
        },
    )


class ContractRead(CamelModel):
    """Договор в представлении списка договоров"""
    id: str
    student_id: str
    contract_number: Optional[str] = None
    status: StudentStatus
    standard_months: int = 0
    bonus_months: int = 0
    intensive_months: int = 0
    freeze_days: int = 0
    payment_plan: Optional[PaymentPlan] = None
    tranche1_amount: Optional[float] = None
    tranche1_date: Optional[date] = None
    tranche2_amount: Optional[float] = None
    tranche2_date: Optional[date] = None
    tranche3_amount: Optional[float] = None
    tranche3_date: Optional[date] = None
    total_amount: Optional[float] = None
    study_start_date: Optional[date] = None
    study_end_date: Optional[date] = None
    contract_confirmed: bool = False
    contract_confirmed_at: Optional[datetime] = None
    created_at: datetime


class ProcessFreezeResponse(BaseModel):
    processed: int
    updated: int


def build_student_read(student, warnings: Optional[List[str]] = None) -> StudentRead:
    amounts = [getattr(student, field) for field in TRANCHE_AMOUNT_FIELDS]
    snapshot = StudentRead.model_validate(student).model_copy(
        update={"payment_plan_mismatch": payment_plan_mismatch(student.payment_plan, amounts)}
    )
    if warnings is None:
        return snapshot
    return StudentUpdateResponse(**snapshot.model_dump(), warnings=warnings)


def build_contract_read(student) -> ContractRead:
    snapshot = StudentRead.model_validate(student)
    fields = set(ContractRead.model_fields) - {"student_id"}
    return ContractRead(student_id=snapshot.id, **snapshot.model_dump(include=fields))
