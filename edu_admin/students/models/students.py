"""Student Model - Enrollment record tracked through approval, study and exit"""
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Integer,
    String,
    DateTime,
    Date,
    Numeric,
    Boolean,
    Index,
    Enum as SQLEnum,
)
from sqlalchemy.sql import func
from enum import Enum
from edu_admin.core.database import Base


class StudentStatus(str, Enum):
    """Статус записи ученика"""
    PENDING_APPROVAL = "PENDING_APPROVAL"  # Ожидает подтверждения куратора
    ACTIVE = "ACTIVE"                      # Обучается
    FROZEN = "FROZEN"                      # Заморожен
    INACTIVE = "INACTIVE"                  # Неактивен
    GRADUATED = "GRADUATED"                # Окончил обучение
    EXPELLED = "EXPELLED"                  # Отчислен
    REFUND = "REFUND"                      # Возврат


TERMINAL_STATUSES = frozenset(
    [StudentStatus.GRADUATED, StudentStatus.EXPELLED, StudentStatus.REFUND]
)


class PaymentPlan(str, Enum):
    """План оплаты"""
    ONE_TRANCHE = "ONE_TRANCHE"
    TWO_TRANCHES = "TWO_TRANCHES"
    THREE_TRANCHES = "THREE_TRANCHES"


PAYMENT_PLAN_TRANCHES = {
    PaymentPlan.ONE_TRANCHE: 1,
    PaymentPlan.TWO_TRANCHES: 2,
    PaymentPlan.THREE_TRANCHES: 3,
}


def _new_id() -> str:
    return str(uuid.uuid4())


class Student(Base):
    """Запись ученика: статус, договор, заморозка и транши"""
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=_new_id)

    status = Column(
        SQLEnum(StudentStatus, name="student_status"),
        default=StudentStatus.PENDING_APPROVAL,
        nullable=False,
        index=True,
    )

    # Отклонение не меняет статус, а убирает запись из очереди
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(String(64), nullable=True)

    # Договор
    contract_number = Column(String(50), nullable=True, unique=True)
    contract_confirmed = Column(Boolean, default=False, nullable=False)
    contract_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    contract_confirmed_by = Column(String(64), nullable=True)

    # Заморозка: остаток дней и дата окончания текущей заморозки
    freeze_days = Column(Integer, default=0, nullable=False)
    freeze_end_date = Column(Date, nullable=True)

    # Состав абонемента (месяцы)
    standard_months = Column(Integer, default=0, nullable=False)
    bonus_months = Column(Integer, default=0, nullable=False)
    intensive_months = Column(Integer, default=0, nullable=False)

    # Период обучения
    study_start_date = Column(Date, nullable=True)
    study_end_date = Column(Date, nullable=True)

    # Оплата
    payment_plan = Column(SQLEnum(PaymentPlan, name="payment_plan"), nullable=True)
    tranche1_amount = Column(Numeric(12, 2), nullable=True)
    tranche1_date = Column(Date, nullable=True)
    tranche2_amount = Column(Numeric(12, 2), nullable=True)
    tranche2_date = Column(Date, nullable=True)
    tranche3_amount = Column(Numeric(12, 2), nullable=True)
    tranche3_date = Column(Date, nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=True)
    monthly_payment = Column(Numeric(12, 2), nullable=True)

    # Версия для условного UPDATE
    version = Column(Integer, default=1, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("freeze_days >= 0", name="ck_students_freeze_days_non_negative"),
        CheckConstraint(
            "(status = 'FROZEN') = (freeze_end_date IS NOT NULL)",
            name="ck_students_freeze_end_date_iff_frozen",
        ),
        CheckConstraint(
            "standard_months >= 0 AND bonus_months >= 0 AND intensive_months >= 0",
            name="ck_students_months_non_negative",
        ),
        Index("ix_students_status_created", "status", "created_at"),
    )

    @property
    def awaiting_contract(self) -> bool:
        return self.status == StudentStatus.ACTIVE and not self.contract_confirmed

    @property
    def total_months(self) -> int:
        return (self.standard_months or 0) + (self.bonus_months or 0) + (self.intensive_months or 0)

    def __repr__(self):
        return f"<Student(id={self.id}, status={self.status}, freeze_days={self.freeze_days})>"
