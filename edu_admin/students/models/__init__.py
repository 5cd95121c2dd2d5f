from edu_admin.core.database import Base
from .students import (
    Student,
    StudentStatus,
    PaymentPlan,
    PAYMENT_PLAN_TRANCHES,
    TERMINAL_STATUSES,
)

__all__ = [
    "Base",
    "Student",
    "StudentStatus",
    "PaymentPlan",
    "PAYMENT_PLAN_TRANCHES",
    "TERMINAL_STATUSES",
]
