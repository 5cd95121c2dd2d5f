from .students import (
    StudentRead,
    StudentUpdateResponse,
    StudentListResponse,
    StudentFilters,
    FreezeRequest,
    PaymentFieldsUpdate,
    StudentUpdate,
    ContractRead,
    ProcessFreezeResponse,
    build_student_read,
    build_contract_read,
)

__all__ = [
    "StudentRead",
    "StudentUpdateResponse",
    "StudentListResponse",
    "StudentFilters",
    "FreezeRequest",
    "PaymentFieldsUpdate",
    "StudentUpdate",
    "ContractRead",
    "ProcessFreezeResponse",
    "build_student_read",
    "build_contract_read",
]
