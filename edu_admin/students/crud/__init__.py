"""Student CRUD Package"""
from .students import (
    get_student,
    get_student_or_404,
    get_students,
    get_contracts,
    get_expired_freezes,
    compare_and_set,
)

__all__ = [
    "get_student",
    "get_student_or_404",
    "get_students",
    "get_contracts",
    "get_expired_freezes",
    "compare_and_set",
]
