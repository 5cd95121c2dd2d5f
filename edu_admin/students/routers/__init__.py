"""Student Routers Package"""
from .students import router as students_router
from .cron import router as cron_router

__all__ = [
    "students_router",
    "cron_router",
]
