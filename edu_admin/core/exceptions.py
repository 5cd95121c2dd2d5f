"""
Пользовательские исключения для централизованной обработки ошибок
"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorKind(str, Enum):
    """Коды ошибок, которые видит клиент в поле ``error``"""

    not_found = "NotFound"
    unauthorized = "Unauthorized"
    forbidden = "Forbidden"
    invalid_transition = "InvalidTransition"
    invalid_input = "InvalidInput"
    not_enough_budget = "NotEnoughBudget"
    already_processed = "AlreadyProcessed"
    already_confirmed = "AlreadyConfirmed"
    not_active = "NotActive"
    not_frozen = "NotFrozen"
    concurrent_modification = "ConcurrentModification"
    database_error = "DatabaseError"
    database_unavailable = "DatabaseUnavailable"
    database_timeout = "DatabaseTimeout"
    integrity_error = "IntegrityError"
    configuration_error = "ConfigurationError"


class BaseAppException(Exception):
    """Базовое исключение приложения"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


# === Ошибки аутентификации ===
class AuthenticationError(BaseAppException):
    """Ошибка аутентификации"""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, 401, ErrorKind.unauthorized.value, details)


class ForbiddenError(BaseAppException):
    """Недостаточно прав для действия"""

    def __init__(self, action: str, capability: str = None):
        message = f"Permission denied: cannot {action}"
        details = {"action": action}
        if capability:
            details["capability"] = capability
        super().__init__(message, 403, ErrorKind.forbidden.value, details)


# === Ошибки валидации ===
class InvalidInputError(BaseAppException):
    """Некорректный аргумент операции"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 400, ErrorKind.invalid_input.value, details)


# === Ошибки ресурсов ===
class NotFoundError(BaseAppException):
    """Ресурс не найден"""

    def __init__(self, resource: str, identifier: str = None):
        if identifier:
            message = f"{resource} with identifier '{identifier}' not found"
            details = {"resource": resource, "identifier": identifier}
        else:
            message = f"{resource} not found"
            details = {"resource": resource}
        super().__init__(message, 404, ErrorKind.not_found.value, details)


# === Конфликты состояния записи ===
class StateConflictError(BaseAppException):
    """Операция не применима к текущему состоянию записи"""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, 409, kind.value, details)


class InvalidTransitionError(StateConflictError):
    """Переход отсутствует в таблице переходов"""

    def __init__(self, current: str, requested: str):
        super().__init__(
            ErrorKind.invalid_transition,
            f"Transition '{requested}' is not allowed from status '{current}'",
            {"current": current, "requested": requested},
        )


class NotEnoughBudgetError(StateConflictError):
    """Запрошено больше дней заморозки, чем осталось"""

    def __init__(self, requested: int, available: int):
        self.available = available
        super().__init__(
            ErrorKind.not_enough_budget,
            f"Not enough freeze days: requested {requested}, available {available}",
            {"requested": requested, "available": available},
        )


class AlreadyProcessedError(StateConflictError):
    def __init__(self, student_id: str, status: str):
        super().__init__(
            ErrorKind.already_processed,
            f"Student '{student_id}' is no longer awaiting approval",
            {"student_id": student_id, "status": status},
        )


class AlreadyConfirmedError(StateConflictError):
    def __init__(self, student_id: str, confirmed_at: Optional[str] = None):
        super().__init__(
            ErrorKind.already_confirmed,
            f"Contract for student '{student_id}' is already confirmed",
            {"student_id": student_id, "confirmed_at": confirmed_at},
        )


class NotActiveError(StateConflictError):
    def __init__(self, student_id: str, status: str):
        super().__init__(
            ErrorKind.not_active,
            f"Student '{student_id}' is not active (status: {status})",
            {"student_id": student_id, "status": status},
        )


class NotFrozenError(StateConflictError):
    def __init__(self, student_id: str, status: str):
        super().__init__(
            ErrorKind.not_frozen,
            f"Student '{student_id}' is not frozen (status: {status})",
            {"student_id": student_id, "status": status},
        )


class ConcurrentModificationError(StateConflictError):
    """Запись постоянно меняется параллельными запросами"""

    def __init__(self, resource: str, identifier: str, attempts: int):
        super().__init__(
            ErrorKind.concurrent_modification,
            f"{resource} '{identifier}' was modified concurrently, gave up after {attempts} attempts",
            {"resource": resource, "identifier": identifier, "attempts": attempts},
        )


# === Ошибки базы данных ===
class DatabaseError(BaseAppException):
    """Ошибка базы данных"""

    def __init__(
        self,
        message: str = "Database operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, 500, ErrorKind.database_error.value, details)


class DatabaseConnectionError(BaseAppException):
    """Ошибка подключения к базе данных"""

    def __init__(self, message: str = "Database connection failed"):
        super().__init__(message, 503, ErrorKind.database_unavailable.value)


class DatabaseTimeoutError(BaseAppException):
    """Таймаут операции с базой данных"""

    def __init__(self, operation: str, timeout: int):
        message = f"Database operation '{operation}' timed out after {timeout}s"
        details = {"operation": operation, "timeout": timeout}
        super().__init__(message, 504, ErrorKind.database_timeout.value, details)


class DatabaseIntegrityError(BaseAppException):
    """Ошибка целостности данных"""

    def __init__(self, constraint: str, details: Optional[Dict[str, Any]] = None):
        message = f"Database integrity constraint violated: {constraint}"
        error_details = {"constraint": constraint}
        if details:
            error_details.update(details)
        super().__init__(message, 409, ErrorKind.integrity_error.value, error_details)


# === Ошибки конфигурации ===
class ConfigurationError(BaseAppException):
    """Ошибка конфигурации"""

    def __init__(self, parameter: str, message: str = None):
        message = (
            message or f"Configuration parameter '{parameter}' is invalid or missing"
        )
        details = {"parameter": parameter}
        super().__init__(message, 500, ErrorKind.configuration_error.value, details)
