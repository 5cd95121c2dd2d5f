import json
import logging
import time
from collections import Counter, deque
from contextvars import ContextVar
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Идентификатор текущего HTTP запроса, выставляется middleware
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

# Стандартные атрибуты LogRecord, которые не нужно дублировать в JSON
_RESERVED_RECORD_KEYS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"


class RequestIdFilter(logging.Filter):
    """Проставляет request_id в каждую запись лога"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


def setup_logging(log_level: str = "INFO", log_format: str = "text"):
    """
    Настройка системы логирования

    Args:
        log_level: Уровень логирования (DEBUG, INFO, WARNING, ERROR)
        log_format: Формат логов (text, json)
    """
    if log_format.lower() == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(RequestIdFilter())
    root_logger.addHandler(console_handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger.info(f"Logging configured: level={log_level}, format={log_format}")


class JsonFormatter(logging.Formatter):
    """Одна строка JSON на запись, включая все поля из extra="""

    def format(self, record):
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_KEYS:
                continue
            try:
                json.dumps(value)
                log_entry[key] = value
            except (TypeError, ValueError):
                log_entry[key] = str(value)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False)


class ErrorTracker:
    """
    Счетчики отказов по виду ошибки и короткая история последних.

    Сюда попадают и бизнес-отказы (NotEnoughBudget, AlreadyConfirmed, ...),
    и сбои 5xx, так что по статистике видно, какие операции чаще всего
    упираются в правила жизненного цикла.
    """

    def __init__(self, max_history: int = 100):
        self.error_counts: Counter = Counter()
        self.last_errors: deque = deque(maxlen=max_history)

    def track_error(
        self, error_type: str, error_message: str, context: Dict[str, Any] = None
    ):
        self.error_counts[error_type] += 1
        self.last_errors.append(
            {
                "timestamp": time.time(),
                "type": error_type,
                "message": error_message,
                "request_id": request_id_var.get(),
                "context": context or {},
            }
        )

        logger.debug(
            f"Error tracked: {error_type}",
            extra={"error_type": error_type, "total_count": self.error_counts[error_type]},
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "error_counts": dict(self.error_counts),
            "total_errors": sum(self.error_counts.values()),
            "last_errors": list(self.last_errors)[-10:],
        }

    def reset_stats(self):
        self.error_counts.clear()
        self.last_errors.clear()


# Глобальный трекер ошибок
error_tracker = ErrorTracker()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_business_event(
    event: str,
    entity_type: str,
    entity_id: Any,
    details: Optional[Dict[str, Any]] = None,
):
    """
    Логировать бизнес-событие

    Args:
        event: Название события (student_approved, student_frozen, ...)
        entity_type: Тип сущности (student, system)
        entity_id: ID сущности
        details: Дополнительные детали (actor_id, from_status, to_status, ...)
    """
    logger.info(
        f"Business event: {event} {entity_type}={entity_id}",
        extra={
            "event": event,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "details": details or {},
            "category": "business_event",
        },
    )
