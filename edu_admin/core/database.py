import asyncio
import logging
from functools import wraps
from typing import Callable, TypeVar, Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import text
from sqlalchemy.exc import (
    SQLAlchemyError,
    OperationalError,
    DisconnectionError,
    TimeoutError,
)
from asyncpg.exceptions import (
    ConnectionFailureError,
    ConnectionDoesNotExistError,
)

from .config import DATABASE_URL, DB_RETRY_ATTEMPTS, DB_RETRY_DELAY, DB_RETRY_BACKOFF_FACTOR
from .exceptions import DatabaseConnectionError, DatabaseTimeoutError

logger = logging.getLogger(__name__)


def engine_options(url: str) -> Dict[str, Any]:
    """Параметры движка; пул настраиваем только для PostgreSQL"""
    options: Dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=20,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
        )
    return options


engine = create_async_engine(DATABASE_URL, **engine_options(DATABASE_URL))

# expire_on_commit=False: снимок записи читается после условного UPDATE
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()

F = TypeVar("F", bound=Callable[..., Any])

RETRYABLE_EXCEPTIONS = (
    OperationalError,
    DisconnectionError,
    TimeoutError,
    ConnectionFailureError,
    ConnectionDoesNotExistError,
)

_CONNECTION_EXCEPTIONS = (
    ConnectionFailureError,
    ConnectionDoesNotExistError,
    DisconnectionError,
)


def db_retry(
    max_attempts: int = None,
    delay: float = None,
    backoff_factor: float = None,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> Callable[[F], F]:
    """
    Повтор операции при временных сбоях БД с экспоненциальной задержкой.

    Только для операций без собственной сессии (проверка соединения, create_all).
    Бизнес-операции не повторяются: их повтор решает условный UPDATE.
    """
    max_attempts = max_attempts or DB_RETRY_ATTEMPTS
    delay = DB_RETRY_DELAY if delay is None else delay
    backoff_factor = backoff_factor or DB_RETRY_BACKOFF_FACTOR

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            current_delay = delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        logger.error(
                            f"{func.__name__} failed after {max_attempts} attempts: {e}",
                            extra={"function": func.__name__, "max_attempts": max_attempts},
                        )
                        if isinstance(e, _CONNECTION_EXCEPTIONS):
                            raise DatabaseConnectionError(
                                f"Database connection failed after {max_attempts} attempts"
                            )
                        if isinstance(e, TimeoutError):
                            raise DatabaseTimeoutError(func.__name__, 30)
                        raise

                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}/{max_attempts}), "
                        f"retrying in {current_delay}s: {e}",
                        extra={
                            "function": func.__name__,
                            "attempt": attempt,
                            "exception_type": type(e).__name__,
                        },
                    )
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff_factor

        return wrapper

    return decorator


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency для получения сессии базы данных
    """
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


class DatabaseManager:
    """Создание схемы, проверка и закрытие соединений"""

    @staticmethod
    @db_retry()
    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database tables ready: {', '.join(sorted(Base.metadata.tables))}")

    @staticmethod
    @db_retry()
    async def check_connection():
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except RETRYABLE_EXCEPTIONS:
            raise
        except Exception as e:
            logger.error(f"Database connection check failed: {str(e)}")
            raise DatabaseConnectionError("Database connection check failed")
        return True

    @staticmethod
    async def close_connections():
        await engine.dispose()
        logger.info("Database connections closed")


db_manager = DatabaseManager()


def db_operation(func: F) -> F:
    """Логирование CRUD операций; ошибки SQLAlchemy пробрасываются дальше"""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(
                f"SQLAlchemy error in {func.__name__}: {str(e)}",
                extra={"operation": func.__name__, "exception_type": type(e).__name__},
            )
            raise

    return wrapper
