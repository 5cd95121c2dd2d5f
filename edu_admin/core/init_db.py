import asyncio
import logging

from sqlalchemy import text
from edu_admin.core.config import DATABASE_URL, ENVIRONMENT
from edu_admin.core.database import db_manager, engine, Base
from edu_admin.core.exceptions import BaseAppException, DatabaseError, ConfigurationError

# Регистрируем модели в metadata до create_all
import edu_admin.students.models  # noqa: F401

logger = logging.getLogger(__name__)


def _index_check(index: str) -> str:
    return f"SELECT indexname FROM pg_indexes WHERE indexname='{index}'"


# Объекты, которые create_all не создает
MIGRATIONS = [
    # Очередь одобрения: частичный индекс по ожидающим заявкам
    {
        "name": "add_students_pending_queue_index",
        "check": _index_check("ix_students_pending_queue"),
        "apply": (
            "CREATE INDEX ix_students_pending_queue ON students (created_at) "
            "WHERE status = 'PENDING_APPROVAL' AND rejected_at IS NULL"
        ),
    },
]


async def run_migrations() -> int:
    """Применить недостающие миграции; возвращает число примененных"""
    # pg_indexes есть только в PostgreSQL
    if DATABASE_URL.startswith("sqlite"):
        return 0

    applied = 0
    async with engine.begin() as conn:
        for migration in MIGRATIONS:
            name = migration["name"]
            result = await conn.execute(text(migration["check"]))
            if result.fetchone() is not None:
                logger.debug(f"Migration already applied: {name}")
                continue

            logger.info(f"Applying migration: {name}")
            await conn.execute(text(migration["apply"]))
            applied += 1

    return applied


async def init_database():
    """Initialize database with tables and migrations"""
    try:
        await db_manager.check_connection()
        await db_manager.create_tables()
        applied = await run_migrations()
        logger.info(f"✅ Database initialized, {applied} migration(s) applied")

    except BaseAppException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error during database initialization: {e}")
        raise DatabaseError(f"Database initialization failed: {str(e)}")


async def reset_database():
    """Reset database (for development/testing only)"""
    if ENVIRONMENT not in ["development", "dev", "test"]:
        raise ConfigurationError(
            "ENVIRONMENT",
            "Database reset is only allowed in development or test environments",
        )

    try:
        logger.warning("🚨 RESETTING DATABASE - ALL DATA WILL BE LOST!")

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("✅ All tables dropped")

        await init_database()
        logger.info("✅ Database reset completed")

    except Exception as e:
        logger.error(f"Database reset failed: {e}")
        raise DatabaseError(f"Database reset failed: {str(e)}")


if __name__ == "__main__":
    import sys

    async def main():
        command = sys.argv[1] if len(sys.argv) > 1 else "init"

        if command == "init":
            await init_database()
        elif command == "reset":
            await reset_database()
        else:
            print(f"Unknown command: {command}")
            print("Available commands: init, reset")
            sys.exit(1)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Database initialization cancelled by user")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        sys.exit(1)
