import pytest

from edu_admin.core.exceptions import ConfigurationError
from edu_admin.core import init_db
from edu_admin.core.init_db import init_database, reset_database, run_migrations
from edu_admin.core.logging_utils import error_tracker
from edu_admin.students.models.students import Student


async def test_health_reports_error_counts(client, auth_headers):
    error_tracker.reset_stats()

    await client.get("/api/students/missing", headers=auth_headers("ADMIN"))
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["database"] == "ok"
    assert body["errors"]["by_kind"] == {"NotFound": 1}


async def test_unknown_route_uses_common_error_body(client):
    response = await client.get("/api/nothing-here")

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "NotFound"
    assert body["path"] == "/api/nothing-here"


async def test_init_database_on_sqlite():
    await init_database()
    # миграции рассчитаны на PostgreSQL
    assert await run_migrations() == 0


async def test_reset_database_refused_outside_development(monkeypatch):
    monkeypatch.setattr(init_db, "ENVIRONMENT", "production")

    with pytest.raises(ConfigurationError):
        await reset_database()


def test_migrations_add_only_what_models_do_not_declare():
    table = Student.__table__
    declared = {index.name for index in table.indexes} | set(table.columns.keys())

    for migration in init_db.MIGRATIONS:
        assert migration["apply"].startswith("CREATE INDEX")
        assert migration["name"] not in declared
        assert "ADD COLUMN" not in migration["apply"]
