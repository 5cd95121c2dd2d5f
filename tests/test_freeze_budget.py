from datetime import date
from types import SimpleNamespace

import pytest

from edu_admin.core.exceptions import InvalidInputError, NotEnoughBudgetError
from edu_admin.students.services.freeze_budget import (
    apply_freeze,
    clear_freeze,
    validate_freeze_days,
)


def test_validate_accepts_whole_budget():
    assert validate_freeze_days(14, 14) == 14


@pytest.mark.parametrize("days", [0, -3])
def test_validate_rejects_non_positive(days):
    with pytest.raises(InvalidInputError):
        validate_freeze_days(days, 30)


@pytest.mark.parametrize("days", [1.5, "7", None, True])
def test_validate_rejects_non_integers(days):
    with pytest.raises(InvalidInputError):
        validate_freeze_days(days, 30)


def test_validate_reports_available_days():
    with pytest.raises(NotEnoughBudgetError) as exc_info:
        validate_freeze_days(11, 10)

    assert exc_info.value.available == 10
    assert exc_info.value.status_code == 409
    assert exc_info.value.details == {"requested": 11, "available": 10}


def test_apply_freeze_consumes_days_up_front():
    record = SimpleNamespace(freeze_days=10)

    changes = apply_freeze(record, 4, today=date(2025, 1, 10))

    assert changes == {"freeze_days": 6, "freeze_end_date": date(2025, 1, 14)}
    # сама запись не меняется
    assert record.freeze_days == 10


def test_apply_freeze_with_empty_budget():
    record = SimpleNamespace(freeze_days=0)

    with pytest.raises(NotEnoughBudgetError) as exc_info:
        apply_freeze(record, 1, today=date(2025, 1, 10))

    assert exc_info.value.available == 0


def test_clear_freeze_returns_nothing_to_the_budget():
    assert clear_freeze() == {"freeze_end_date": None}
