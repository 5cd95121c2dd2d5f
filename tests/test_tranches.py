from decimal import Decimal
from types import SimpleNamespace

import pytest

from edu_admin.core.exceptions import InvalidInputError
from edu_admin.students.models.students import PaymentPlan
from edu_admin.students.services.tranches import payment_plan_mismatch, reconcile_payment


def make_record(**fields):
    values = {
        "id": "student-1",
        "payment_plan": None,
        "tranche1_amount": None,
        "tranche2_amount": None,
        "tranche3_amount": None,
        "total_amount": None,
        "monthly_payment": None,
    }
    values.update(fields)
    return SimpleNamespace(**values)


def test_total_is_sum_of_written_tranches():
    record = make_record(payment_plan=PaymentPlan.TWO_TRANCHES)

    changes, warnings = reconcile_payment(
        record, {"tranche1_amount": 100000, "tranche2_amount": 50000}
    )

    assert changes["tranche1_amount"] == Decimal("100000.00")
    assert changes["tranche2_amount"] == Decimal("50000.00")
    assert changes["total_amount"] == Decimal("150000.00")
    assert warnings == []


def test_partial_update_uses_stored_tranches():
    record = make_record(
        tranche1_amount=Decimal("100.00"),
        tranche2_amount=Decimal("50.00"),
        total_amount=Decimal("150.00"),
    )

    changes, _ = reconcile_payment(record, {"tranche2_amount": "70.5"})

    assert changes["total_amount"] == Decimal("170.50")


def test_cleared_tranche_is_dropped_from_total():
    record = make_record(
        tranche1_amount=Decimal("100.00"),
        tranche2_amount=Decimal("50.00"),
        tranche3_amount=Decimal("30.00"),
        total_amount=Decimal("180.00"),
    )

    changes, _ = reconcile_payment(record, {"tranche3_amount": None})

    assert changes["tranche3_amount"] is None
    assert changes["total_amount"] == Decimal("150.00")


def test_supplied_total_is_replaced_with_warning():
    record = make_record()

    changes, warnings = reconcile_payment(
        record, {"tranche1_amount": 100, "total_amount": 999}
    )

    assert changes["total_amount"] == Decimal("100.00")
    assert len(warnings) == 1
    assert "replaced" in warnings[0]


def test_total_without_tranches_is_kept():
    record = make_record()

    changes, warnings = reconcile_payment(record, {"total_amount": 500})

    assert changes["total_amount"] == Decimal("500.00")
    assert warnings == []


def test_unrelated_fields_leave_total_alone():
    record = make_record(tranche1_amount=Decimal("10.00"), total_amount=Decimal("10.00"))

    changes, _ = reconcile_payment(record, {"monthly_payment": 5})

    assert "total_amount" not in changes
    assert changes["monthly_payment"] == Decimal("5.00")


@pytest.mark.parametrize("value", [-1, "abc", "NaN"])
def test_invalid_amount_rejected(value):
    with pytest.raises(InvalidInputError):
        reconcile_payment(make_record(), {"tranche1_amount": value})


def test_plan_mismatch_is_a_warning_not_an_error():
    record = make_record(payment_plan=PaymentPlan.TWO_TRANCHES)

    changes, warnings = reconcile_payment(
        record,
        {"tranche1_amount": 10, "tranche2_amount": 10, "tranche3_amount": 10},
    )

    assert changes["total_amount"] == Decimal("30.00")
    assert any("TWO_TRANCHES" in warning for warning in warnings)


def test_payment_plan_mismatch_flag():
    assert payment_plan_mismatch(None, [Decimal("1")]) is False
    assert payment_plan_mismatch(PaymentPlan.ONE_TRANCHE, [None, None, None]) is False
    assert payment_plan_mismatch(PaymentPlan.ONE_TRANCHE, [Decimal("1"), None, None]) is False
    assert payment_plan_mismatch(PaymentPlan.THREE_TRANCHES, [Decimal("1"), None, None]) is True
