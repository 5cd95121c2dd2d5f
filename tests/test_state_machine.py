from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest

from edu_admin.core.exceptions import (
    BaseAppException,
    AlreadyConfirmedError,
    AlreadyProcessedError,
    InvalidTransitionError,
    NotActiveError,
    NotEnoughBudgetError,
    NotFrozenError,
)
from edu_admin.students.models.students import StudentStatus, TERMINAL_STATUSES
from edu_admin.students.services.state_machine import (
    TRANSITIONS,
    TransitionAction,
    action_for_status,
    allowed_actions,
    plan_transition,
)

NOW = datetime(2025, 1, 10, 9, 30, tzinfo=timezone.utc)
TODAY = date(2025, 1, 10)


def make_record(status=StudentStatus.ACTIVE, **fields):
    values = {
        "id": "student-1",
        "status": status,
        "rejected_at": None,
        "contract_confirmed": False,
        "contract_confirmed_at": None,
        "freeze_days": 30,
        "freeze_end_date": None,
        "study_end_date": date(2025, 6, 1),
    }
    values.update(fields)
    return SimpleNamespace(**values)


def test_approve_pending():
    changes = plan_transition(
        make_record(StudentStatus.PENDING_APPROVAL), TransitionAction.approve
    )
    assert changes == {"status": StudentStatus.ACTIVE}


def test_reject_keeps_status_and_stamps_record():
    changes = plan_transition(
        make_record(StudentStatus.PENDING_APPROVAL), TransitionAction.reject, now=NOW
    )
    assert changes == {"status": StudentStatus.PENDING_APPROVAL, "rejected_at": NOW}


@pytest.mark.parametrize("action", [TransitionAction.approve, TransitionAction.reject])
def test_rejected_record_cannot_be_processed_again(action):
    record = make_record(StudentStatus.PENDING_APPROVAL, rejected_at=NOW)
    with pytest.raises(AlreadyProcessedError):
        plan_transition(record, action)


def test_approve_active_is_already_processed():
    with pytest.raises(AlreadyProcessedError):
        plan_transition(make_record(), TransitionAction.approve)


def test_confirm_contract_sets_stamp():
    changes = plan_transition(make_record(), TransitionAction.confirm_contract, now=NOW)
    assert changes == {
        "status": StudentStatus.ACTIVE,
        "contract_confirmed": True,
        "contract_confirmed_at": NOW,
    }


def test_confirm_contract_twice():
    record = make_record(contract_confirmed=True, contract_confirmed_at=NOW)
    with pytest.raises(AlreadyConfirmedError) as exc_info:
        plan_transition(record, TransitionAction.confirm_contract)
    assert exc_info.value.details["confirmed_at"] == NOW.isoformat()


def test_confirm_contract_requires_active():
    with pytest.raises(NotActiveError):
        plan_transition(
            make_record(StudentStatus.PENDING_APPROVAL), TransitionAction.confirm_contract
        )


def test_freeze_consumes_budget_and_extends_study():
    record = make_record(freeze_days=10)

    changes = plan_transition(record, TransitionAction.freeze, days=4, today=TODAY)

    assert changes == {
        "status": StudentStatus.FROZEN,
        "freeze_days": 6,
        "freeze_end_date": date(2025, 1, 14),
        "study_end_date": date(2025, 6, 5),
    }


def test_freeze_without_study_period():
    record = make_record(study_end_date=None)
    changes = plan_transition(record, TransitionAction.freeze, days=5, today=TODAY)
    assert "study_end_date" not in changes


def test_freeze_over_budget():
    with pytest.raises(NotEnoughBudgetError):
        plan_transition(
            make_record(freeze_days=3), TransitionAction.freeze, days=4, today=TODAY
        )


@pytest.mark.parametrize(
    "status",
    [StudentStatus.FROZEN, StudentStatus.INACTIVE, StudentStatus.PENDING_APPROVAL],
)
def test_freeze_requires_active(status):
    with pytest.raises(NotActiveError):
        plan_transition(make_record(status), TransitionAction.freeze, days=1, today=TODAY)


def test_unfreeze_clears_end_date_only():
    record = make_record(
        StudentStatus.FROZEN, freeze_days=20, freeze_end_date=date(2025, 1, 20)
    )
    changes = plan_transition(record, TransitionAction.unfreeze)
    assert changes == {"status": StudentStatus.ACTIVE, "freeze_end_date": None}


def test_unfreeze_requires_frozen():
    with pytest.raises(NotFrozenError):
        plan_transition(make_record(), TransitionAction.unfreeze)


def test_deactivate_frozen_clears_freeze():
    record = make_record(StudentStatus.FROZEN, freeze_end_date=date(2025, 1, 20))
    changes = plan_transition(record, TransitionAction.deactivate)
    assert changes == {"status": StudentStatus.INACTIVE, "freeze_end_date": None}


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
def test_terminal_statuses_have_no_exits(status):
    assert allowed_actions(status) == []
    with pytest.raises(InvalidTransitionError):
        plan_transition(make_record(status), TransitionAction.reactivate)


def test_graduate_only_from_active():
    with pytest.raises(InvalidTransitionError):
        plan_transition(make_record(StudentStatus.INACTIVE), TransitionAction.graduate)


@pytest.mark.parametrize(
    "current, target, action",
    [
        (StudentStatus.ACTIVE, StudentStatus.INACTIVE, TransitionAction.deactivate),
        (StudentStatus.INACTIVE, StudentStatus.ACTIVE, TransitionAction.reactivate),
        (StudentStatus.ACTIVE, StudentStatus.GRADUATED, TransitionAction.graduate),
        (StudentStatus.ACTIVE, StudentStatus.EXPELLED, TransitionAction.expel),
        (StudentStatus.ACTIVE, StudentStatus.REFUND, TransitionAction.refund),
    ],
)
def test_action_for_status(current, target, action):
    assert action_for_status(current, target) == action


@pytest.mark.parametrize(
    "current, target",
    [
        # одобрение только через approve
        (StudentStatus.PENDING_APPROVAL, StudentStatus.ACTIVE),
        (StudentStatus.ACTIVE, StudentStatus.FROZEN),
        (StudentStatus.FROZEN, StudentStatus.ACTIVE),
        (StudentStatus.ACTIVE, StudentStatus.PENDING_APPROVAL),
    ],
)
def test_action_for_status_rejects_dedicated_transitions(current, target):
    with pytest.raises(InvalidTransitionError):
        action_for_status(current, target)


@pytest.mark.parametrize("action", list(TransitionAction))
@pytest.mark.parametrize("status", list(StudentStatus))
def test_every_pair_follows_the_table(status, action):
    record = make_record(status, freeze_end_date=date(2025, 1, 20))
    expected = TRANSITIONS.get((status, action))

    if expected is None:
        with pytest.raises(BaseAppException) as exc_info:
            plan_transition(record, action, days=1, today=TODAY, now=NOW)
        assert exc_info.value.status_code == 409
        return

    changes = plan_transition(record, action, days=1, today=TODAY, now=NOW)
    assert changes["status"] == expected
    assert changes["status"] in set(StudentStatus)


def apply_changes(record, changes):
    for field, value in changes.items():
        setattr(record, field, value)


def test_budget_never_grows_over_a_sequence():
    record = make_record(freeze_days=12)
    steps = [
        (TransitionAction.freeze, 5),
        (TransitionAction.unfreeze, None),
        (TransitionAction.freeze, 20),
        (TransitionAction.freeze, 4),
        (TransitionAction.freeze, 1),
        (TransitionAction.deactivate, None),
        (TransitionAction.reactivate, None),
        (TransitionAction.unfreeze, None),
        (TransitionAction.freeze, 3),
        (TransitionAction.unfreeze, None),
        (TransitionAction.freeze, 1),
    ]
    history = [record.freeze_days]

    for action, days in steps:
        try:
            changes = plan_transition(record, action, days=days, today=TODAY)
        except BaseAppException:
            changes = {}
        apply_changes(record, changes)

        assert record.freeze_days >= 0
        assert record.freeze_days <= history[-1]
        # конец заморозки есть ровно у замороженных
        assert (record.freeze_end_date is not None) == (
            record.status == StudentStatus.FROZEN
        )
        history.append(record.freeze_days)

    assert history[-1] == 0
