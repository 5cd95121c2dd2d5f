import pytest

from edu_admin.core import security
from edu_admin.core.exceptions import AuthenticationError, ConfigurationError, ForbiddenError
from edu_admin.core.permissions import SYSTEM_ACTOR, Actor, Capability, capabilities_for_role
from edu_admin.core.security import JWTManager, jwt_manager, verify_cron_secret


def test_token_roundtrip_carries_role():
    token = jwt_manager.create_access_token("staff-9", "CURATOR")

    payload = jwt_manager.decode_token(token)

    assert payload["sub"] == "staff-9"
    assert payload["role"] == "CURATOR"


def test_expired_token():
    manager = JWTManager(expire_minutes=-1)
    token = manager.create_access_token("staff-9", "ADMIN")

    with pytest.raises(AuthenticationError, match="expired"):
        manager.decode_token(token)


def test_token_signed_with_other_key():
    token = JWTManager(secret_key="other-key").create_access_token("staff-9", "ADMIN")

    with pytest.raises(AuthenticationError):
        jwt_manager.decode_token(token)


def test_wrong_token_type():
    token = jwt_manager.create_access_token("staff-9", "ADMIN", {"type": "refresh_token"})

    with pytest.raises(AuthenticationError, match="type"):
        jwt_manager.decode_token(token)


@pytest.mark.parametrize(
    "role, allowed, denied",
    [
        ("CURATOR", Capability.approve_enrollment, Capability.confirm_contract),
        ("chief_coordinator", Capability.confirm_contract, Capability.manage_freeze),
        ("ADMIN", Capability.change_status, Capability.edit_financials),
        ("SUPERADMIN", Capability.edit_study_period, Capability.process_freezes),
    ],
)
def test_role_capabilities(role, allowed, denied):
    capabilities = capabilities_for_role(role)
    assert allowed in capabilities
    assert denied not in capabilities


def test_unknown_role_has_no_capabilities():
    assert capabilities_for_role("ACCOUNTANT") == frozenset()
    assert capabilities_for_role(None) == frozenset()


def test_actor_require():
    actor = Actor.from_role("u-1", "COORDINATOR")

    actor.require(Capability.confirm_contract, "confirm contract")
    with pytest.raises(ForbiddenError) as exc_info:
        actor.require(Capability.approve_enrollment, "approve student")

    assert exc_info.value.details["capability"] == Capability.approve_enrollment.value


def test_cron_secret():
    assert verify_cron_secret(f"Bearer {security.CRON_SECRET}") is SYSTEM_ACTOR

    with pytest.raises(AuthenticationError):
        verify_cron_secret("Bearer nope")
    with pytest.raises(AuthenticationError):
        verify_cron_secret(None)


def test_cron_secret_not_configured(monkeypatch):
    monkeypatch.setattr(security, "CRON_SECRET", None)

    with pytest.raises(ConfigurationError):
        verify_cron_secret("Bearer anything")
