"""Capabilities and the actor that carries them.

Role names appear only in ``ROLE_CAPABILITIES``; everything else asks
``actor.can(...)`` or ``actor.require(...)``.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional

from edu_admin.core.exceptions import ForbiddenError


class Capability(str, Enum):
    view_enrollments = "VIEW_ENROLLMENTS"
    approve_enrollment = "APPROVE_ENROLLMENT"
    confirm_contract = "CONFIRM_CONTRACT"
    manage_freeze = "MANAGE_FREEZE"
    change_status = "CHANGE_STATUS"
    edit_enrollment = "EDIT_ENROLLMENT"
    edit_financials = "EDIT_FINANCIALS"
    edit_study_period = "EDIT_STUDY_PERIOD"
    process_freezes = "PROCESS_FREEZES"


_CURATOR = frozenset(
    [
        Capability.view_enrollments,
        Capability.approve_enrollment,
        Capability.manage_freeze,
    ]
)

_COORDINATOR = frozenset(
    [
        Capability.view_enrollments,
        Capability.confirm_contract,
    ]
)

_ADMIN = _CURATOR | _COORDINATOR | frozenset(
    [
        Capability.change_status,
        Capability.edit_enrollment,
    ]
)

_SUPERADMIN = _ADMIN | frozenset(
    [
        Capability.edit_financials,
        Capability.edit_study_period,
    ]
)

ROLE_CAPABILITIES: Dict[str, FrozenSet[Capability]] = {
    "CURATOR": _CURATOR,
    "CHIEF_CURATOR": _CURATOR,
    "COORDINATOR": _COORDINATOR,
    "CHIEF_COORDINATOR": _COORDINATOR,
    "ADMIN": _ADMIN,
    "SUPERADMIN": _SUPERADMIN,
}


def capabilities_for_role(role: Optional[str]) -> FrozenSet[Capability]:
    if not role:
        return frozenset()
    return ROLE_CAPABILITIES.get(role.upper(), frozenset())


@dataclass(frozen=True)
class Actor:
    """Authenticated caller of a lifecycle operation"""

    id: str
    role: Optional[str] = None
    capabilities: FrozenSet[Capability] = field(default_factory=frozenset)

    @classmethod
    def from_role(cls, actor_id: str, role: Optional[str]) -> "Actor":
        return cls(id=str(actor_id), role=role, capabilities=capabilities_for_role(role))

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability, action: str) -> None:
        if not self.can(capability):
            raise ForbiddenError(action, capability.value)


# Used by the freeze-expiry sweep, which runs without a human caller
SYSTEM_ACTOR = Actor(
    id="system",
    role="SYSTEM",
    capabilities=frozenset([Capability.process_freezes, Capability.manage_freeze]),
)
