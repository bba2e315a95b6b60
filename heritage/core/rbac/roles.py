"""Role definitions for the heritage platform.

Defines the 4 actor roles and their capability sets:
1. Super Admin - platform owner, final review authority
2. Museum Admin - manages one museum, first-level review
3. Museum Staff - curators authoring artifacts for their museum
4. Visitor - browses published content and requests rentals
"""

from enum import Enum
from typing import Dict, FrozenSet, Union

from .capabilities import Capability


class Role(str, Enum):
    """Actor roles. Every actor holds exactly one."""

    VISITOR = "visitor"
    MUSEUM_STAFF = "museum_staff"
    MUSEUM_ADMIN = "museum_admin"
    SUPER_ADMIN = "super_admin"


# Roles that must be anchored to exactly one museum
MUSEUM_ROLES = frozenset([Role.MUSEUM_STAFF, Role.MUSEUM_ADMIN])


VISITOR_CAPABILITIES = frozenset([
    Capability.REQUEST_RENTAL,
])

MUSEUM_STAFF_CAPABILITIES = frozenset([
    Capability.SUBMIT_ARTIFACT,
])

MUSEUM_ADMIN_CAPABILITIES = frozenset([
    Capability.SUBMIT_ARTIFACT,
    Capability.FIRST_APPROVE_ARTIFACT,
    Capability.FIRST_APPROVE_RENTAL,
    Capability.MANAGE_OWN_MUSEUM,
    Capability.VIEW_AUDIT_LOG,
])

# Super admins hold no first-tier review capability
SUPER_ADMIN_CAPABILITIES = frozenset([
    Capability.MANAGE_ALL_USERS,
    Capability.MANAGE_ALL_MUSEUMS,
    Capability.FINAL_APPROVE_ARTIFACT,
    Capability.FINAL_APPROVE_RENTAL,
    Capability.VIEW_AUDIT_LOG,
])


ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.VISITOR: VISITOR_CAPABILITIES,
    Role.MUSEUM_STAFF: MUSEUM_STAFF_CAPABILITIES,
    Role.MUSEUM_ADMIN: MUSEUM_ADMIN_CAPABILITIES,
    Role.SUPER_ADMIN: SUPER_ADMIN_CAPABILITIES,
}


def capabilities_of(role: Union[Role, str]) -> FrozenSet[Capability]:
    """Get the capability set for a role.

    Unknown role strings get an empty set rather than an error, so a corrupt
    user record can never gain access.
    """
    try:
        return ROLE_CAPABILITIES[Role(role)]
    except ValueError:
        return frozenset()


def has_capability(actor, capability: Capability) -> bool:
    """Check if an actor's role grants a capability."""
    if actor is None:
        return False
    return capability in capabilities_of(actor.role)


def requires_museum(role: Union[Role, str]) -> bool:
    """Whether a role must carry a museum anchor."""
    return Role(role) in MUSEUM_ROLES
