"""RBAC module for the heritage platform.

Defines roles, their capability sets, and museum-scoped ownership checks.
"""

from .capabilities import Capability, PLATFORM_CAPABILITIES
from .roles import Role, ROLE_CAPABILITIES, capabilities_of, has_capability, requires_museum
from .ownership import in_scope, museum_id_of, owner_id_of, scope_query

__all__ = [
    "Capability",
    "PLATFORM_CAPABILITIES",
    "Role",
    "ROLE_CAPABILITIES",
    "capabilities_of",
    "has_capability",
    "requires_museum",
    "in_scope",
    "museum_id_of",
    "owner_id_of",
    "scope_query",
]
