"""Capability model for the heritage platform RBAC.

Capabilities are coarse permission bits derived from an actor's role. The
authorization gate asks for exactly one capability per action; museum
scoping is handled separately by the ownership resolver.
"""

from enum import Enum


class Capability(str, Enum):
    """Named permission bits consumed by the authorization gate."""

    # Platform administration (super admin only)
    MANAGE_ALL_USERS = "manage_all_users"
    MANAGE_ALL_MUSEUMS = "manage_all_museums"

    # Artifact review tiers
    FIRST_APPROVE_ARTIFACT = "first_approve_artifact"   # museum-level review
    FINAL_APPROVE_ARTIFACT = "final_approve_artifact"   # platform-level review

    # Rental review tiers
    FIRST_APPROVE_RENTAL = "first_approve_rental"
    FINAL_APPROVE_RENTAL = "final_approve_rental"

    # Museum-scoped work
    MANAGE_OWN_MUSEUM = "manage_own_museum"
    SUBMIT_ARTIFACT = "submit_artifact"

    # Visitor-facing
    REQUEST_RENTAL = "request_rental"

    # Compliance
    VIEW_AUDIT_LOG = "view_audit_log"


# Capabilities that only a platform-wide administrator may hold
PLATFORM_CAPABILITIES = frozenset([
    Capability.MANAGE_ALL_USERS,
    Capability.MANAGE_ALL_MUSEUMS,
    Capability.FINAL_APPROVE_ARTIFACT,
    Capability.FINAL_APPROVE_RENTAL,
])

