"""Authorization gate.

Every operation on the workflow goes through ``authorize``:

1. the actor's role must grant the capability the action requires
2. scoped actions also require the resource to be in the actor's scope
3. state transitions must be legal from the resource's current state

The decision is a plain value. ``authorize`` reads nothing but its
arguments, so repeating a call with the same inputs gives the same answer.
"""

import logging
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Union

from heritage.core.approval.machine import machine_for
from heritage.core.approval.states import (
    ArtifactEvent,
    ArtifactState,
    MuseumEvent,
    MuseumState,
    RentalEvent,
    is_scoped_event,
    is_system_event,
    required_capability,
)
from heritage.core.rbac.capabilities import Capability
from heritage.core.rbac.ownership import in_scope
from heritage.core.rbac.roles import Role, capabilities_of
from heritage.core.results import Allowed, AuthDecision, Denied, DenialReason

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Non-transition actions guarded by the gate."""

    READ = "read"                          # View a single resource
    CREATE_ARTIFACT = "create_artifact"    # Resource: the owning museum
    REQUEST_RENTAL = "request_rental"      # Resource: the artifact to rent
    REGISTER_MUSEUM = "register_museum"    # Resource: none (pass None)
    CHANGE_ROLE = "change_role"            # Resource: the target user
    VIEW_AUDIT_LOG = "view_audit_log"      # Resource: none (pass None)


class ActionRequirement(NamedTuple):
    capability: Optional[Capability]
    scoped: bool = False
    needs_resource: bool = True


OPERATION_REQUIREMENTS: Dict[Operation, ActionRequirement] = {
    Operation.READ: ActionRequirement(None),
    Operation.CREATE_ARTIFACT: ActionRequirement(Capability.SUBMIT_ARTIFACT, scoped=True),
    Operation.REQUEST_RENTAL: ActionRequirement(Capability.REQUEST_RENTAL),
    Operation.REGISTER_MUSEUM: ActionRequirement(None, needs_resource=False),
    Operation.CHANGE_ROLE: ActionRequirement(Capability.MANAGE_ALL_USERS),
    Operation.VIEW_AUDIT_LOG: ActionRequirement(Capability.VIEW_AUDIT_LOG, needs_resource=False),
}

# Which resource each event family applies to
EVENT_RESOURCE_TYPES = {
    ArtifactEvent: "artifact",
    RentalEvent: "rental",
    MuseumEvent: "museum",
}

Action = Union[Operation, ArtifactEvent, RentalEvent, MuseumEvent]


def authorize(actor: Any, action: Action, resource: Any = None) -> AuthDecision:
    """
    Decide whether an actor may perform an action on a resource.

    Args:
        actor: Acting user, or None for platform/system events
        action: An Operation or a workflow event
        resource: The target resource (artifact, rental, museum, user)

    Returns:
        Allowed (carrying the matched transition rule for events) or Denied
    """
    if isinstance(action, Operation):
        decision = _authorize_operation(actor, action, resource)
    else:
        decision = _authorize_event(actor, action, resource)

    if not decision.allowed:
        logger.info(
            "Denied %s on %s for actor %s: %s",
            getattr(action, "value", action),
            _describe(resource),
            getattr(actor, "id", None),
            decision.reason.value,
        )
    return decision


def parse_action(name: str, resource_type: Optional[str] = None) -> Action:
    """
    Resolve an action name as sent by clients.

    Operations are matched first; event names are shared between
    workflows, so ``resource_type`` picks the event family.

    Raises:
        ValueError: If the name matches no operation or event
    """
    try:
        return Operation(name)
    except ValueError:
        pass
    for event_type, event_resource in EVENT_RESOURCE_TYPES.items():
        if event_resource == resource_type:
            return event_type(name)
    raise ValueError(f"Unknown action {name!r} for resource type {resource_type!r}")


def _authorize_event(actor: Any, event: Enum, resource: Any) -> AuthDecision:
    if resource is None:
        return _not_found(event)

    expected_type = EVENT_RESOURCE_TYPES.get(type(event))
    if expected_type != getattr(resource, "resource_type", None):
        return Denied(
            DenialReason.INVALID_TRANSITION,
            f"{event.value} does not apply to a {getattr(resource, 'resource_type', 'resource')}",
            {"event": event.value, "current_state": getattr(resource, "status", None)},
        )

    if is_system_event(event):
        # Raised by the platform itself; a super admin may record it by hand
        if actor is not None and not _is_role(actor, Role.SUPER_ADMIN):
            return _insufficient_role(actor, None, event)
    else:
        denial = _check_capability(actor, required_capability(event), event)
        if denial:
            return denial

        if is_scoped_event(event) and not in_scope(actor, resource):
            return _not_owner(actor, resource, event)

    return machine_for(resource).evaluate(event)


def _authorize_operation(actor: Any, operation: Operation, resource: Any) -> AuthDecision:
    requirement = OPERATION_REQUIREMENTS[operation]

    if actor is None or not getattr(actor, "is_active", True):
        return _insufficient_role(actor, requirement.capability, operation)

    if requirement.needs_resource and resource is None:
        return _not_found(operation)

    if operation == Operation.READ:
        if _is_public(resource) or in_scope(actor, resource):
            return Allowed()
        return _not_owner(actor, resource, operation)

    denial = _check_capability(actor, requirement.capability, operation)
    if denial:
        return denial

    if requirement.scoped and not in_scope(actor, resource):
        return _not_owner(actor, resource, operation)

    if operation == Operation.REQUEST_RENTAL and resource.status != ArtifactState.PUBLISHED.value:
        return Denied(
            DenialReason.INVALID_TRANSITION,
            "Only published artifacts can be rented",
            {"current_state": resource.status, "event": operation.value},
        )

    if operation == Operation.CREATE_ARTIFACT and resource.status != MuseumState.APPROVED.value:
        return Denied(
            DenialReason.INVALID_TRANSITION,
            "Artifacts can only be added to an approved museum",
            {"current_state": resource.status, "event": operation.value},
        )

    return Allowed()


def _check_capability(actor: Any, capability: Optional[Capability], action: Enum) -> Optional[Denied]:
    if actor is None or not getattr(actor, "is_active", True):
        return _insufficient_role(actor, capability, action)
    if capability is not None and capability not in capabilities_of(actor.role):
        return _insufficient_role(actor, capability, action)
    return None


def _is_role(actor: Any, role: Role) -> bool:
    return getattr(actor, "role", None) == role.value


def _is_public(resource: Any) -> bool:
    resource_type = getattr(resource, "resource_type", None)
    if resource_type == "artifact":
        return resource.status == ArtifactState.PUBLISHED.value
    if resource_type == "museum":
        return resource.status == MuseumState.APPROVED.value
    return False


def _describe(resource: Any) -> str:
    if resource is None:
        return "nothing"
    return f"{getattr(resource, 'resource_type', 'resource')}:{getattr(resource, 'id', '?')}"


def _insufficient_role(actor: Any, capability: Optional[Capability], action: Enum) -> Denied:
    return Denied(
        DenialReason.INSUFFICIENT_ROLE,
        "Your role does not allow this action",
        {
            "action": action.value,
            "role": getattr(actor, "role", None),
            "required_capability": capability.value if capability else None,
        },
    )


def _not_owner(actor: Any, resource: Any, action: Enum) -> Denied:
    actor_museum = getattr(actor, "museum_id", None)
    return Denied(
        DenialReason.NOT_OWNER,
        "This resource is outside your scope",
        {
            "action": action.value,
            "resource": _describe(resource),
            "actor_museum_id": str(actor_museum) if actor_museum else None,
        },
    )


def _not_found(action: Enum) -> Denied:
    return Denied(
        DenialReason.RESOURCE_NOT_FOUND,
        "Resource not found",
        {"action": action.value},
    )
