"""Approval state machine implementation.

Each machine wraps the current state of one resource and validates events
against its transition table. Invalid events come back as ``Denied``
results and leave the machine untouched; capability and ownership checks
belong to the authorization gate.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from heritage.core.results import Allowed, AuthDecision, Denied, DenialReason
from .states import (
    ApprovalSlot,
    ApprovalStatus,
    ArtifactEvent,
    ArtifactState,
    MuseumEvent,
    MuseumState,
    RentalEvent,
    RentalState,
    ARTIFACT_TERMINAL_STATES,
    MUSEUM_TERMINAL_STATES,
    RENTAL_TERMINAL_STATES,
    TransitionRule,
    get_transition_rule,
)


class WorkflowStateMachine:
    """
    Base state machine for a single workflow resource.

    Manages transitions with:
    - Validation against the machine's transition table
    - Structured denial for events not legal from the current state
    """

    state_type: Type[Enum]
    event_type: Type[Enum]
    terminal_states: frozenset = frozenset()

    def __init__(self, entity_id: Any, current_state: Union[Enum, str]):
        """
        Initialize the state machine.

        Args:
            entity_id: ID of the resource (artifact, rental request, museum)
            current_state: Current state, as enum member or stored string
        """
        self.entity_id = entity_id
        self._state = self.state_type(current_state)

    @property
    def state(self) -> Enum:
        """Current state of the resource."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        """Check if the current state accepts no further transitions."""
        return self._state in self.terminal_states

    def evaluate(self, event: Enum) -> AuthDecision:
        """Check whether an event is legal from the current state."""
        rule = get_transition_rule(self._state, self.event_type(event))
        if rule is None:
            return Denied(
                DenialReason.INVALID_TRANSITION,
                f"Cannot perform {self.event_type(event).value} from state {self._state.value}",
                {"current_state": self._state.value, "event": self.event_type(event).value},
            )
        return self._check_guards(rule)

    def can_perform(self, event: Enum) -> bool:
        return self.evaluate(event).allowed

    def get_available_events(self) -> List[Enum]:
        """Get list of events legal from the current state."""
        if self.is_terminal:
            return []
        return [event for event in self.event_type if self.can_perform(event)]

    def snapshot(self) -> Dict[str, Any]:
        """State fields recorded in audit entries."""
        return {"status": self._state.value}

    def transition(
        self,
        event: Enum,
        *,
        actor_id: Optional[Any] = None,
        comment: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Union[Dict[str, Any], Denied]:
        """
        Perform a state transition.

        Args:
            event: The event to apply
            actor_id: ID of the actor performing the transition (None for system)
            comment: Reviewer feedback
            metadata: Additional data to record

        Returns:
            The transition record, or a Denied result if the event is not
            legal from the current state. A denial leaves the machine
            unchanged.
        """
        event = self.event_type(event)
        decision = self.evaluate(event)
        if not decision.allowed:
            return decision

        rule = decision.rule
        previous = self.snapshot()
        from_state = self._state

        self._apply(rule, actor_id=actor_id, comment=comment)

        record = {
            "id": uuid.uuid4(),
            "entity_id": self.entity_id,
            "from_state": from_state.value,
            "to_state": self._state.value,
            "event": event.value,
            "actor_id": actor_id,
            "comment": comment,
            "previous_state": previous,
            "new_state": self.snapshot(),
            "rule": rule,
            "metadata": metadata or {},
            "timestamp": datetime.utcnow(),
        }
        return record

    def _check_guards(self, rule: TransitionRule) -> AuthDecision:
        return Allowed(rule=rule)

    def _apply(self, rule: TransitionRule, *, actor_id: Optional[Any], comment: Optional[str]) -> None:
        self._state = rule.to_state


class ArtifactStateMachine(WorkflowStateMachine):
    """Draft → museum review → final review → published."""

    state_type = ArtifactState
    event_type = ArtifactEvent
    terminal_states = frozenset(ARTIFACT_TERMINAL_STATES)


class MuseumStateMachine(WorkflowStateMachine):
    """Museum registration review by the super admin."""

    state_type = MuseumState
    event_type = MuseumEvent
    terminal_states = frozenset(MUSEUM_TERMINAL_STATES)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "status": self._state.value,
            "verified": self._state == MuseumState.APPROVED,
        }


class RentalStateMachine(WorkflowStateMachine):
    """
    Two-slot rental approval.

    The museum admin decides first. The super admin's slot may only be
    decided once the museum slot is approved; a rejection in either slot
    ends the request.
    """

    state_type = RentalState
    event_type = RentalEvent
    terminal_states = frozenset(RENTAL_TERMINAL_STATES)

    def __init__(
        self,
        entity_id: Any,
        current_state: Union[RentalState, str],
        *,
        museum_admin_status: Union[ApprovalStatus, str] = ApprovalStatus.PENDING,
        super_admin_status: Union[ApprovalStatus, str] = ApprovalStatus.PENDING,
    ):
        super().__init__(entity_id, current_state)
        self.approvals: Dict[ApprovalSlot, ApprovalStatus] = {
            ApprovalSlot.MUSEUM_ADMIN: ApprovalStatus(museum_admin_status),
            ApprovalSlot.SUPER_ADMIN: ApprovalStatus(super_admin_status),
        }

    def snapshot(self) -> Dict[str, Any]:
        return {
            "status": self._state.value,
            "museum_admin_approval": self.approvals[ApprovalSlot.MUSEUM_ADMIN].value,
            "super_admin_approval": self.approvals[ApprovalSlot.SUPER_ADMIN].value,
        }

    def _check_guards(self, rule: TransitionRule) -> AuthDecision:
        museum_status = self.approvals[ApprovalSlot.MUSEUM_ADMIN]

        if rule.slot is not None and self.approvals[rule.slot] != ApprovalStatus.PENDING:
            return Denied(
                DenialReason.INVALID_TRANSITION,
                f"The {rule.slot.value} approval has already been decided",
                {
                    "current_state": self._state.value,
                    "event": rule.event.value,
                    "slot": rule.slot.value,
                    "slot_status": self.approvals[rule.slot].value,
                },
            )

        if rule.requires_prior_approval and museum_status != ApprovalStatus.APPROVED:
            return Denied(
                DenialReason.OUT_OF_ORDER_APPROVAL,
                "Museum admin approval is required before the final decision",
                {
                    "current_state": self._state.value,
                    "event": rule.event.value,
                    "museum_admin_approval": museum_status.value,
                },
            )

        return Allowed(rule=rule)

    def _apply(self, rule: TransitionRule, *, actor_id: Optional[Any], comment: Optional[str]) -> None:
        if rule.slot is not None:
            self.approvals[rule.slot] = ApprovalStatus(rule.decision)
        self._state = rule.to_state


def machine_for(resource: Any) -> WorkflowStateMachine:
    """Build the state machine matching a stored resource."""
    resource_type = getattr(resource, "resource_type", None)
    if resource_type == "artifact":
        return ArtifactStateMachine(resource.id, resource.status)
    if resource_type == "rental":
        return RentalStateMachine(
            resource.id,
            resource.status,
            museum_admin_status=resource.museum_admin_status,
            super_admin_status=resource.super_admin_status,
        )
    if resource_type == "museum":
        return MuseumStateMachine(resource.id, resource.status)
    raise ValueError(f"No workflow for resource type {resource_type!r}")
