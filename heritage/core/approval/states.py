"""Approval workflow states and transitions.

Artifact lifecycle:

    ┌───────┐ first_approve  ┌────────────────┐ final_approve  ┌───────────┐
    │ DRAFT │───────────────►│ PENDING-REVIEW │───────────────►│ PUBLISHED │
    └───┬───┘                └───────┬────────┘                └───────────┘
        │ first_reject               │ final_reject
        │        ┌──────────┐        │
        └───────►│ REJECTED │◄───────┘
                 └────┬─────┘
                      │ resubmit
                      ▼
                   DRAFT

Rental lifecycle (two approval slots, museumAdmin then superAdmin):

    PENDING_REVIEW ──museum_approve──► PENDING_REVIEW (museum slot approved)
    PENDING_REVIEW ──museum_reject───► REJECTED
    PENDING_REVIEW ──final_approve───► PAYMENT_PENDING ──complete_payment──► ACTIVE
    PENDING_REVIEW ──final_reject────► REJECTED                 ACTIVE ──end_period──► COMPLETED

Museum registration:

    PENDING ──approve──► APPROVED
    PENDING ──reject───► REJECTED
"""

from enum import Enum
from typing import Dict, Iterable, NamedTuple, Optional, Set, Tuple

from heritage.core.rbac.capabilities import Capability


class ArtifactState(str, Enum):
    """States of an artifact submission."""

    DRAFT = "draft"                    # Being authored or awaiting first review
    PENDING_REVIEW = "pending-review"  # Museum approved, awaiting super admin
    PUBLISHED = "published"            # Publicly visible
    REJECTED = "rejected"              # Returned to the museum for revision


class ArtifactEvent(str, Enum):
    """Actions that move an artifact between states."""

    FIRST_APPROVE = "first_approve"    # DRAFT → PENDING_REVIEW
    FIRST_REJECT = "first_reject"      # DRAFT → REJECTED
    FINAL_APPROVE = "final_approve"    # PENDING_REVIEW → PUBLISHED
    FINAL_REJECT = "final_reject"      # PENDING_REVIEW → REJECTED
    RESUBMIT = "resubmit"              # REJECTED → DRAFT


class ReviewLevel(str, Enum):
    """Which tier recorded an artifact review."""

    MUSEUM_ADMIN = "museum_admin"
    FINAL = "final"


class ReviewDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    RESUBMITTED = "resubmitted"


class RentalState(str, Enum):
    """States of a rental request."""

    PENDING_REVIEW = "pending_review"
    REJECTED = "rejected"
    PAYMENT_PENDING = "payment_pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class RentalEvent(str, Enum):
    """Actions that move a rental request between states."""

    MUSEUM_APPROVE = "museum_approve"
    MUSEUM_REJECT = "museum_reject"
    FINAL_APPROVE = "final_approve"
    FINAL_REJECT = "final_reject"

    # System events from the payment/scheduling side
    COMPLETE_PAYMENT = "complete_payment"
    END_PERIOD = "end_period"


class ApprovalStatus(str, Enum):
    """Status of a single rental approval slot."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalSlot(str, Enum):
    MUSEUM_ADMIN = "museumAdmin"
    SUPER_ADMIN = "superAdmin"


class MuseumState(str, Enum):
    """Registration status of a museum."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MuseumEvent(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class TransitionRule(NamedTuple):
    """Defines a valid state transition.

    ``capability`` is None only for system events. ``scoped`` rules also
    require the actor to own the resource's museum. Rental rules name the
    approval ``slot`` they decide; ``requires_prior_approval`` rules may only
    fire once the museum slot is approved.
    """
    from_state: Enum
    to_state: Enum
    event: Enum
    capability: Optional[Capability] = None
    scoped: bool = False
    level: Optional[ReviewLevel] = None
    decision: Optional[str] = None
    slot: Optional[ApprovalSlot] = None
    requires_prior_approval: bool = False
    system: bool = False


ARTIFACT_RULES: list[TransitionRule] = [
    # First tier: the museum's own admin
    TransitionRule(ArtifactState.DRAFT, ArtifactState.PENDING_REVIEW, ArtifactEvent.FIRST_APPROVE,
                   Capability.FIRST_APPROVE_ARTIFACT, scoped=True,
                   level=ReviewLevel.MUSEUM_ADMIN, decision=ReviewDecision.APPROVED.value),
    TransitionRule(ArtifactState.DRAFT, ArtifactState.REJECTED, ArtifactEvent.FIRST_REJECT,
                   Capability.FIRST_APPROVE_ARTIFACT, scoped=True,
                   level=ReviewLevel.MUSEUM_ADMIN, decision=ReviewDecision.REJECTED.value),

    # Final tier: platform super admin
    TransitionRule(ArtifactState.PENDING_REVIEW, ArtifactState.PUBLISHED, ArtifactEvent.FINAL_APPROVE,
                   Capability.FINAL_APPROVE_ARTIFACT,
                   level=ReviewLevel.FINAL, decision=ReviewDecision.APPROVED.value),
    TransitionRule(ArtifactState.PENDING_REVIEW, ArtifactState.REJECTED, ArtifactEvent.FINAL_REJECT,
                   Capability.FINAL_APPROVE_ARTIFACT,
                   level=ReviewLevel.FINAL, decision=ReviewDecision.REJECTED.value),

    # Revision
    TransitionRule(ArtifactState.REJECTED, ArtifactState.DRAFT, ArtifactEvent.RESUBMIT,
                   Capability.SUBMIT_ARTIFACT, scoped=True,
                   level=ReviewLevel.MUSEUM_ADMIN, decision=ReviewDecision.RESUBMITTED.value),
]

RENTAL_RULES: list[TransitionRule] = [
    # Museum screening leaves the request in review, forwarded to the super admin
    TransitionRule(RentalState.PENDING_REVIEW, RentalState.PENDING_REVIEW, RentalEvent.MUSEUM_APPROVE,
                   Capability.FIRST_APPROVE_RENTAL, scoped=True,
                   decision=ApprovalStatus.APPROVED.value, slot=ApprovalSlot.MUSEUM_ADMIN),
    TransitionRule(RentalState.PENDING_REVIEW, RentalState.REJECTED, RentalEvent.MUSEUM_REJECT,
                   Capability.FIRST_APPROVE_RENTAL, scoped=True,
                   decision=ApprovalStatus.REJECTED.value, slot=ApprovalSlot.MUSEUM_ADMIN),

    # Final decision
    TransitionRule(RentalState.PENDING_REVIEW, RentalState.PAYMENT_PENDING, RentalEvent.FINAL_APPROVE,
                   Capability.FINAL_APPROVE_RENTAL,
                   decision=ApprovalStatus.APPROVED.value, slot=ApprovalSlot.SUPER_ADMIN,
                   requires_prior_approval=True),
    TransitionRule(RentalState.PENDING_REVIEW, RentalState.REJECTED, RentalEvent.FINAL_REJECT,
                   Capability.FINAL_APPROVE_RENTAL,
                   decision=ApprovalStatus.REJECTED.value, slot=ApprovalSlot.SUPER_ADMIN,
                   requires_prior_approval=True),

    # Lifecycle driven by payment and scheduling
    TransitionRule(RentalState.PAYMENT_PENDING, RentalState.ACTIVE, RentalEvent.COMPLETE_PAYMENT,
                   system=True),
    TransitionRule(RentalState.ACTIVE, RentalState.COMPLETED, RentalEvent.END_PERIOD,
                   system=True),
]

MUSEUM_RULES: list[TransitionRule] = [
    TransitionRule(MuseumState.PENDING, MuseumState.APPROVED, MuseumEvent.APPROVE,
                   Capability.MANAGE_ALL_MUSEUMS, decision=MuseumState.APPROVED.value),
    TransitionRule(MuseumState.PENDING, MuseumState.REJECTED, MuseumEvent.REJECT,
                   Capability.MANAGE_ALL_MUSEUMS, decision=MuseumState.REJECTED.value),
]


def _build_lookup(
    rules: Iterable[TransitionRule],
) -> Tuple[Dict[Enum, Set[Enum]], Dict[Tuple[Enum, Enum], TransitionRule]]:
    """Index rules by source state and by (state, event)."""
    valid: Dict[Enum, Set[Enum]] = {}
    targets: Dict[Tuple[Enum, Enum], TransitionRule] = {}
    for rule in rules:
        valid.setdefault(rule.from_state, set()).add(rule.event)
        targets[(rule.from_state, rule.event)] = rule
    return valid, targets


VALID_ARTIFACT_TRANSITIONS, ARTIFACT_TRANSITION_TARGETS = _build_lookup(ARTIFACT_RULES)
VALID_RENTAL_TRANSITIONS, RENTAL_TRANSITION_TARGETS = _build_lookup(RENTAL_RULES)
VALID_MUSEUM_TRANSITIONS, MUSEUM_TRANSITION_TARGETS = _build_lookup(MUSEUM_RULES)

_TARGETS_BY_EVENT_TYPE = {
    ArtifactEvent: ARTIFACT_TRANSITION_TARGETS,
    RentalEvent: RENTAL_TRANSITION_TARGETS,
    MuseumEvent: MUSEUM_TRANSITION_TARGETS,
}


# Keyed by (event type, event): artifact and rental events share values
# such as "final_approve", and str enums with equal values hash alike.
# The requirement of an event is identical across its source states.
EVENT_RULES: Dict[Tuple[type, Enum], TransitionRule] = {
    (type(rule.event), rule.event): rule
    for rule in ARTIFACT_RULES + RENTAL_RULES + MUSEUM_RULES
}


def required_capability(event: Enum) -> Optional[Capability]:
    """Capability an actor needs to fire an event (None for system events)."""
    rule = EVENT_RULES.get((type(event), event))
    return rule.capability if rule else None


def is_scoped_event(event: Enum) -> bool:
    """Whether firing an event also requires museum ownership."""
    rule = EVENT_RULES.get((type(event), event))
    return bool(rule and rule.scoped)


def is_system_event(event: Enum) -> bool:
    """Whether an event is raised by the platform rather than a reviewer."""
    rule = EVENT_RULES.get((type(event), event))
    return bool(rule and rule.system)


# Published has no outgoing edge in this workflow
ARTIFACT_TERMINAL_STATES: Set[ArtifactState] = {ArtifactState.PUBLISHED}

RENTAL_TERMINAL_STATES: Set[RentalState] = {
    RentalState.REJECTED,
    RentalState.COMPLETED,
}

MUSEUM_TERMINAL_STATES: Set[MuseumState] = {
    MuseumState.APPROVED,
    MuseumState.REJECTED,
}


def can_transition(from_state: Enum, event: Enum) -> bool:
    """Check if a transition is valid from the given state."""
    return get_transition_rule(from_state, event) is not None


def get_transition_rule(from_state: Enum, event: Enum) -> Optional[TransitionRule]:
    """Get the transition rule for a state/event combination."""
    targets = _TARGETS_BY_EVENT_TYPE.get(type(event))
    if targets is None:
        return None
    return targets.get((from_state, event))


def get_target_state(from_state: Enum, event: Enum) -> Optional[Enum]:
    """Get the target state for a transition."""
    rule = get_transition_rule(from_state, event)
    return rule.to_state if rule else None
