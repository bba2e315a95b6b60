"""Structured outcomes of authorization and workflow operations.

Denials are returned, not raised, so the API layer (and batch operations)
can tell "you may not do this" apart from "this cannot happen from here"
and "someone else changed it first". Only storage faults are exceptions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


class DenialReason(str, Enum):
    """Why an operation was refused."""

    INSUFFICIENT_ROLE = "insufficient_role"
    NOT_OWNER = "not_owner"
    INVALID_TRANSITION = "invalid_transition"
    OUT_OF_ORDER_APPROVAL = "out_of_order_approval"
    STALE_STATE = "stale_state"
    RESOURCE_NOT_FOUND = "resource_not_found"


@dataclass(frozen=True)
class Allowed:
    """Positive authorization decision.

    ``rule`` is the matched transition rule for state-changing actions.
    """

    rule: Optional[Any] = None

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Denied:
    """Negative decision with enough detail for the UI to explain it."""

    reason: DenialReason
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def allowed(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason.value,
            "message": self.message,
            "details": self.details,
        }


AuthDecision = Union[Allowed, Denied]


@dataclass
class TransitionResult:
    """A committed mutation and the audit entry written with it.

    ``resource`` is the updated artifact, rental request, museum or user.
    """

    resource: Any
    audit_entry: Any

    @property
    def allowed(self) -> bool:
        return True

    @property
    def artifact(self) -> Any:
        return self.resource

    @property
    def rental(self) -> Any:
        return self.resource


class StorageUnavailable(Exception):
    """Raised when the resource store cannot be reached.

    The unit of work has been rolled back; callers should retry with backoff.
    """

    def __init__(self, message: str = "Resource store unavailable"):
        super().__init__(message)
