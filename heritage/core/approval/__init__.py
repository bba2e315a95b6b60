"""Approval workflow module for the heritage platform.

Implements the artifact, rental and museum state machines. The persistence
layer lives in ``heritage.core.approval.service``.
"""

from .states import (
    ArtifactState,
    ArtifactEvent,
    RentalState,
    RentalEvent,
    MuseumState,
    MuseumEvent,
    ApprovalStatus,
    ApprovalSlot,
    ReviewLevel,
    TransitionRule,
)
from .machine import (
    WorkflowStateMachine,
    ArtifactStateMachine,
    RentalStateMachine,
    MuseumStateMachine,
    machine_for,
)

__all__ = [
    "ArtifactState",
    "ArtifactEvent",
    "RentalState",
    "RentalEvent",
    "MuseumState",
    "MuseumEvent",
    "ApprovalStatus",
    "ApprovalSlot",
    "ReviewLevel",
    "TransitionRule",
    "WorkflowStateMachine",
    "ArtifactStateMachine",
    "RentalStateMachine",
    "MuseumStateMachine",
    "machine_for",
]
