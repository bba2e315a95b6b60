"""Workflow service for artifact, rental and museum approvals.

Provides the high-level API over the state machines and the authorization
gate, including database persistence, audit logging and event emission.
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterator, List, NamedTuple, Optional, Union
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from heritage.core.gate import Action, Operation, authorize
from heritage.core.rbac.ownership import scope_query
from heritage.core.rbac.roles import Role, requires_museum
from heritage.core.results import (
    AuthDecision,
    Denied,
    DenialReason,
    StorageUnavailable,
    TransitionResult,
)
from heritage.db.models import (
    Artifact,
    ArtifactReview,
    AuditEntry,
    Museum,
    RentalRequest,
    User,
)
from .machine import machine_for
from .states import (
    ApprovalSlot,
    ApprovalStatus,
    ArtifactEvent,
    ArtifactState,
    MuseumEvent,
    MuseumState,
    RentalEvent,
    RentalState,
)

logger = logging.getLogger(__name__)

RESOURCE_MODELS = {
    "artifact": Artifact,
    "rental": RentalRequest,
    "museum": Museum,
    "user": User,
}


class ResourceRef(NamedTuple):
    """Reference to a stored resource, resolved by the service."""

    resource_type: str
    resource_id: Any


@dataclass
class AuditFilter:
    """Criteria for querying the audit trail. Unset fields match anything."""

    actor_id: Optional[UUID] = None
    resource_type: Optional[str] = None
    resource_id: Optional[UUID] = None
    action: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    limit: int = 500


@dataclass
class WorkflowEvent:
    """Notification of a committed workflow mutation."""

    type: str
    resource_type: str
    resource_id: UUID
    museum_id: Optional[UUID]
    actor_id: Optional[UUID]
    previous_state: Optional[Dict[str, Any]]
    new_state: Optional[Dict[str, Any]]
    owner_id: Optional[UUID] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)


EventSink = Callable[[WorkflowEvent], None]


class WorkflowService:
    """
    High-level service for the heritage approval workflow.

    Handles:
    - Authorization of actions against stored resources
    - Performing state transitions with persistence
    - Resource creation (museums, artifacts, rental requests)
    - Role changes
    - Scoped listing and audit queries
    - Batch operations

    Every mutation commits its resource change, review record and audit
    entry together, then hands a ``WorkflowEvent`` to the event sink.
    """

    def __init__(self, db: Session, event_sink: Optional[EventSink] = None):
        """
        Initialize the workflow service.

        Args:
            db: Database session
            event_sink: Optional callable invoked after each committed mutation
        """
        self.db = db
        self.event_sink = event_sink

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def authorize(self, actor: Optional[User], action: Action, resource_ref: Optional[ResourceRef]) -> AuthDecision:
        """Resolve a resource reference and ask the gate for a decision."""
        resource = None
        if resource_ref is not None:
            with self._storage_guard():
                resource = self._load(resource_ref.resource_type, resource_ref.resource_id)
            if resource is None:
                return _missing(resource_ref.resource_type, resource_ref.resource_id)
        return authorize(actor, action, resource)

    def available_events(self, actor: Optional[User], resource_ref: ResourceRef) -> Union[List[Action], Denied]:
        """Workflow events the actor could apply to a resource right now."""
        with self._storage_guard():
            resource = self._load(resource_ref.resource_type, resource_ref.resource_id)
        if resource is None:
            return _missing(resource_ref.resource_type, resource_ref.resource_id)
        if resource_ref.resource_type not in ("artifact", "rental", "museum"):
            raise ValueError(f"No workflow for resource type {resource_ref.resource_type!r}")

        return [
            event for event in machine_for(resource).get_available_events()
            if authorize(actor, event, resource).allowed
        ]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def apply_artifact_transition(
        self,
        artifact_id: UUID,
        event: Union[ArtifactEvent, str],
        actor: Optional[User],
        *,
        feedback: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> Union[TransitionResult, Denied]:
        """
        Apply a review event to an artifact.

        Args:
            artifact_id: ID of the artifact
            event: Review event to apply
            actor: Acting user
            feedback: Reviewer feedback stored on the review record
            expected_status: Status the caller last saw; a mismatch is stale

        Returns:
            TransitionResult with the updated artifact and its audit entry,
            or Denied
        """
        return self._apply_transition(
            "artifact", artifact_id, ArtifactEvent(event), actor,
            comment=feedback, expected_status=expected_status,
        )

    def apply_rental_transition(
        self,
        rental_id: UUID,
        event: Union[RentalEvent, str],
        actor: Optional[User],
        *,
        comments: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> Union[TransitionResult, Denied]:
        """Apply an approval or lifecycle event to a rental request.

        ``actor`` is None for events raised by the payment and scheduling
        side of the platform.
        """
        return self._apply_transition(
            "rental", rental_id, RentalEvent(event), actor,
            comment=comments, expected_status=expected_status,
        )

    def apply_museum_transition(
        self,
        museum_id: UUID,
        event: Union[MuseumEvent, str],
        actor: Optional[User],
        *,
        comments: Optional[str] = None,
    ) -> Union[TransitionResult, Denied]:
        """Approve or reject a museum registration."""
        return self._apply_transition("museum", museum_id, MuseumEvent(event), actor, comment=comments)

    def approve_museum(self, museum_id: UUID, actor: Optional[User], comments: Optional[str] = None):
        return self.apply_museum_transition(museum_id, MuseumEvent.APPROVE, actor, comments=comments)

    def reject_museum(self, museum_id: UUID, actor: Optional[User], comments: Optional[str] = None):
        return self.apply_museum_transition(museum_id, MuseumEvent.REJECT, actor, comments=comments)

    def batch_apply_artifact_transition(
        self,
        artifact_ids: List[UUID],
        event: Union[ArtifactEvent, str],
        actor: Optional[User],
        *,
        feedback: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Apply one event to several artifacts.

        Each artifact is its own unit of work, so one failure does not undo
        the others.

        Returns:
            Summary of results

        Raises:
            ValueError: If the event is not an artifact event
        """
        event = ArtifactEvent(event)
        results: Dict[str, Any] = {"succeeded": [], "failed": []}

        for artifact_id in artifact_ids:
            try:
                outcome = self.apply_artifact_transition(artifact_id, event, actor, feedback=feedback)
            except StorageUnavailable as e:
                results["failed"].append({
                    "id": str(artifact_id),
                    "reason": "storage_unavailable",
                    "message": str(e),
                })
                continue

            if isinstance(outcome, Denied):
                results["failed"].append({
                    "id": str(artifact_id),
                    "reason": outcome.reason.value,
                    "message": outcome.message,
                })
            else:
                results["succeeded"].append(str(artifact_id))

        logger.info(
            "Batch %s: %d succeeded, %d failed",
            event.value, len(results["succeeded"]), len(results["failed"]),
        )
        return results

    def _apply_transition(
        self,
        resource_type: str,
        resource_id: UUID,
        event,
        actor: Optional[User],
        *,
        comment: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> Union[TransitionResult, Denied]:
        model = RESOURCE_MODELS[resource_type]
        actor_id = actor.id if actor is not None else None

        with self._storage_guard():
            resource = self._load(resource_type, resource_id, lock=True)
            if resource is None:
                self.db.rollback()
                return _missing(resource_type, resource_id)

            decision = authorize(actor, event, resource)
            if not decision.allowed:
                self.db.rollback()
                return decision

            if expected_status is not None and resource.status != expected_status:
                current = resource.status
                self.db.rollback()
                return _stale(event, expected_status, current)

            machine = machine_for(resource)
            record = machine.transition(event, actor_id=actor_id, comment=comment)
            if isinstance(record, Denied):
                self.db.rollback()
                return record

            rule = record["rule"]
            observed_status, observed_version = resource.status, resource.version
            values = self._column_values(resource_type, rule, record, actor_id, comment)

            # Conditional write: only succeeds if nobody moved the row since we read it
            result = self.db.execute(
                update(model)
                .where(
                    model.id == resource.id,
                    model.status == observed_status,
                    model.version == observed_version,
                )
                .values(version=model.version + 1, **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.warning(
                    "Stale write on %s %s: %s from %s v%s",
                    resource_type, resource_id, event.value, observed_status, observed_version,
                )
                self.db.rollback()
                return _stale(event, observed_status)

            if resource_type == "artifact":
                self.db.add(ArtifactReview(
                    id=uuid.uuid4(),
                    artifact_id=resource.id,
                    reviewer_id=actor_id,
                    decision=rule.decision,
                    feedback=comment,
                    level=rule.level.value,
                    created_at=record["timestamp"],
                ))

            museum_id = resource.id if resource_type == "museum" else resource.museum_id
            action = _audit_action(resource_type, event, rule)
            audit_entry = AuditEntry.create_entry(
                action,
                resource_type,
                resource.id,
                actor_id=actor_id,
                museum_id=museum_id,
                previous_state=record["previous_state"],
                new_state=record["new_state"],
                details={"event": event.value, "comment": comment},
            )
            self.db.add(audit_entry)
            self.db.commit()
            self.db.refresh(resource)

        logger.info(
            "%s %s: %s -> %s by %s",
            resource_type, resource.id, record["from_state"], record["to_state"], actor_id,
        )
        self._emit(WorkflowEvent(
            type=action,
            resource_type=resource_type,
            resource_id=resource.id,
            museum_id=museum_id,
            actor_id=actor_id,
            previous_state=record["previous_state"],
            new_state=record["new_state"],
            owner_id=_owner_of(resource),
            details={"event": event.value, "comment": comment},
        ))
        return TransitionResult(resource=resource, audit_entry=audit_entry)

    def _column_values(
        self,
        resource_type: str,
        rule,
        record: Dict[str, Any],
        actor_id: Optional[UUID],
        comment: Optional[str],
    ) -> Dict[str, Any]:
        """Columns written by a transition, besides the version bump."""
        now = record["timestamp"]
        values: Dict[str, Any] = {"status": record["to_state"], "updated_at": now}

        if resource_type == "rental" and rule.slot is not None:
            prefix = "museum_admin" if rule.slot == ApprovalSlot.MUSEUM_ADMIN else "super_admin"
            values[f"{prefix}_status"] = rule.decision
            values[f"{prefix}_by"] = actor_id
            values[f"{prefix}_at"] = now
            values[f"{prefix}_comments"] = comment
        elif resource_type == "museum":
            values["verified"] = record["to_state"] == MuseumState.APPROVED.value

        return values

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def register_museum(self, name: str, actor: Optional[User]) -> Union[TransitionResult, Denied]:
        """Register a new museum; it waits in ``pending`` for super admin review."""
        if not name or not name.strip():
            raise ValueError("Museum name is required")

        decision = authorize(actor, Operation.REGISTER_MUSEUM)
        if not decision.allowed:
            return decision

        with self._storage_guard():
            museum = Museum(
                id=uuid.uuid4(),
                name=name.strip(),
                admin_id=actor.id,
                status=MuseumState.PENDING.value,
                verified=False,
                version=1,
            )
            self.db.add(museum)
            audit_entry = AuditEntry.create_entry(
                "museum_registered",
                "museum",
                museum.id,
                actor_id=actor.id,
                museum_id=museum.id,
                new_state={"status": museum.status, "verified": False},
                details={"name": museum.name},
            )
            self.db.add(audit_entry)
            self.db.commit()
            self.db.refresh(museum)

        logger.info("Museum %s registered by %s", museum.id, actor.id)
        self._emit_created(audit_entry, owner_id=actor.id)
        return TransitionResult(resource=museum, audit_entry=audit_entry)

    def create_artifact(
        self,
        museum_id: UUID,
        name: str,
        actor: Optional[User],
        description: Optional[str] = None,
    ) -> Union[TransitionResult, Denied]:
        """Create a draft artifact in one of the actor's museums."""
        if not name or not name.strip():
            raise ValueError("Artifact name is required")

        with self._storage_guard():
            museum = self._load("museum", museum_id)
            if museum is None:
                return _missing("museum", museum_id)

            decision = authorize(actor, Operation.CREATE_ARTIFACT, museum)
            if not decision.allowed:
                return decision

            artifact = Artifact(
                id=uuid.uuid4(),
                museum_id=museum.id,
                created_by=actor.id,
                name=name.strip(),
                description=description,
                status=ArtifactState.DRAFT.value,
                version=1,
            )
            self.db.add(artifact)
            audit_entry = AuditEntry.create_entry(
                "artifact_created",
                "artifact",
                artifact.id,
                actor_id=actor.id,
                museum_id=museum.id,
                new_state={"status": artifact.status},
                details={"name": artifact.name},
            )
            self.db.add(audit_entry)
            self.db.commit()
            self.db.refresh(artifact)

        logger.info("Artifact %s created in museum %s by %s", artifact.id, artifact.museum_id, actor.id)
        self._emit_created(audit_entry, owner_id=actor.id)
        return TransitionResult(resource=artifact, audit_entry=audit_entry)

    def create_rental_request(
        self,
        artifact_id: UUID,
        actor: Optional[User],
        purpose: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Union[TransitionResult, Denied]:
        """File a rental request for a published artifact."""
        if start_date and end_date and end_date < start_date:
            raise ValueError("Rental end date must not be before its start date")

        with self._storage_guard():
            artifact = self._load("artifact", artifact_id)
            if artifact is None:
                return _missing("artifact", artifact_id)

            decision = authorize(actor, Operation.REQUEST_RENTAL, artifact)
            if not decision.allowed:
                return decision

            rental = RentalRequest(
                id=uuid.uuid4(),
                artifact_id=artifact.id,
                museum_id=artifact.museum_id,
                renter_id=actor.id,
                purpose=purpose,
                start_date=start_date,
                end_date=end_date,
                status=RentalState.PENDING_REVIEW.value,
                version=1,
                museum_admin_status=ApprovalStatus.PENDING.value,
                super_admin_status=ApprovalStatus.PENDING.value,
            )
            self.db.add(rental)
            audit_entry = AuditEntry.create_entry(
                "rental_requested",
                "rental",
                rental.id,
                actor_id=actor.id,
                museum_id=artifact.museum_id,
                new_state=machine_for(rental).snapshot(),
                details={"artifact_id": str(artifact.id), "purpose": purpose},
            )
            self.db.add(audit_entry)
            self.db.commit()
            self.db.refresh(rental)

        logger.info("Rental %s requested for artifact %s by %s", rental.id, rental.artifact_id, actor.id)
        self._emit_created(audit_entry, owner_id=actor.id)
        return TransitionResult(resource=rental, audit_entry=audit_entry)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def change_role(
        self,
        target_id: UUID,
        new_role: Union[Role, str],
        actor: Optional[User],
        museum_id: Optional[UUID] = None,
    ) -> Union[TransitionResult, Denied]:
        """
        Change a user's role and museum affiliation.

        Raises:
            ValueError: If the role is unknown, or a museum role comes
                without a museum
        """
        role = Role(new_role)
        if requires_museum(role) and museum_id is None:
            raise ValueError(f"Role {role.value} requires a museum")
        if not requires_museum(role):
            museum_id = None

        with self._storage_guard():
            target = self._load("user", target_id)
            if target is None:
                return _missing("user", target_id)

            decision = authorize(actor, Operation.CHANGE_ROLE, target)
            if not decision.allowed:
                return decision

            if museum_id is not None and self._load("museum", museum_id) is None:
                return _missing("museum", museum_id)

            previous = _role_snapshot(target.role, target.museum_id)
            new = _role_snapshot(role.value, museum_id)
            if previous == new:
                return Denied(
                    DenialReason.INVALID_TRANSITION,
                    "User already has this role",
                    {"current_state": previous, "event": Operation.CHANGE_ROLE.value},
                )

            old_museum_id = target.museum_id
            target.role = role.value
            target.museum_id = museum_id
            target.updated_at = datetime.utcnow()

            audit_entry = AuditEntry.create_entry(
                "role_changed",
                "user",
                target.id,
                actor_id=actor.id,
                museum_id=museum_id or old_museum_id,
                previous_state=previous,
                new_state=new,
            )
            self.db.add(audit_entry)
            self.db.commit()
            self.db.refresh(target)

        logger.info("Role of %s changed %s -> %s by %s", target.id, previous["role"], new["role"], actor.id)
        self._emit(WorkflowEvent(
            type="role_changed",
            resource_type="user",
            resource_id=target.id,
            museum_id=audit_entry.museum_id,
            actor_id=actor.id,
            previous_state=previous,
            new_state=new,
            owner_id=target.id,
        ))
        return TransitionResult(resource=target, audit_entry=audit_entry)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_resource(self, resource_type: str, resource_id: UUID, actor: Optional[User]):
        """Fetch one resource if the actor may read it."""
        with self._storage_guard():
            resource = self._load(resource_type, resource_id)
        if resource is None:
            return _missing(resource_type, resource_id)
        decision = authorize(actor, Operation.READ, resource)
        if not decision.allowed:
            return decision
        return resource

    def list_artifacts(self, actor: Optional[User], status: Optional[str] = None) -> List[Artifact]:
        """List artifacts within the actor's scope."""
        with self._storage_guard():
            query = scope_query(self.db.query(Artifact), actor, Artifact)
            if status:
                query = query.filter(Artifact.status == status)
            return query.order_by(Artifact.created_at.desc()).all()

    def list_rentals(self, actor: Optional[User], status: Optional[str] = None) -> List[RentalRequest]:
        """List rental requests within the actor's scope."""
        with self._storage_guard():
            query = scope_query(self.db.query(RentalRequest), actor, RentalRequest)
            if status:
                query = query.filter(RentalRequest.status == status)
            return query.order_by(RentalRequest.created_at.desc()).all()

    def list_audit_entries(
        self,
        audit_filter: Optional[AuditFilter] = None,
        actor: Optional[User] = None,
    ) -> Union[List[AuditEntry], Denied]:
        """
        Query the audit trail, newest first.

        Without an actor the query is unscoped (internal callers). Super
        admins see every entry; museum admins only entries anchored to
        their museum.
        """
        audit_filter = audit_filter or AuditFilter()

        if actor is not None:
            decision = authorize(actor, Operation.VIEW_AUDIT_LOG)
            if not decision.allowed:
                return decision

        with self._storage_guard():
            query = self.db.query(AuditEntry)

            if actor is not None and actor.role != Role.SUPER_ADMIN.value:
                if actor.museum_id is None:
                    return []
                query = query.filter(AuditEntry.museum_id == actor.museum_id)

            if audit_filter.actor_id:
                query = query.filter(AuditEntry.actor_id == audit_filter.actor_id)
            if audit_filter.resource_type:
                query = query.filter(AuditEntry.resource_type == audit_filter.resource_type)
            if audit_filter.resource_id:
                query = query.filter(AuditEntry.resource_id == audit_filter.resource_id)
            if audit_filter.action:
                query = query.filter(AuditEntry.action == audit_filter.action)
            if audit_filter.since:
                query = query.filter(AuditEntry.created_at >= audit_filter.since)
            if audit_filter.until:
                query = query.filter(AuditEntry.created_at <= audit_filter.until)

            return query.order_by(AuditEntry.created_at.desc()).limit(audit_filter.limit).all()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, resource_type: str, resource_id: Any, lock: bool = False):
        model = RESOURCE_MODELS.get(resource_type)
        if model is None:
            raise ValueError(f"Unknown resource type {resource_type!r}")
        try:
            resource_id = UUID(str(resource_id))
        except ValueError:
            return None
        query = self.db.query(model).filter(model.id == resource_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    @contextmanager
    def _storage_guard(self) -> Iterator[None]:
        """Roll back on any failure; surface driver errors as StorageUnavailable."""
        try:
            yield
        except DBAPIError as e:
            self.db.rollback()
            logger.error("Resource store error: %s", e)
            raise StorageUnavailable() from e
        except Exception:
            self.db.rollback()
            raise

    def _emit_created(self, audit_entry: AuditEntry, owner_id: Optional[UUID]) -> None:
        self._emit(WorkflowEvent(
            type=audit_entry.action,
            resource_type=audit_entry.resource_type,
            resource_id=audit_entry.resource_id,
            museum_id=audit_entry.museum_id,
            actor_id=audit_entry.actor_id,
            previous_state=None,
            new_state=audit_entry.new_state,
            owner_id=owner_id,
            details=audit_entry.details or {},
        ))

    def _emit(self, event: WorkflowEvent) -> None:
        """Hand an event to the sink. The mutation is already committed."""
        if self.event_sink is None:
            return
        try:
            self.event_sink(event)
        except Exception:
            logger.exception("Event sink failed for %s on %s", event.type, event.resource_id)


def _audit_action(resource_type: str, event, rule) -> str:
    if resource_type == "museum":
        return f"museum_{rule.decision}"
    return f"{resource_type}_{event.value}"


def _owner_of(resource: Any) -> Optional[UUID]:
    if resource.resource_type == "rental":
        return resource.renter_id
    if resource.resource_type == "artifact":
        return resource.created_by
    if resource.resource_type == "museum":
        return resource.admin_id
    return None


def _role_snapshot(role: str, museum_id: Optional[UUID]) -> Dict[str, Any]:
    return {"role": role, "museum_id": str(museum_id) if museum_id else None}


def _missing(resource_type: str, resource_id: Any) -> Denied:
    return Denied(
        DenialReason.RESOURCE_NOT_FOUND,
        f"{resource_type.capitalize()} not found",
        {"resource_type": resource_type, "resource_id": str(resource_id)},
    )


def _stale(event, observed_status: str, current_status: Optional[str] = None) -> Denied:
    return Denied(
        DenialReason.STALE_STATE,
        "The resource was changed by someone else; reload and try again",
        {"event": event.value, "observed_state": observed_status, "current_state": current_status},
    )
