"""Audit entry model for the heritage workflow.

This table is APPEND-ONLY: a flush that would update or delete an entry is
refused. Entries are the sole record of who approved what, and when.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy import Column, String, DateTime, JSON, Uuid, event
from sqlalchemy.orm import Session

from heritage.db.base import Base


class AuditImmutableError(Exception):
    """Raised when code tries to modify or delete an audit entry."""


class AuditEntry(Base):
    """
    Immutable record of one privileged mutation.

    ``previous_state`` and ``new_state`` are snapshots of the workflow fields
    that changed (status, approval slots, role).
    """
    __tablename__ = "audit_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Actor (None for system events such as payment completion)
    actor_id = Column(Uuid, nullable=True, index=True)

    # Action details
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(50), nullable=False, index=True)
    resource_id = Column(Uuid, nullable=False, index=True)

    # Museum anchor for scoped visibility
    museum_id = Column(Uuid, nullable=True, index=True)

    # Change tracking
    previous_state = Column(JSON, nullable=True)
    new_state = Column(JSON, nullable=True)
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    def __repr__(self) -> str:
        return f"<AuditEntry {self.action} on {self.resource_type}:{self.resource_id} by {self.actor_id}>"

    @classmethod
    def create_entry(
        cls,
        action: str,
        resource_type: str,
        resource_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
        museum_id: Optional[uuid.UUID] = None,
        previous_state: Optional[Dict[str, Any]] = None,
        new_state: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> "AuditEntry":
        """
        Factory method to create a new audit entry.

        Args:
            action: Action performed (e.g. 'artifact_first_approve', 'role_changed')
            resource_type: Type of resource ('artifact', 'rental', 'museum', 'user')
            resource_id: ID of the affected resource
            actor_id: ID of the acting user (None for system events)
            museum_id: Museum the resource belongs to
            previous_state: Snapshot before the change
            new_state: Snapshot after the change
            details: Additional context (feedback, event name)
        """
        return cls(
            id=uuid.uuid4(),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            actor_id=actor_id,
            museum_id=museum_id,
            previous_state=previous_state,
            new_state=new_state,
            details=details,
            created_at=datetime.utcnow(),
        )


@event.listens_for(Session, "before_flush")
def _refuse_audit_mutation(session, flush_context, instances):
    for obj in session.dirty:
        if isinstance(obj, AuditEntry) and session.is_modified(obj):
            raise AuditImmutableError(f"Audit entry {obj.id} cannot be modified")
    for obj in session.deleted:
        if isinstance(obj, AuditEntry):
            raise AuditImmutableError(f"Audit entry {obj.id} cannot be deleted")
