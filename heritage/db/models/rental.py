"""Rental request database model."""

import uuid
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import Column, String, DateTime, Date, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from heritage.db.base import Base


class RentalRequest(Base):
    """
    A request to rent a published artifact.

    The two approval slots are stored as flat columns and exposed through
    ``approvals`` in the ``{"museumAdmin": ..., "superAdmin": ...}`` shape the
    dashboards consume.
    """
    __tablename__ = "rental_requests"

    resource_type = "rental"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    artifact_id = Column(Uuid, ForeignKey("artifacts.id"), nullable=False, index=True)
    museum_id = Column(Uuid, ForeignKey("museums.id"), nullable=False, index=True)
    renter_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    purpose = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    # Workflow state
    status = Column(String(50), nullable=False, default="pending_review", index=True)
    version = Column(Integer, nullable=False, default=1)

    # Museum admin slot
    museum_admin_status = Column(String(20), nullable=False, default="pending")
    museum_admin_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    museum_admin_at = Column(DateTime, nullable=True)
    museum_admin_comments = Column(Text, nullable=True)

    # Super admin slot
    super_admin_status = Column(String(20), nullable=False, default="pending")
    super_admin_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    super_admin_at = Column(DateTime, nullable=True)
    super_admin_comments = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    artifact = relationship("Artifact")
    museum = relationship("Museum")
    renter = relationship("User", foreign_keys=[renter_id])

    @property
    def approvals(self) -> Dict[str, Dict[str, Any]]:
        return {
            "museumAdmin": {
                "status": self.museum_admin_status,
                "approvedBy": self.museum_admin_by,
                "approvedAt": self.museum_admin_at,
                "comments": self.museum_admin_comments,
            },
            "superAdmin": {
                "status": self.super_admin_status,
                "approvedBy": self.super_admin_by,
                "approvedAt": self.super_admin_at,
                "comments": self.super_admin_comments,
            },
        }

    def __repr__(self) -> str:
        return f"<RentalRequest {self.id} [{self.status}]>"
