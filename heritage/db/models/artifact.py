"""Artifact workflow database models.

Stores artifact submissions and their append-only review log.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from heritage.db.base import Base


class Artifact(Base):
    """
    An artifact submitted by museum staff.

    ``museum_id`` is fixed at creation. ``version`` is bumped on every status
    change and guards concurrent reviewers.
    """
    __tablename__ = "artifacts"

    resource_type = "artifact"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    museum_id = Column(Uuid, ForeignKey("museums.id"), nullable=False, index=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Workflow state
    status = Column(String(50), nullable=False, default="draft", index=True)
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    museum = relationship("Museum", back_populates="artifacts")
    author = relationship("User", foreign_keys=[created_by])
    reviews = relationship(
        "ArtifactReview",
        back_populates="artifact",
        order_by="ArtifactReview.created_at",
    )

    def __repr__(self) -> str:
        return f"<Artifact {self.name} [{self.status}]>"


class ArtifactReview(Base):
    """
    One review decision on an artifact.

    ``level`` is ``museum_admin`` for first-tier work (including staff
    resubmission) and ``final`` for super admin decisions.
    """
    __tablename__ = "artifact_reviews"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    artifact_id = Column(Uuid, ForeignKey("artifacts.id", ondelete="CASCADE"), nullable=False, index=True)
    reviewer_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    decision = Column(String(20), nullable=False)
    feedback = Column(Text, nullable=True)
    level = Column(String(20), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    artifact = relationship("Artifact", back_populates="reviews")
    reviewer = relationship("User")

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    def __repr__(self) -> str:
        return f"<ArtifactReview {self.level}:{self.decision}>"
