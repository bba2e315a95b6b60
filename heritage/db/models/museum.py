import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Integer, Uuid
from sqlalchemy.orm import relationship

from heritage.db.base import Base


class Museum(Base):
    """A registered museum. Status changes only through super admin review."""
    __tablename__ = "museums"

    resource_type = "museum"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    admin_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL", use_alter=True), nullable=True)
    verified = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    admin = relationship("User", foreign_keys=[admin_id], post_update=True)
    staff = relationship("User", foreign_keys="User.museum_id", back_populates="museum")
    artifacts = relationship("Artifact", back_populates="museum")

    def __repr__(self) -> str:
        return f"<Museum {self.name} [{self.status}]>"
