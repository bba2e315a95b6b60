import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from heritage.db.base import Base


class User(Base):
    """An actor on the platform.

    ``museum_id`` is the ownership anchor for museum staff and museum admins
    and is null for visitors and super admins.
    """
    __tablename__ = "users"

    resource_type = "user"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255))
    role = Column(String(50), nullable=False, default="visitor", index=True)
    museum_id = Column(Uuid, ForeignKey("museums.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    museum = relationship("Museum", foreign_keys=[museum_id], back_populates="staff")

    def __repr__(self) -> str:
        return f"<User {self.email} [{self.role}]>"
