"""Database models for the heritage workflow."""

from heritage.db.models.user import User
from heritage.db.models.museum import Museum
from heritage.db.models.artifact import Artifact, ArtifactReview
from heritage.db.models.rental import RentalRequest
from heritage.db.models.audit import AuditEntry, AuditImmutableError

__all__ = [
    "User",
    "Museum",
    "Artifact",
    "ArtifactReview",
    "RentalRequest",
    "AuditEntry",
    "AuditImmutableError",
]
