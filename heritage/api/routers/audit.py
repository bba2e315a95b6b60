"""Audit trail query API endpoints."""

from typing import List, Optional
from uuid import UUID
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from heritage.api.deps import get_current_user, get_workflow_service, unwrap
from heritage.core.approval.service import AuditFilter, WorkflowService
from heritage.db.models import User

router = APIRouter(prefix="/audit-entries", tags=["audit"])


# Schemas
class AuditEntryResponse(BaseModel):
    id: UUID
    actor_id: Optional[UUID]
    action: str
    resource_type: str
    resource_id: UUID
    museum_id: Optional[UUID]
    previous_state: Optional[dict]
    new_state: Optional[dict]
    details: Optional[dict]
    created_at: datetime

    class Config:
        from_attributes = True


# Endpoints
@router.get("", response_model=List[AuditEntryResponse])
async def list_audit_entries(
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
    actor_id: Optional[UUID] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[UUID] = None,
    action: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=500),
):
    """
    List audit entries, newest first.

    Super admins see the whole platform; museum admins see entries for
    their own museum.
    """
    audit_filter = AuditFilter(
        actor_id=actor_id,
        resource_type=resource_type,
        resource_id=resource_id,
        action=action,
        since=start_date,
        until=end_date,
        limit=limit,
    )
    entries = unwrap(service.list_audit_entries(audit_filter, actor=current_user))
    return [AuditEntryResponse.model_validate(e) for e in entries]
