"""Museum registration API endpoints."""

from typing import Optional
from uuid import UUID
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from heritage.api.deps import get_current_user, get_workflow_service, unwrap
from heritage.core.approval.service import WorkflowService
from heritage.db.models import User

router = APIRouter(prefix="/museums", tags=["museums"])


# Schemas
class MuseumCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class MuseumResponse(BaseModel):
    id: UUID
    name: str
    admin_id: Optional[UUID]
    verified: bool
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class MuseumDecision(BaseModel):
    comments: Optional[str] = None


# Endpoints
@router.post("", response_model=MuseumResponse, status_code=status.HTTP_201_CREATED)
async def register_museum(
    body: MuseumCreate,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Register a museum; it stays pending until a super admin reviews it."""
    try:
        result = service.register_museum(body.name, current_user)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return MuseumResponse.model_validate(unwrap(result).resource)


@router.get("/{museum_id}", response_model=MuseumResponse)
async def get_museum(
    museum_id: UUID,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Get a specific museum."""
    museum = unwrap(service.get_resource("museum", museum_id, current_user))
    return MuseumResponse.model_validate(museum)


@router.post("/{museum_id}/approve", response_model=MuseumResponse)
async def approve_museum(
    museum_id: UUID,
    body: MuseumDecision,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Approve a pending museum registration."""
    result = service.approve_museum(museum_id, current_user, comments=body.comments)
    return MuseumResponse.model_validate(unwrap(result).resource)


@router.post("/{museum_id}/reject", response_model=MuseumResponse)
async def reject_museum(
    museum_id: UUID,
    body: MuseumDecision,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Reject a pending museum registration."""
    result = service.reject_museum(museum_id, current_user, comments=body.comments)
    return MuseumResponse.model_validate(unwrap(result).resource)
