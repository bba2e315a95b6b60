"""Artifact workflow API endpoints."""

from typing import List, Optional
from uuid import UUID
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from heritage.api.deps import get_current_user, get_workflow_service, unwrap
from heritage.core.approval.service import WorkflowService
from heritage.core.approval.states import ArtifactEvent
from heritage.db.models import User

router = APIRouter(prefix="/artifacts", tags=["artifacts"])


# Schemas
class ArtifactCreate(BaseModel):
    museum_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class ReviewResponse(BaseModel):
    reviewer_id: Optional[UUID]
    decision: str
    feedback: Optional[str]
    level: str
    created_at: datetime

    class Config:
        from_attributes = True


class ArtifactResponse(BaseModel):
    id: UUID
    museum_id: UUID
    created_by: Optional[UUID]
    name: str
    description: Optional[str]
    status: str
    version: int
    created_at: datetime
    updated_at: datetime
    reviews: List[ReviewResponse] = []

    class Config:
        from_attributes = True


class ArtifactTransition(BaseModel):
    event: ArtifactEvent
    feedback: Optional[str] = None
    expected_status: Optional[str] = None


class BatchArtifactTransition(BaseModel):
    artifact_ids: List[UUID] = Field(..., min_length=1)
    event: ArtifactEvent
    feedback: Optional[str] = None


class BatchTransitionResponse(BaseModel):
    succeeded: List[str] = []
    failed: List[dict] = []


# Endpoints
@router.post("", response_model=ArtifactResponse, status_code=status.HTTP_201_CREATED)
async def create_artifact(
    body: ArtifactCreate,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Create a draft artifact in the caller's museum."""
    try:
        result = service.create_artifact(body.museum_id, body.name, current_user, description=body.description)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return ArtifactResponse.model_validate(unwrap(result).artifact)


@router.get("", response_model=List[ArtifactResponse])
async def list_artifacts(
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    """List artifacts visible to the caller."""
    artifacts = service.list_artifacts(current_user, status=status_filter)
    return [ArtifactResponse.model_validate(a) for a in artifacts]


@router.post("/batch/transitions", response_model=BatchTransitionResponse)
async def batch_transition(
    body: BatchArtifactTransition,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Apply one review event to several artifacts; failures are reported per item."""
    results = service.batch_apply_artifact_transition(
        body.artifact_ids, body.event, current_user, feedback=body.feedback,
    )
    return BatchTransitionResponse(**results)


@router.get("/{artifact_id}", response_model=ArtifactResponse)
async def get_artifact(
    artifact_id: UUID,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Get a specific artifact."""
    artifact = unwrap(service.get_resource("artifact", artifact_id, current_user))
    return ArtifactResponse.model_validate(artifact)


@router.post("/{artifact_id}/transitions", response_model=ArtifactResponse)
async def transition_artifact(
    artifact_id: UUID,
    body: ArtifactTransition,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Apply a review event (approve, reject, resubmit) to an artifact."""
    result = service.apply_artifact_transition(
        artifact_id,
        body.event,
        current_user,
        feedback=body.feedback,
        expected_status=body.expected_status,
    )
    return ArtifactResponse.model_validate(unwrap(result).artifact)
