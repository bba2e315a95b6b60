"""Rental request API endpoints."""

from typing import Dict, List, Optional
from uuid import UUID
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from heritage.api.deps import get_current_user, get_workflow_service, unwrap
from heritage.core.approval.service import WorkflowService
from heritage.core.approval.states import RentalEvent
from heritage.db.models import User

router = APIRouter(prefix="/rentals", tags=["rentals"])


# Schemas
class RentalCreate(BaseModel):
    artifact_id: UUID
    purpose: Optional[str] = Field(None, max_length=2000)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class ApprovalSlotResponse(BaseModel):
    status: str
    approvedBy: Optional[UUID] = None
    approvedAt: Optional[datetime] = None
    comments: Optional[str] = None


class RentalResponse(BaseModel):
    id: UUID
    artifact_id: UUID
    museum_id: UUID
    renter_id: UUID
    purpose: Optional[str]
    start_date: Optional[date]
    end_date: Optional[date]
    status: str
    version: int
    approvals: Dict[str, ApprovalSlotResponse]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RentalTransition(BaseModel):
    event: RentalEvent
    comments: Optional[str] = None
    expected_status: Optional[str] = None


# Endpoints
@router.post("", response_model=RentalResponse, status_code=status.HTTP_201_CREATED)
async def request_rental(
    body: RentalCreate,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """File a rental request for a published artifact."""
    try:
        result = service.create_rental_request(
            body.artifact_id,
            current_user,
            purpose=body.purpose,
            start_date=body.start_date,
            end_date=body.end_date,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return RentalResponse.model_validate(unwrap(result).rental)


@router.get("", response_model=List[RentalResponse])
async def list_rentals(
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    """List rental requests visible to the caller."""
    rentals = service.list_rentals(current_user, status=status_filter)
    return [RentalResponse.model_validate(r) for r in rentals]


@router.get("/{rental_id}", response_model=RentalResponse)
async def get_rental(
    rental_id: UUID,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Get a specific rental request."""
    rental = unwrap(service.get_resource("rental", rental_id, current_user))
    return RentalResponse.model_validate(rental)


@router.post("/{rental_id}/transitions", response_model=RentalResponse)
async def transition_rental(
    rental_id: UUID,
    body: RentalTransition,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Record an approval decision or lifecycle event on a rental request."""
    result = service.apply_rental_transition(
        rental_id,
        body.event,
        current_user,
        comments=body.comments,
        expected_status=body.expected_status,
    )
    return RentalResponse.model_validate(unwrap(result).rental)
