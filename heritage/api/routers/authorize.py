"""Authorization query endpoint.

Lets clients ask whether an action would be allowed before offering it,
using the same gate the mutating endpoints use.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from heritage.api.deps import get_current_user, get_workflow_service, unwrap
from heritage.core.approval.service import ResourceRef, WorkflowService
from heritage.core.gate import parse_action
from heritage.db.models import User

router = APIRouter(prefix="/authorize", tags=["authorize"])


class AuthorizeResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    details: Dict[str, Any] = {}


@router.get("", response_model=AuthorizeResponse)
async def check_authorization(
    action: str,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Evaluate an action for the caller without performing it."""
    try:
        parsed = parse_action(action, resource_type)
        ref = ResourceRef(resource_type, resource_id) if resource_type and resource_id else None
        decision = service.authorize(current_user, parsed, ref)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    if decision.allowed:
        return AuthorizeResponse(allowed=True)
    return AuthorizeResponse(allowed=False, **decision.to_dict())


class AvailableEventsResponse(BaseModel):
    resource_type: str
    resource_id: str
    events: List[str] = []


@router.get("/events", response_model=AvailableEventsResponse)
async def list_available_events(
    resource_type: str,
    resource_id: str,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """List the workflow events the caller could apply to a resource now."""
    try:
        events = service.available_events(current_user, ResourceRef(resource_type, resource_id))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return AvailableEventsResponse(
        resource_type=resource_type,
        resource_id=resource_id,
        events=[e.value for e in unwrap(events)],
    )
