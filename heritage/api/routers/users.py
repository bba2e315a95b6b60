"""User and role management API endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from heritage.api.deps import get_current_user, get_workflow_service, unwrap
from heritage.core.approval.service import WorkflowService
from heritage.core.rbac import Role, capabilities_of
from heritage.db.models import User

router = APIRouter(prefix="/users", tags=["users"])


# Schemas
class UserResponse(BaseModel):
    id: UUID
    email: str
    name: Optional[str]
    role: str
    museum_id: Optional[UUID]
    is_active: bool

    class Config:
        from_attributes = True


class CurrentUserResponse(UserResponse):
    capabilities: List[str] = []


class RoleChange(BaseModel):
    role: Role
    museum_id: Optional[UUID] = None


# Endpoints
@router.get("/me", response_model=CurrentUserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get the caller's profile and the capabilities their role grants."""
    response = CurrentUserResponse.model_validate(current_user)
    response.capabilities = sorted(c.value for c in capabilities_of(current_user.role))
    return response


@router.put("/{user_id}/role", response_model=UserResponse)
async def change_role(
    user_id: UUID,
    body: RoleChange,
    service: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(get_current_user),
):
    """Change a user's role. Super admin only; always audited."""
    try:
        result = service.change_role(user_id, body.role, current_user, museum_id=body.museum_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return UserResponse.model_validate(unwrap(result).resource)
