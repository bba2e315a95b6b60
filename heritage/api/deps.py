from typing import Any, Generator, NoReturn, Optional

from fastapi import BackgroundTasks, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from heritage.db.session import SessionLocal
from heritage.db.models import User
from heritage.core.approval.service import EventSink, WorkflowService
from heritage.core.config import get_settings
from heritage.core.results import Denied, DenialReason
from heritage.core.security import decode_token
from heritage.services.notifications import NotificationRelay

bearer_scheme = HTTPBearer(auto_error=False)

DENIAL_STATUS = {
    DenialReason.INSUFFICIENT_ROLE: status.HTTP_403_FORBIDDEN,
    DenialReason.NOT_OWNER: status.HTTP_403_FORBIDDEN,
    DenialReason.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    DenialReason.OUT_OF_ORDER_APPROVAL: status.HTTP_409_CONFLICT,
    DenialReason.STALE_STATE: status.HTTP_409_CONFLICT,
    DenialReason.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    """Get the acting user from the bearer JWT."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    user_id = decode_token(credentials.credentials)
    if user_id is None:
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise credentials_exception
    return user


def get_event_sink(background_tasks: BackgroundTasks) -> Optional[EventSink]:
    """
    Event sink that queues webhook delivery for after the response.

    Returns None when no webhooks are configured.
    """
    webhook_urls = get_settings().webhook_urls_list
    if not webhook_urls:
        return None
    relay = NotificationRelay(webhook_urls)

    def schedule_delivery(event) -> None:
        background_tasks.add_task(relay.notify, event)

    return schedule_delivery


def get_workflow_service(
    db: Session = Depends(get_db),
    event_sink: Optional[EventSink] = Depends(get_event_sink),
) -> WorkflowService:
    return WorkflowService(db, event_sink=event_sink)


def raise_for_denial(denied: Denied) -> NoReturn:
    """Translate a denial into the matching HTTP error."""
    raise HTTPException(status_code=DENIAL_STATUS[denied.reason], detail=denied.to_dict())


def unwrap(outcome: Any) -> Any:
    """Return a successful outcome, or raise for a denial."""
    if isinstance(outcome, Denied):
        raise_for_denial(outcome)
    return outcome
