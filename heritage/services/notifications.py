"""Notification relay for workflow events.

Handles:
- Message rendering per event type (jinja2 templates)
- Audience selection (super admins, the museum, the renter)
- Webhook delivery to external systems
- Retry logic for failed deliveries

Delivery is async. The API schedules ``notify`` as a background task once
the mutation has committed; outside an event loop the relay can be passed
to ``WorkflowService`` directly as its event sink. Delivery failures are
logged and never raised.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from jinja2 import Template

from heritage.core.config import get_settings
from heritage.core.approval.service import WorkflowEvent

logger = logging.getLogger(__name__)


# Message templates, keyed by event type
MESSAGE_TEMPLATES = {
    "museum_registered": "New museum registration awaiting review.",
    "museum_approved": "Your museum registration has been approved.",
    "museum_rejected": (
        "Your museum registration has been rejected."
        "{% if comment %} Reason: {{ comment }}{% endif %}"
    ),
    "artifact_created": "A new artifact draft was added to your museum.",
    "artifact_first_approve": "An artifact passed museum review and awaits final approval.",
    "artifact_first_reject": (
        "An artifact was rejected at museum review."
        "{% if comment %} Feedback: {{ comment }}{% endif %}"
    ),
    "artifact_final_approve": "An artifact has been published.",
    "artifact_final_reject": (
        "An artifact was rejected at final review."
        "{% if comment %} Feedback: {{ comment }}{% endif %}"
    ),
    "artifact_resubmit": "A rejected artifact was resubmitted as a draft.",
    "rental_requested": "A new rental request awaits museum review.",
    "rental_museum_approve": "A rental request was approved by the museum and awaits final approval.",
    "rental_museum_reject": (
        "Your rental request was rejected by the museum."
        "{% if comment %} Reason: {{ comment }}{% endif %}"
    ),
    "rental_final_approve": "Your rental request was approved. Payment is now due.",
    "rental_final_reject": (
        "Your rental request was rejected."
        "{% if comment %} Reason: {{ comment }}{% endif %}"
    ),
    "rental_complete_payment": "Payment received. The rental is now active.",
    "rental_end_period": "The rental period has ended.",
    "role_changed": "Your role changed from {{ previous_state.role }} to {{ new_state.role }}.",
}

# Events that put an item in front of the super admins
SUPER_ADMIN_EVENTS = {
    "museum_registered",
    "artifact_first_approve",
    "rental_museum_approve",
}

# Events whose outcome matters to the renter
RENTER_EVENTS = {
    "rental_museum_reject",
    "rental_final_approve",
    "rental_final_reject",
    "rental_complete_payment",
    "rental_end_period",
}


def select_audience(event: WorkflowEvent) -> Dict[str, Any]:
    """
    Decide who should hear about an event.

    Returns:
        Audience descriptor with ``roles``, ``museum_id`` and ``user_ids``
        keys, resolved to recipients by the receiving system
    """
    if event.type in SUPER_ADMIN_EVENTS:
        return {"roles": ["super_admin"], "museum_id": None, "user_ids": []}

    if event.type in RENTER_EVENTS:
        user_ids = [str(event.owner_id)] if event.owner_id else []
        return {"roles": [], "museum_id": None, "user_ids": user_ids}

    if event.type in ("museum_approved", "museum_rejected", "role_changed"):
        user_ids = [str(event.owner_id)] if event.owner_id else []
        return {"roles": [], "museum_id": None, "user_ids": user_ids}

    # First-tier work and rejections go back to the museum
    return {
        "roles": ["museum_admin", "museum_staff"],
        "museum_id": str(event.museum_id) if event.museum_id else None,
        "user_ids": [],
    }


def render_message(event: WorkflowEvent) -> str:
    """Render the human-readable message for an event."""
    source = MESSAGE_TEMPLATES.get(event.type)
    if source is None:
        logger.warning("No message template for event type: %s", event.type)
        return f"{event.resource_type} {event.resource_id}: {event.type}"

    return Template(source).render(
        comment=(event.details or {}).get("comment"),
        previous_state=event.previous_state or {},
        new_state=event.new_state or {},
        event=event,
    )


def build_payload(event: WorkflowEvent) -> Dict[str, Any]:
    """Build the JSON payload posted to webhooks."""
    return {
        "event": event.type,
        "timestamp": event.timestamp.isoformat(),
        "resource": {
            "type": event.resource_type,
            "id": str(event.resource_id),
            "museum_id": str(event.museum_id) if event.museum_id else None,
        },
        "actor_id": str(event.actor_id) if event.actor_id else None,
        "previous_state": event.previous_state,
        "new_state": event.new_state,
        "audience": select_audience(event),
        "message": render_message(event),
    }


class NotificationRelay:
    """
    Event sink that posts workflow events to configured webhooks.
    """

    def __init__(
        self,
        webhook_urls: Optional[List[str]] = None,
        *,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the relay.

        Args:
            webhook_urls: Target URLs (defaults to the configured list)
            timeout: Per-request timeout in seconds
            max_retries: Delivery attempts per webhook
            backoff_seconds: Base delay between attempts, doubled each retry
            transport: Optional httpx transport (used by tests)
        """
        settings = get_settings()
        self.webhook_urls = webhook_urls if webhook_urls is not None else settings.webhook_urls_list
        self.timeout = timeout if timeout is not None else settings.webhook_timeout
        self.max_retries = max(1, max_retries if max_retries is not None else settings.webhook_max_retries)
        self.backoff_seconds = backoff_seconds
        self.transport = transport
        self.delivery_log: List[Dict[str, Any]] = []

    def __call__(self, event: WorkflowEvent) -> None:
        """Synchronous event sink; must not be called from a running event loop."""
        asyncio.run(self.notify(event))

    async def notify(self, event: WorkflowEvent) -> List[Dict[str, Any]]:
        """
        Deliver an event to every configured webhook.

        Returns:
            One delivery record per webhook
        """
        if not self.webhook_urls:
            return []

        payload = build_payload(event)
        records = []
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for url in self.webhook_urls:
                records.append(await self._send_webhook(client, url, payload))

        self.delivery_log.extend(records)
        return records

    async def _send_webhook(self, client: httpx.AsyncClient, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Post a payload, retrying on transport errors and 5xx responses."""
        record = {
            "url": url,
            "event": payload["event"],
            "status": "pending",
            "attempts": 0,
            "error": None,
            "sent_at": None,
        }

        for attempt in range(1, self.max_retries + 1):
            record["attempts"] = attempt
            try:
                response = await client.post(url, json=payload, headers={"Content-Type": "application/json"})
                response.raise_for_status()
                record["status"] = "sent"
                record["sent_at"] = datetime.utcnow()
                record["error"] = None
                return record
            except httpx.HTTPStatusError as e:
                record["error"] = str(e)
                # Client errors will not improve on retry
                if e.response.status_code < 500:
                    break
            except httpx.HTTPError as e:
                record["error"] = str(e)

            if attempt < self.max_retries and self.backoff_seconds:
                await asyncio.sleep(self.backoff_seconds * (2 ** (attempt - 1)))

        record["status"] = "failed"
        logger.error(
            "Failed to deliver %s to %s after %d attempt(s): %s",
            payload["event"], url, record["attempts"], record["error"],
        )
        return record
