"""Tests for workflow notifications and webhook delivery."""

import asyncio
import json
import uuid
from types import SimpleNamespace

import httpx
import pytest
from fastapi import BackgroundTasks

import heritage.api.deps as deps
from heritage.core.approval.service import WorkflowEvent, WorkflowService
import heritage.services.notifications as notifications
from heritage.services.notifications import (
    NotificationRelay,
    build_payload,
    render_message,
    select_audience,
)

from tests.factories import create_artifact


def make_event(event_type="artifact_first_approve", **overrides) -> WorkflowEvent:
    values = dict(
        type=event_type,
        resource_type="artifact",
        resource_id=uuid.uuid4(),
        museum_id=uuid.uuid4(),
        actor_id=uuid.uuid4(),
        previous_state={"status": "draft"},
        new_state={"status": "pending-review"},
        owner_id=uuid.uuid4(),
        details={},
    )
    values.update(overrides)
    return WorkflowEvent(**values)


class TestAudience:
    """Test audience selection per event type."""

    def test_escalations_go_to_super_admins(self):
        for event_type in ("museum_registered", "artifact_first_approve", "rental_museum_approve"):
            audience = select_audience(make_event(event_type))
            assert audience["roles"] == ["super_admin"]
            assert audience["user_ids"] == []

    def test_rental_outcomes_go_to_renter(self):
        renter = uuid.uuid4()
        audience = select_audience(make_event("rental_final_reject", resource_type="rental", owner_id=renter))
        assert audience == {"roles": [], "museum_id": None, "user_ids": [str(renter)]}

    def test_rejections_go_back_to_museum(self):
        event = make_event("artifact_final_reject")
        audience = select_audience(event)
        assert audience["roles"] == ["museum_admin", "museum_staff"]
        assert audience["museum_id"] == str(event.museum_id)

    def test_role_change_goes_to_the_user(self):
        user = uuid.uuid4()
        audience = select_audience(make_event("role_changed", resource_type="user", owner_id=user))
        assert audience["user_ids"] == [str(user)]


class TestRendering:
    """Test message rendering."""

    def test_feedback_included(self):
        event = make_event("artifact_first_reject", details={"comment": "Missing provenance"})
        assert render_message(event).endswith("Feedback: Missing provenance")

    def test_no_feedback(self):
        assert "Feedback" not in render_message(make_event("artifact_first_reject"))

    def test_role_change(self):
        event = make_event(
            "role_changed",
            previous_state={"role": "visitor", "museum_id": None},
            new_state={"role": "museum_staff", "museum_id": str(uuid.uuid4())},
        )
        assert render_message(event) == "Your role changed from visitor to museum_staff."

    def test_unknown_event_type(self):
        event = make_event("artifact_archived")
        assert "artifact_archived" in render_message(event)

    def test_payload(self):
        event = make_event()
        payload = build_payload(event)

        assert payload["event"] == "artifact_first_approve"
        assert payload["resource"] == {
            "type": "artifact",
            "id": str(event.resource_id),
            "museum_id": str(event.museum_id),
        }
        assert payload["audience"]["roles"] == ["super_admin"]
        json.dumps(payload)


class TestWebhookDelivery:
    """Test webhook delivery and retries."""

    def relay(self, handler, urls=("https://hooks.example.org/heritage",), max_retries=3):
        return NotificationRelay(
            list(urls),
            max_retries=max_retries,
            backoff_seconds=0,
            transport=httpx.MockTransport(handler),
        )

    def test_delivered(self):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(200)

        records = asyncio.run(self.relay(handler).notify(make_event()))

        assert records[0]["status"] == "sent"
        assert records[0]["attempts"] == 1
        assert received[0]["event"] == "artifact_first_approve"

    def test_retries_server_errors(self):
        responses = iter([httpx.Response(502), httpx.Response(503), httpx.Response(200)])
        records = asyncio.run(self.relay(lambda request: next(responses)).notify(make_event()))

        assert records[0]["status"] == "sent"
        assert records[0]["attempts"] == 3

    def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        records = asyncio.run(self.relay(handler).notify(make_event()))

        assert records[0]["status"] == "failed"
        assert len(calls) == 1

    def test_connection_failure_is_recorded(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        relay = self.relay(handler, max_retries=2)
        records = asyncio.run(relay.notify(make_event()))

        assert records[0]["status"] == "failed"
        assert records[0]["attempts"] == 2
        assert "connection refused" in records[0]["error"]
        assert relay.delivery_log == records

    def test_every_webhook_gets_the_event(self):
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            return httpx.Response(204)

        urls = ("https://a.example.org/hook", "https://b.example.org/hook")
        records = asyncio.run(self.relay(handler, urls=urls).notify(make_event()))

        assert hosts == ["a.example.org", "b.example.org"]
        assert [r["status"] for r in records] == ["sent", "sent"]

    def test_no_webhooks(self):
        assert asyncio.run(NotificationRelay([]).notify(make_event())) == []

    def test_backoff_yields_to_the_event_loop(self, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr(notifications.asyncio, "sleep", fake_sleep)
        relay = NotificationRelay(
            ["https://hooks.example.org/heritage"],
            max_retries=3,
            backoff_seconds=0.5,
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )

        records = asyncio.run(relay.notify(make_event()))

        assert records[0]["status"] == "failed"
        assert delays == [0.5, 1.0]


class TestApiEventSink:
    """Test webhook delivery is queued behind the response."""

    def test_delivery_is_scheduled_not_sent(self, monkeypatch):
        monkeypatch.setattr(
            deps, "get_settings", lambda: SimpleNamespace(webhook_urls_list=["https://hooks.example.org/heritage"]),
        )
        background_tasks = BackgroundTasks()
        sink = deps.get_event_sink(background_tasks)
        event = make_event()

        sink(event)

        assert len(background_tasks.tasks) == 1
        task = background_tasks.tasks[0]
        assert task.func.__name__ == "notify"
        assert task.func.__self__.webhook_urls == ["https://hooks.example.org/heritage"]
        assert task.args == (event,)

    def test_no_sink_without_webhooks(self, monkeypatch):
        monkeypatch.setattr(deps, "get_settings", lambda: SimpleNamespace(webhook_urls_list=[]))
        assert deps.get_event_sink(BackgroundTasks()) is None


@pytest.mark.integration
class TestRelayAsEventSink:
    """Test the relay wired into the workflow service."""

    def test_transition_is_relayed(self, db_session, people):
        posted = []

        def handler(request):
            posted.append(json.loads(request.content))
            return httpx.Response(200)

        relay = NotificationRelay(
            ["https://hooks.example.org/heritage"], backoff_seconds=0, transport=httpx.MockTransport(handler),
        )
        artifact = create_artifact(db_session, museum=people.louvre)
        db_session.commit()

        WorkflowService(db_session, event_sink=relay).apply_artifact_transition(
            artifact.id, "first_approve", people.louvre_admin,
        )

        assert posted[0]["event"] == "artifact_first_approve"
        assert posted[0]["resource"]["id"] == str(artifact.id)
        assert posted[0]["new_state"] == {"status": "pending-review"}

    def test_unreachable_webhook_keeps_transition(self, db_session, people):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        relay = NotificationRelay(
            ["https://hooks.example.org/heritage"], max_retries=1, transport=httpx.MockTransport(handler),
        )
        artifact = create_artifact(db_session, museum=people.louvre)
        db_session.commit()

        result = WorkflowService(db_session, event_sink=relay).apply_artifact_transition(
            artifact.id, "first_approve", people.louvre_admin,
        )

        assert result.artifact.status == "pending-review"
        assert relay.delivery_log[0]["status"] == "failed"
