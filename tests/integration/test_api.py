"""API tests for the workflow endpoints.

Exercise the HTTP surface end to end: bearer authentication, denial
mapping to status codes, and the scoped views.
"""

import uuid

import pytest

from heritage.core.approval.service import WorkflowService
from heritage.core.results import StorageUnavailable
from heritage.core.security import create_access_token
from heritage.db.models import User

from tests.factories import create_artifact, create_audit_entry, create_rental, create_user


pytestmark = pytest.mark.integration


class TestAuthentication:
    """Test bearer token handling."""

    def test_missing_token(self, client):
        response = client.get("/api/artifacts")
        assert response.status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/api/artifacts", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_unknown_user(self, client):
        token = create_access_token(uuid.uuid4())
        response = client.get("/api/artifacts", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_inactive_user(self, client, db_session, auth_headers):
        user = create_user(db_session, is_active=False)
        db_session.commit()

        response = client.get("/api/users/me", headers=auth_headers(user))
        assert response.status_code == 401

    def test_me(self, client, people, auth_headers):
        response = client.get("/api/users/me", headers=auth_headers(people.louvre_admin))

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "museum_admin"
        assert data["museum_id"] == str(people.louvre.id)
        assert "first_approve_artifact" in data["capabilities"]
        assert "final_approve_artifact" not in data["capabilities"]


class TestArtifactEndpoints:
    """Test artifact creation and review over HTTP."""

    def test_create_and_review(self, client, people, auth_headers, events):
        response = client.post(
            "/api/artifacts",
            json={"museum_id": str(people.louvre.id), "name": "Venus de Milo"},
            headers=auth_headers(people.louvre_staff),
        )
        assert response.status_code == 201
        artifact = response.json()
        assert artifact["status"] == "draft"
        assert artifact["created_by"] == str(people.louvre_staff.id)

        response = client.post(
            f"/api/artifacts/{artifact['id']}/transitions",
            json={"event": "first_approve", "feedback": "Catalogued", "expected_status": "draft"},
            headers=auth_headers(people.louvre_admin),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending-review"
        assert data["reviews"][0]["level"] == "museum_admin"
        assert data["reviews"][0]["feedback"] == "Catalogued"

        assert [e.type for e in events] == ["artifact_created", "artifact_first_approve"]

    def test_other_museum_forbidden(self, client, people, auth_headers, db_session):
        artifact = create_artifact(db_session, museum=people.prado)
        db_session.commit()

        response = client.post(
            f"/api/artifacts/{artifact.id}/transitions",
            json={"event": "first_approve"},
            headers=auth_headers(people.louvre_admin),
        )

        assert response.status_code == 403
        assert response.json()["detail"]["reason"] == "not_owner"

    def test_staff_cannot_approve(self, client, people, auth_headers, db_session):
        artifact = create_artifact(db_session, museum=people.louvre)
        db_session.commit()

        response = client.post(
            f"/api/artifacts/{artifact.id}/transitions",
            json={"event": "first_approve"},
            headers=auth_headers(people.louvre_staff),
        )

        assert response.status_code == 403
        assert response.json()["detail"]["reason"] == "insufficient_role"

    def test_invalid_transition_conflict(self, client, people, auth_headers, db_session):
        artifact = create_artifact(db_session, museum=people.louvre)
        db_session.commit()

        response = client.post(
            f"/api/artifacts/{artifact.id}/transitions",
            json={"event": "final_approve"},
            headers=auth_headers(people.super_admin),
        )

        assert response.status_code == 409
        assert response.json()["detail"]["reason"] == "invalid_transition"

    def test_stale_expected_status(self, client, people, auth_headers, db_session):
        artifact = create_artifact(db_session, museum=people.louvre, status="pending-review")
        db_session.commit()

        response = client.post(
            f"/api/artifacts/{artifact.id}/transitions",
            json={"event": "first_approve", "expected_status": "draft"},
            headers=auth_headers(people.louvre_admin),
        )

        assert response.status_code == 409
        assert response.json()["detail"]["reason"] == "stale_state"

    def test_unknown_artifact(self, client, people, auth_headers):
        response = client.get(f"/api/artifacts/{uuid.uuid4()}", headers=auth_headers(people.super_admin))
        assert response.status_code == 404
        assert response.json()["detail"]["reason"] == "resource_not_found"

    def test_unknown_event(self, client, people, auth_headers, db_session):
        artifact = create_artifact(db_session, museum=people.louvre)
        db_session.commit()

        response = client.post(
            f"/api/artifacts/{artifact.id}/transitions",
            json={"event": "publish_now"},
            headers=auth_headers(people.super_admin),
        )
        assert response.status_code == 422

    def test_visitor_reads_published_only(self, client, people, auth_headers, db_session):
        published = create_artifact(db_session, museum=people.louvre, status="published")
        draft = create_artifact(db_session, museum=people.louvre)
        db_session.commit()

        assert client.get(f"/api/artifacts/{published.id}", headers=auth_headers(people.visitor)).status_code == 200
        assert client.get(f"/api/artifacts/{draft.id}", headers=auth_headers(people.visitor)).status_code == 403

    def test_list_scoped(self, client, people, auth_headers, db_session):
        mine = create_artifact(db_session, museum=people.louvre)
        create_artifact(db_session, museum=people.prado)
        db_session.commit()

        response = client.get("/api/artifacts", headers=auth_headers(people.louvre_staff))

        assert response.status_code == 200
        assert [a["id"] for a in response.json()] == [str(mine.id)]

    def test_batch(self, client, people, auth_headers, db_session):
        mine = create_artifact(db_session, museum=people.louvre)
        theirs = create_artifact(db_session, museum=people.prado)
        db_session.commit()

        response = client.post(
            "/api/artifacts/batch/transitions",
            json={"artifact_ids": [str(mine.id), str(theirs.id)], "event": "first_approve"},
            headers=auth_headers(people.louvre_admin),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["succeeded"] == [str(mine.id)]
        assert data["failed"][0]["id"] == str(theirs.id)
        assert data["failed"][0]["reason"] == "not_owner"

    def test_storage_unavailable(self, client, people, auth_headers, monkeypatch):
        def unavailable(self, *args, **kwargs):
            raise StorageUnavailable()

        monkeypatch.setattr(WorkflowService, "list_artifacts", unavailable)

        response = client.get("/api/artifacts", headers=auth_headers(people.super_admin))

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"


class TestRentalEndpoints:
    """Test rental requests over HTTP."""

    def test_request_and_out_of_order_final(self, client, people, auth_headers, db_session):
        artifact = create_artifact(db_session, museum=people.louvre, status="published")
        db_session.commit()

        response = client.post(
            "/api/rentals",
            json={"artifact_id": str(artifact.id), "purpose": "School exhibition",
                  "start_date": "2026-09-01", "end_date": "2026-10-01"},
            headers=auth_headers(people.visitor),
        )
        assert response.status_code == 201
        rental = response.json()
        assert rental["status"] == "pending_review"
        assert rental["approvals"]["museumAdmin"]["status"] == "pending"

        response = client.post(
            f"/api/rentals/{rental['id']}/transitions",
            json={"event": "final_approve"},
            headers=auth_headers(people.super_admin),
        )
        assert response.status_code == 409
        assert response.json()["detail"]["reason"] == "out_of_order_approval"

        response = client.post(
            f"/api/rentals/{rental['id']}/transitions",
            json={"event": "museum_approve", "comments": "Fine by us"},
            headers=auth_headers(people.louvre_admin),
        )
        assert response.status_code == 200
        slot = response.json()["approvals"]["museumAdmin"]
        assert slot["status"] == "approved"
        assert slot["approvedBy"] == str(people.louvre_admin.id)

    def test_bad_dates(self, client, people, auth_headers, db_session):
        artifact = create_artifact(db_session, museum=people.louvre, status="published")
        db_session.commit()

        response = client.post(
            "/api/rentals",
            json={"artifact_id": str(artifact.id), "start_date": "2026-10-01", "end_date": "2026-09-01"},
            headers=auth_headers(people.visitor),
        )
        assert response.status_code == 422

    def test_renter_sees_own_requests(self, client, people, auth_headers, db_session):
        artifact = create_artifact(db_session, museum=people.louvre, status="published")
        own = create_rental(db_session, artifact=artifact, renter=people.visitor)
        other = create_rental(db_session, artifact=artifact)
        db_session.commit()

        response = client.get("/api/rentals", headers=auth_headers(people.visitor))
        assert [r["id"] for r in response.json()] == [str(own.id)]

        response = client.get(f"/api/rentals/{other.id}", headers=auth_headers(people.visitor))
        assert response.status_code == 403


class TestMuseumEndpoints:
    """Test museum registration over HTTP."""

    def test_register_and_approve(self, client, people, auth_headers, events):
        response = client.post("/api/museums", json={"name": "Uffizi"}, headers=auth_headers(people.visitor))
        assert response.status_code == 201
        museum = response.json()
        assert museum["status"] == "pending"

        response = client.post(
            f"/api/museums/{museum['id']}/approve", json={}, headers=auth_headers(people.louvre_admin),
        )
        assert response.status_code == 403

        response = client.post(
            f"/api/museums/{museum['id']}/approve", json={"comments": "Verified"},
            headers=auth_headers(people.super_admin),
        )
        assert response.status_code == 200
        assert response.json()["verified"] is True
        assert [e.type for e in events] == ["museum_registered", "museum_approved"]


class TestUserEndpoints:
    """Test role management over HTTP."""

    def test_change_role(self, client, people, auth_headers):
        response = client.put(
            f"/api/users/{people.visitor.id}/role",
            json={"role": "museum_staff", "museum_id": str(people.louvre.id)},
            headers=auth_headers(people.super_admin),
        )
        assert response.status_code == 200
        assert response.json()["role"] == "museum_staff"

    def test_change_role_needs_museum(self, client, people, auth_headers):
        response = client.put(
            f"/api/users/{people.visitor.id}/role",
            json={"role": "museum_admin"},
            headers=auth_headers(people.super_admin),
        )
        assert response.status_code == 422

    def test_change_role_forbidden(self, client, people, auth_headers, db_session):
        response = client.put(
            f"/api/users/{people.louvre_staff.id}/role",
            json={"role": "museum_admin", "museum_id": str(people.louvre.id)},
            headers=auth_headers(people.louvre_admin),
        )
        assert response.status_code == 403
        assert db_session.get(User, people.louvre_staff.id).role == "museum_staff"


class TestAuditEndpoints:
    """Test audit trail visibility over HTTP."""

    def test_museum_admin_scope(self, client, people, auth_headers, db_session):
        own = create_audit_entry(db_session, museum=people.louvre)
        create_audit_entry(db_session, museum=people.prado)
        db_session.commit()

        response = client.get("/api/audit-entries", headers=auth_headers(people.louvre_admin))

        assert response.status_code == 200
        assert [e["id"] for e in response.json()] == [str(own.id)]

    def test_filters(self, client, people, auth_headers, db_session):
        entry = create_audit_entry(db_session, museum=people.louvre)
        create_audit_entry(db_session, museum=people.louvre, action="artifact_final_approve")
        db_session.commit()

        response = client.get(
            "/api/audit-entries",
            params={"action": "artifact_first_approve", "resource_id": str(entry.resource_id)},
            headers=auth_headers(people.super_admin),
        )
        assert [e["id"] for e in response.json()] == [str(entry.id)]

    def test_staff_forbidden(self, client, people, auth_headers):
        response = client.get("/api/audit-entries", headers=auth_headers(people.louvre_staff))
        assert response.status_code == 403


class TestAuthorizeEndpoint:
    """Test the authorization query endpoint."""

    def test_allowed(self, client, people, auth_headers, db_session):
        artifact = create_artifact(db_session, museum=people.louvre)
        db_session.commit()

        response = client.get(
            "/api/authorize",
            params={"action": "first_approve", "resource_type": "artifact", "resource_id": str(artifact.id)},
            headers=auth_headers(people.louvre_admin),
        )
        assert response.status_code == 200
        assert response.json() == {"allowed": True, "reason": None, "message": None, "details": {}}

    def test_denied_with_reason(self, client, people, auth_headers, db_session):
        artifact = create_artifact(db_session, museum=people.prado)
        db_session.commit()

        response = client.get(
            "/api/authorize",
            params={"action": "first_approve", "resource_type": "artifact", "resource_id": str(artifact.id)},
            headers=auth_headers(people.louvre_admin),
        )
        data = response.json()
        assert data["allowed"] is False
        assert data["reason"] == "not_owner"

    def test_operation_without_resource(self, client, people, auth_headers):
        response = client.get(
            "/api/authorize", params={"action": "view_audit_log"}, headers=auth_headers(people.louvre_staff),
        )
        assert response.json()["reason"] == "insufficient_role"

    def test_unknown_action(self, client, people, auth_headers):
        response = client.get(
            "/api/authorize", params={"action": "demolish", "resource_type": "artifact"},
            headers=auth_headers(people.super_admin),
        )
        assert response.status_code == 422

    def test_available_events(self, client, people, auth_headers, db_session):
        artifact = create_artifact(db_session, museum=people.louvre)
        db_session.commit()

        response = client.get(
            "/api/authorize/events",
            params={"resource_type": "artifact", "resource_id": str(artifact.id)},
            headers=auth_headers(people.louvre_admin),
        )

        assert response.status_code == 200
        assert sorted(response.json()["events"]) == ["first_approve", "first_reject"]

    def test_available_events_unknown_resource(self, client, people, auth_headers):
        response = client.get(
            "/api/authorize/events",
            params={"resource_type": "artifact", "resource_id": str(uuid.uuid4())},
            headers=auth_headers(people.super_admin),
        )
        assert response.status_code == 404

    def test_available_events_without_workflow(self, client, people, auth_headers):
        response = client.get(
            "/api/authorize/events",
            params={"resource_type": "user", "resource_id": str(people.visitor.id)},
            headers=auth_headers(people.super_admin),
        )
        assert response.status_code == 422
