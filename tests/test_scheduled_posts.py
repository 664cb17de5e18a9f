"""
Tests for scheduled post endpoints.
"""
from datetime import timedelta

import pytest

from smap.clock import utcnow
from smap.config import get_settings
from smap.exceptions import PlatformError
from smap.models import PlatformConnection, ScheduledPost


def _future(**delta):
    return (utcnow() + timedelta(**(delta or {"hours": 1}))).isoformat() + "Z"


def _payload(**overrides):
    payload = {
        "platform": "facebook",
        "message": "<p>Big news</p>",
        "scheduled_time": _future(),
    }
    payload.update(overrides)
    return payload


class TestCreateScheduledPost:
    """Creating posts validates before anything is stored."""

    def test_create_post(self, client, auth_headers, facebook_connection, db):
        response = client.post("/api/scheduled-posts", headers=auth_headers, json=_payload(
            link="https://example.com",
            media_type="link",
            ai_generated=True,
            ai_prompt="Announce the launch",
        ))
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "scheduled"
        assert data["page_id"] == "12345"
        assert data["page_name"] == "Test Page"
        assert data["content"]["media_type"] == "link"
        assert data["retry_count"] == 0
        assert data["max_retries"] == 3
        assert data["ai_generated"] is True
        assert db.query(ScheduledPost).count() == 1

    def test_create_post_unauthenticated(self, client):
        response = client.post("/api/scheduled-posts", json=_payload())
        assert response.status_code == 401

    def test_past_time_rejected(self, client, auth_headers, facebook_connection, db):
        past = (utcnow() - timedelta(minutes=1)).isoformat() + "Z"
        response = client.post("/api/scheduled-posts", headers=auth_headers, json=_payload(scheduled_time=past))
        assert response.status_code == 400
        body = response.json()
        assert body["ok"] is False
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["details"] == {"field": "scheduled_time"}
        assert db.query(ScheduledPost).count() == 0

    def test_blank_message_rejected(self, client, auth_headers, facebook_connection, db):
        response = client.post("/api/scheduled-posts", headers=auth_headers, json=_payload(message="   "))
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"
        assert db.query(ScheduledPost).count() == 0

    def test_message_too_long_rejected(self, client, auth_headers, facebook_connection):
        response = client.post("/api/scheduled-posts", headers=auth_headers, json=_payload(message="x" * 5001))
        assert response.status_code == 400

    def test_missing_fields_rejected(self, client, auth_headers, facebook_connection):
        response = client.post("/api/scheduled-posts", headers=auth_headers, json={"platform": "facebook"})
        assert response.status_code == 422

    def test_unknown_platform_rejected(self, client, auth_headers, facebook_connection):
        response = client.post("/api/scheduled-posts", headers=auth_headers, json=_payload(platform="myspace"))
        assert response.status_code == 422

    def test_unpublishable_platform_rejected(self, client, auth_headers, db, test_user):
        db.add(PlatformConnection(user_id=test_user.id, platform="youtube", is_connected=True, access_token="yt"))
        db.commit()
        db.refresh(test_user)

        response = client.post("/api/scheduled-posts", headers=auth_headers, json=_payload(platform="youtube"))
        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["details"] == {"field": "platform"}
        assert db.query(ScheduledPost).count() == 0

    def test_platform_not_connected(self, client, auth_headers, db):
        response = client.post("/api/scheduled-posts", headers=auth_headers, json=_payload())
        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "PLATFORM_NOT_CONNECTED"
        assert body["details"] == {"platform": "facebook"}
        assert db.query(ScheduledPost).count() == 0

    def test_facebook_needs_page_token(self, client, auth_headers, facebook_connection, db):
        facebook_connection.page_access_token = None
        db.commit()
        response = client.post("/api/scheduled-posts", headers=auth_headers, json=_payload())
        assert response.status_code == 400
        assert response.json()["error_code"] == "PLATFORM_NOT_CONNECTED"

    def test_disconnected_connection_rejected(self, client, auth_headers, facebook_connection, db):
        facebook_connection.is_connected = False
        db.commit()
        response = client.post("/api/scheduled-posts", headers=auth_headers, json=_payload())
        assert response.status_code == 400


class TestReadScheduledPosts:

    def test_list_paginates(self, client, auth_headers, make_post):
        for hours in (3, 1, 2):
            make_post(scheduled_time=utcnow() + timedelta(hours=hours))

        response = client.get("/api/scheduled-posts?limit=2", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 2
        assert body["pagination"]["total"] == 3
        assert body["pagination"]["has_next"] is True
        times = [item["scheduled_time"] for item in body["data"]]
        assert times == sorted(times)

        second = client.get("/api/scheduled-posts?limit=2&page=2", headers=auth_headers).json()
        assert len(second["data"]) == 1
        assert second["pagination"]["has_prev"] is True

    def test_list_filters_by_status(self, client, auth_headers, make_post):
        make_post()
        make_post(status="published")
        response = client.get("/api/scheduled-posts?status=published", headers=auth_headers)
        data = response.json()["data"]
        assert [item["status"] for item in data] == ["published"]

    def test_list_only_own_posts(self, client, auth_headers, make_post, other_user):
        make_post(user_id=other_user.id)
        response = client.get("/api/scheduled-posts", headers=auth_headers)
        assert response.json()["data"] == []

    def test_get_post(self, client, auth_headers, make_post):
        post = make_post()
        response = client.get(f"/api/scheduled-posts/{post.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["id"] == post.id

    def test_get_missing_post(self, client, auth_headers):
        response = client.get("/api/scheduled-posts/999", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_get_other_users_post(self, client, auth_headers, make_post, other_user):
        post = make_post(user_id=other_user.id)
        response = client.get(f"/api/scheduled-posts/{post.id}", headers=auth_headers)
        assert response.status_code == 404


class TestUpdateScheduledPost:

    def test_update_scheduled_post(self, client, auth_headers, make_post):
        post = make_post(scheduled_time=utcnow() + timedelta(hours=1))
        response = client.patch(
            f"/api/scheduled-posts/{post.id}",
            headers=auth_headers,
            json={"message": "Edited", "scheduled_time": _future(days=1)},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["content"]["message"] == "Edited"
        assert data["status"] == "scheduled"

    def test_update_to_past_rejected(self, client, auth_headers, make_post, db):
        post = make_post(scheduled_time=utcnow() + timedelta(hours=1))
        past = (utcnow() - timedelta(hours=1)).isoformat() + "Z"
        response = client.patch(f"/api/scheduled-posts/{post.id}", headers=auth_headers, json={"scheduled_time": past})
        assert response.status_code == 400
        db.refresh(post)
        assert post.scheduled_time > utcnow()

    @pytest.mark.parametrize("status", ["publishing", "published", "failed", "cancelled"])
    def test_update_only_while_scheduled(self, client, auth_headers, make_post, status):
        post = make_post(status=status)
        response = client.patch(f"/api/scheduled-posts/{post.id}", headers=auth_headers, json={"message": "Edited"})
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_STATE"


class TestCancelScheduledPost:

    def test_cancel_keeps_record(self, client, auth_headers, make_post, db):
        post = make_post(scheduled_time=utcnow() + timedelta(hours=1))
        response = client.delete(f"/api/scheduled-posts/{post.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelled"
        db.refresh(post)
        assert post.status == "cancelled"
        assert db.query(ScheduledPost).count() == 1

    def test_cancel_twice_rejected(self, client, auth_headers, make_post):
        post = make_post()
        client.delete(f"/api/scheduled-posts/{post.id}", headers=auth_headers)
        response = client.delete(f"/api/scheduled-posts/{post.id}", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_STATE"

    def test_cancel_published_rejected(self, client, auth_headers, make_post, db):
        post = make_post(status="published")
        response = client.delete(f"/api/scheduled-posts/{post.id}", headers=auth_headers)
        assert response.status_code == 400
        db.refresh(post)
        assert post.status == "published"


class TestPublishNow:

    def test_publish_now(self, client, auth_headers, facebook_connection, make_post, publisher):
        post = make_post(scheduled_time=utcnow() + timedelta(days=1))
        response = client.post(f"/api/scheduled-posts/{post.id}/publish", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["post"]["status"] == "published"
        assert data["post"]["published_post_url"] == "https://facebook.com/page_1"
        assert data["result"]["success"] is True
        assert len(publisher.calls) == 1

    def test_publish_now_failure_is_recorded(self, client, auth_headers, facebook_connection, make_post, publisher, db):
        publisher.fail_with = PlatformError("facebook", "(#200) Permissions error", 403)
        post = make_post()
        response = client.post(f"/api/scheduled-posts/{post.id}/publish", headers=auth_headers)
        assert response.status_code == 502
        body = response.json()
        assert body["error_code"] == "PLATFORM_ERROR"
        assert body["details"]["post"]["retry_count"] == 1

        db.refresh(post)
        assert post.status == "scheduled"
        assert post.retry_count == 1
        assert post.error_message == "(#200) Permissions error"

    @pytest.mark.parametrize("status", ["published", "cancelled", "failed"])
    def test_publish_now_rejected_for_final_states(self, client, auth_headers, make_post, publisher, status):
        post = make_post(status=status)
        response = client.post(f"/api/scheduled-posts/{post.id}/publish", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_STATE"
        assert publisher.calls == []

    def test_publish_now_in_flight_rejected(self, client, auth_headers, make_post, publisher):
        post = make_post(status="publishing", updated_at=utcnow() - timedelta(minutes=2))
        response = client.post(f"/api/scheduled-posts/{post.id}/publish", headers=auth_headers)
        assert response.status_code == 400
        assert publisher.calls == []

    def test_publish_now_recovers_stale_attempt(self, client, auth_headers, facebook_connection, make_post, publisher):
        post = make_post(status="publishing", updated_at=utcnow() - timedelta(minutes=20))
        response = client.post(f"/api/scheduled-posts/{post.id}/publish", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["post"]["status"] == "published"


class TestProcessEndpoint:

    @pytest.fixture
    def cron_secret(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "cron_secret", "s3cret")
        return "s3cret"

    def test_process_due_posts(self, client, facebook_connection, make_post, publisher, db):
        due = make_post()
        future = make_post(scheduled_time=utcnow() + timedelta(hours=1))

        response = client.post("/api/scheduled-posts/process")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["processed"] == 1
        assert data["successful"] == 1
        assert data["failed"] == 0
        assert data["results"][0]["post_id"] == due.id

        db.refresh(due)
        db.refresh(future)
        assert due.status == "published"
        assert future.status == "scheduled"

    def test_process_get_with_nothing_due(self, client):
        response = client.get("/api/scheduled-posts/process")
        assert response.status_code == 200
        assert response.json()["data"]["processed"] == 0
        assert response.json()["message"] == "No posts to process"

    def test_process_requires_secret(self, client, cron_secret):
        response = client.get("/api/scheduled-posts/process")
        assert response.status_code == 401
        response = client.get("/api/scheduled-posts/process?secret=wrong")
        assert response.status_code == 401

    def test_process_with_secret(self, client, cron_secret):
        response = client.get(f"/api/scheduled-posts/process?secret={cron_secret}")
        assert response.status_code == 200

    def test_process_counts_failures(self, client, facebook_connection, make_post, publisher):
        make_post()
        make_post(platform="youtube")
        data = client.post("/api/scheduled-posts/process").json()["data"]
        assert data["processed"] == 2
        assert data["successful"] == 1
        assert data["failed"] == 1
        failure = [r for r in data["results"] if not r["success"]][0]
        assert "not supported" in failure["error"]


class TestFacebookPublish:

    def test_one_shot_publish(self, client, auth_headers, facebook_connection, publisher, db):
        response = client.post(
            "/api/facebook/publish",
            headers=auth_headers,
            json={"message": "Right now", "media_type": "none"},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["post_id"] == "page_1"
        assert data["post_url"] == "https://facebook.com/page_1"
        assert db.query(ScheduledPost).count() == 0

    def test_one_shot_platform_error(self, client, auth_headers, facebook_connection, publisher):
        publisher.fail_with = PlatformError("facebook", "Graph API down", 500)
        response = client.post("/api/facebook/publish", headers=auth_headers, json={"message": "Hi"})
        assert response.status_code == 502
        assert response.json()["error_code"] == "PLATFORM_ERROR"

    def test_one_shot_blank_message(self, client, auth_headers, facebook_connection):
        response = client.post("/api/facebook/publish", headers=auth_headers, json={"message": ""})
        assert response.status_code == 400

    def test_history(self, client, auth_headers, make_post):
        make_post(status="published", published_at=utcnow(), published_post_id="1_2")
        make_post(status="failed", retry_count=3, error_message="boom")
        make_post()
        data = client.get("/api/facebook/publish", headers=auth_headers).json()["data"]
        assert len(data["published_posts"]) == 1
        assert len(data["failed_posts"]) == 1


class TestConnectionModel:

    def test_one_connection_per_platform(self, db, facebook_connection, test_user):
        from sqlalchemy.exc import IntegrityError

        db.add(PlatformConnection(user_id=test_user.id, platform="facebook"))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
