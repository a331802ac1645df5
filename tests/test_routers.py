"""
HTTP tests for the apps router and the error envelope.

The router's AppService dependency is overridden with one wired to the
in-memory workload store.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from control_plane.errors import ConflictError
from control_plane.main import app
from control_plane.routers.apps import clamp_log_limit, get_app_service


@pytest.fixture
def http(app_service):
    app.dependency_overrides[get_app_service] = lambda: app_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def upsert_payload(owner, name="hello", tag="abc1234"):
    return {
        "name": name,
        "description": "Hello world",
        "image": f"registry.internal/{owner}/{name}:{tag}",
    }


class TestClampLogLimit:

    @pytest.mark.parametrize("value,expected", [
        (None, 200),
        ("abc", 200),
        ("0", 1),
        ("-5", 1),
        ("50", 50),
        ("2.9", 2),
        ("5000", 1000),
    ])
    def test_clamp(self, value, expected):
        assert clamp_log_limit(value) == expected


class TestSession:

    def test_missing_token(self, http):
        response = http.get("/apps")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "invalid_session"

    def test_token_must_be_uuid(self, http):
        response = http.get("/apps", params={"token": "not-a-uuid"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "invalid_session"


class TestValidation:

    @pytest.mark.parametrize("payload", [
        {"name": "Hello", "description": "", "image": "x"},
        {"name": "-hello", "description": "", "image": "x"},
        {"name": "hello", "description": "x" * 301, "image": "x"},
        {"name": "hello", "description": ""},
    ])
    def test_invalid_upsert_payload(self, http, owner, payload):
        response = http.post("/apps", params={"token": owner}, json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["code"] == "validation_error"
        assert body["error"]["details"]["errors"]

    @pytest.mark.parametrize("git_commit", ["xyz1234", "abc12", "a" * 41])
    def test_invalid_commit(self, http, owner, git_commit):
        response = http.post("/apps/prepare", params={"token": owner}, json={"name": "hello", "git_commit": git_commit})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_namespace_violation(self, http, owner):
        payload = upsert_payload(owner)
        payload["image"] = "registry.internal/someone-else/hello:abc1234"

        response = http.post("/apps", params={"token": owner}, json=payload)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "invalid_image_namespace"
        assert error["details"] == {"expected_prefix": f"registry.internal/{owner}/hello:<tag>"}


class TestAppsApi:

    def test_prepare_push(self, http, owner):
        response = http.post(
            "/apps/prepare",
            params={"token": owner},
            json={"name": "hello", "git_commit": "ABCDEF0123"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["repository"] == f"registry.internal/{owner}/hello"
        assert body["required_tag"] == "abcdef0"
        assert set(body) == {"repository", "push_token", "expires_at", "required_tag"}

    def test_lifecycle(self, http, owner):
        created = http.post("/apps", params={"token": owner}, json=upsert_payload(owner))
        assert created.status_code == 200
        app_id = created.json()["app_id"]
        assert created.json()["status"] == "deploying"
        assert created.json()["url"] == "https://hello.saki.internal"

        listed = http.get("/apps", params={"token": owner})
        assert listed.json() == {
            "data": [{
                "app_id": app_id,
                "name": "hello",
                "status": "pending",
                "url": "https://hello.saki.internal",
            }]
        }

        detail = http.get(f"/apps/{app_id}", params={"token": owner})
        assert detail.status_code == 200
        assert detail.json()["owner"] == owner
        assert detail.json()["description"] == "Hello world"

        stopped = http.post(f"/apps/{app_id}/stop", params={"token": owner})
        assert stopped.json() == {"app_id": app_id, "status": "stopped"}

        started = http.post(f"/apps/{app_id}/start", params={"token": owner})
        assert started.json() == {"app_id": app_id, "status": "deploying"}

        deleted = http.delete(f"/apps/{app_id}", params={"token": owner})
        assert deleted.json() == {"app_id": app_id, "status": "deleting"}

        gone = http.get(f"/apps/{app_id}", params={"token": owner})
        assert gone.status_code == 404
        assert gone.json()["error"]["code"] == "not_found"

    def test_other_owner_sees_not_found(self, http, owner):
        app_id = http.post("/apps", params={"token": owner}, json=upsert_payload(owner)).json()["app_id"]
        intruder = "44444444-4444-4444-8444-444444444444"

        response = http.get(f"/apps/{app_id}", params={"token": intruder})

        assert response.status_code == 404

    def test_list_all(self, http, owner, admin_token):
        http.post("/apps", params={"token": owner}, json=upsert_payload(owner))

        forbidden = http.get("/apps", params={"token": owner, "all": "true"})
        assert forbidden.status_code == 403
        assert forbidden.json()["error"]["code"] == "forbidden"

        everything = http.get("/apps", params={"token": admin_token, "all": "true"})
        assert len(everything.json()["data"]) == 1

        # Anything other than "true" means the caller's own apps
        own = http.get("/apps", params={"token": admin_token, "all": "1"})
        assert own.json()["data"] == []

    def test_logs(self, http, store, owner):
        app_id = http.post("/apps", params={"token": owner}, json=upsert_payload(owner)).json()["app_id"]
        store.add_pod(app_id, "hello-pod", [
            "2024-01-15T10:30:00Z one",
            "2024-01-15T10:30:01Z two",
            "2024-01-15T10:30:02Z three",
        ])

        first = http.get(f"/apps/{app_id}/logs", params={"token": owner, "limit": "2"}).json()
        second = http.get(
            f"/apps/{app_id}/logs",
            params={"token": owner, "limit": "2", "cursor": first["next_cursor"]}
        ).json()

        assert [e["message"] for e in first["data"]] == ["one", "two"]
        assert first["data"][0] == {"timestamp": "2024-01-15T10:30:00Z", "stream": "stdout", "message": "one"}
        assert first["next_cursor"] == "2"
        assert [e["message"] for e in second["data"]] == ["three"]
        assert second["next_cursor"] is None

    def test_conflict_envelope(self, http, owner, app_service):
        app_service.store.upsert_resources = AsyncMock(side_effect=ConflictError(
            "deployment was modified concurrently",
            details={"kind": "deployment"}
        ))

        response = http.post("/apps", params={"token": owner}, json=upsert_payload(owner))

        assert response.status_code == 409
        assert response.json() == {
            "error": {
                "code": "conflict",
                "message": "deployment was modified concurrently",
                "details": {"kind": "deployment"},
            }
        }


def test_health(http):
    assert http.get("/health").json() == {"status": "ok"}
