"""
Tests for the app orchestration service.

Runs AppService against the in-memory workload store: upsert/redeploy,
namespace enforcement, owner scoping, lifecycle operations and logs.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from control_plane.errors import ForbiddenError, NamespaceViolationError, NotFoundError
from control_plane.schemas import parse_timestamp
from control_plane.services.apps_service import generate_app_id, generate_deployment_id


def image_for(owner, name, tag="abc1234"):
    return f"registry.internal/{owner}/{name}:{tag}"


class TestIdentifiers:

    def test_app_id_format(self):
        app_id = generate_app_id()
        assert app_id.startswith("app_")
        assert len(app_id) == 16
        assert generate_app_id() != app_id

    def test_deployment_id_format(self):
        deployment_id = generate_deployment_id()
        assert deployment_id.startswith("dep_")
        assert len(deployment_id) == 16


class TestPreparePush:

    def test_returns_repository_and_tag(self, app_service, owner):
        response = app_service.prepare_push(owner, "hello", "ABCDEF1234567890")

        assert response.repository == f"registry.internal/{owner}/hello"
        assert response.required_tag == "abcdef1"
        assert len(response.push_token) == 24

    def test_expires_in_ten_minutes(self, app_service, owner):
        before = datetime.now(timezone.utc)
        response = app_service.prepare_push(owner, "hello", "abcdef1")
        other = app_service.prepare_push(owner, "hello", "abcdef1")

        assert response.expires_at.endswith("Z")
        remaining = parse_timestamp(response.expires_at) - before
        assert 595 <= remaining.total_seconds() <= 605
        assert response.push_token != other.push_token


class TestUpsertApp:

    @pytest.mark.asyncio
    async def test_creates_app(self, app_service, store, owner):
        response = await app_service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))

        assert response.status == "deploying"
        assert response.url == "https://hello.saki.internal"
        assert response.app_id.startswith("app_")
        assert response.deployment_id.startswith("dep_")

        deployment = store.deployment_for(response.app_id)
        assert deployment is not None
        assert deployment.spec.replicas == 1

    @pytest.mark.asyncio
    async def test_ttl_expiry_is_one_week_out(self, app_service, owner):
        response = await app_service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))

        detail = await app_service.get_app(owner, response.app_id)
        lifetime = parse_timestamp(detail.ttl_expiry) - parse_timestamp(detail.created_at)
        assert abs(lifetime.total_seconds() - 168 * 3600) < 5

    @pytest.mark.asyncio
    async def test_redeploy_keeps_identity(self, app_service, store, owner):
        first = await app_service.upsert_app(owner, "hello", "v1", image_for(owner, "hello", "aaaaaaa"))
        created = await app_service.get_app(owner, first.app_id)

        second = await app_service.upsert_app(owner, "hello", "v2", image_for(owner, "hello", "bbbbbbb"))
        detail = await app_service.get_app(owner, second.app_id)

        assert second.app_id == first.app_id
        assert second.deployment_id == first.deployment_id
        assert detail.created_at == created.created_at
        assert detail.description == "v2"
        assert detail.image.endswith(":bbbbbbb")
        assert len(store._objects["deployment"]) == 1

    @pytest.mark.asyncio
    async def test_same_payload_twice_is_idempotent(self, app_service, store, owner):
        image = image_for(owner, "hello")
        first = await app_service.upsert_app(owner, "hello", "Hello", image)
        second = await app_service.upsert_app(owner, "hello", "Hello", image)

        assert first.app_id == second.app_id
        for kind in ("deployment", "service", "ingress"):
            assert len(store._objects[kind]) == 1

    @pytest.mark.asyncio
    async def test_same_name_different_owners(self, app_service, owner):
        other_owner = "f0f0f0f0-0000-4000-8000-000000000000"
        mine = await app_service.upsert_app(owner, "hello", "mine", image_for(owner, "hello"))
        theirs = await app_service.upsert_app(other_owner, "hello", "theirs", image_for(other_owner, "hello"))

        assert mine.app_id != theirs.app_id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("image", [
        "registry.internal/someone-else/hello:abc1234",
        "registry.internal/{owner}/other:abc1234",
        "docker.io/{owner}/hello:abc1234",
        "registry.internal/{owner}/hello",
        "registry.internal/{owner}/hello-evil:abc1234",
    ])
    async def test_namespace_violation_before_cluster_calls(self, app_service, store, owner, image):
        with pytest.raises(NamespaceViolationError) as exc_info:
            await app_service.upsert_app(owner, "hello", "Hello", image.format(owner=owner))

        assert exc_info.value.details == {"expected_prefix": f"registry.internal/{owner}/hello:<tag>"}
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_provisions_schema(self, store, settings, owner):
        from control_plane.services.apps_service import AppService

        provisioner = AsyncMock()
        provisioner.connection_string = lambda app_id: f"postgresql://db/apps?schema={app_id}"
        service = AppService(store=store, schema_provisioner=provisioner, settings=settings, admin_tokens=set())

        response = await service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))

        provisioner.ensure_schema.assert_awaited_once_with(response.app_id)
        container = store.deployment_for(response.app_id).spec.template.spec.containers[0]
        env = {e.name: e.value for e in container.env}
        assert env["DATABASE_URL"] == f"postgresql://db/apps?schema={response.app_id}"


class TestScoping:

    @pytest.mark.asyncio
    async def test_other_owner_gets_not_found(self, app_service, owner):
        response = await app_service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))
        intruder = "11111111-1111-4111-8111-111111111111"

        for operation in (app_service.get_app, app_service.stop_app, app_service.start_app,
                          app_service.delete_app, app_service.get_logs):
            with pytest.raises(NotFoundError):
                await operation(intruder, response.app_id)

    @pytest.mark.asyncio
    async def test_unknown_app_is_not_found(self, app_service, owner):
        with pytest.raises(NotFoundError):
            await app_service.get_app(owner, "app_doesnotexist")

    @pytest.mark.asyncio
    async def test_list_only_own_apps(self, app_service, owner):
        other_owner = "22222222-2222-4222-8222-222222222222"
        await app_service.upsert_app(owner, "one", "", image_for(owner, "one"))
        await app_service.upsert_app(owner, "two", "", image_for(owner, "two"))
        await app_service.upsert_app(other_owner, "three", "", image_for(other_owner, "three"))

        response = await app_service.list_apps(owner)

        assert sorted(app.name for app in response.data) == ["one", "two"]

    @pytest.mark.asyncio
    async def test_list_all_requires_admin(self, app_service, owner):
        with pytest.raises(ForbiddenError):
            await app_service.list_apps(owner, include_all=True)

    @pytest.mark.asyncio
    async def test_admin_lists_everything(self, app_service, owner, admin_token):
        other_owner = "33333333-3333-4333-8333-333333333333"
        await app_service.upsert_app(owner, "one", "", image_for(owner, "one"))
        await app_service.upsert_app(other_owner, "two", "", image_for(other_owner, "two"))

        everything = await app_service.list_apps(admin_token, include_all=True)
        own = await app_service.list_apps(admin_token)

        assert sorted(app.name for app in everything.data) == ["one", "two"]
        assert own.data == []


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_status_follows_cluster(self, app_service, store, owner):
        response = await app_service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))

        assert (await app_service.get_app(owner, response.app_id)).status == "pending"

        store.simulate_rollout(response.app_id)
        assert (await app_service.get_app(owner, response.app_id)).status == "healthy"

    @pytest.mark.asyncio
    async def test_stop_then_start(self, app_service, store, owner):
        response = await app_service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))

        stopped = await app_service.stop_app(owner, response.app_id)
        assert stopped.status == "stopped"
        assert store.deployment_for(response.app_id).spec.replicas == 0
        assert (await app_service.get_app(owner, response.app_id)).status == "stopped"

        started = await app_service.start_app(owner, response.app_id)
        assert started.status == "deploying"
        assert store.deployment_for(response.app_id).spec.replicas == 1

    @pytest.mark.asyncio
    async def test_stopped_failed_app_reports_stopped(self, app_service, store, owner):
        response = await app_service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))
        store.simulate_progress_deadline_exceeded(response.app_id)
        assert (await app_service.get_app(owner, response.app_id)).status == "failed"

        await app_service.stop_app(owner, response.app_id)

        assert (await app_service.get_app(owner, response.app_id)).status == "stopped"

    @pytest.mark.asyncio
    async def test_delete(self, app_service, store, owner):
        response = await app_service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))

        deleted = await app_service.delete_app(owner, response.app_id)

        assert deleted.status == "deleting"
        assert deleted.app_id == response.app_id
        for kind in ("deployment", "service", "ingress"):
            assert store._objects[kind] == {}
        with pytest.raises(NotFoundError):
            await app_service.get_app(owner, response.app_id)

    @pytest.mark.asyncio
    async def test_delete_drops_schema(self, store, settings, owner):
        from control_plane.services.apps_service import AppService

        provisioner = AsyncMock()
        provisioner.connection_string = lambda app_id: ""
        service = AppService(store=store, schema_provisioner=provisioner, settings=settings, admin_tokens=set())
        response = await service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))

        await service.delete_app(owner, response.app_id)

        provisioner.drop_schema.assert_awaited_once_with(response.app_id)


class TestLogs:

    @pytest.mark.asyncio
    async def test_reads_logs(self, app_service, store, owner):
        response = await app_service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))
        store.add_pod(response.app_id, "hello-pod", [
            "2024-01-15T10:30:00Z starting",
            "2024-01-15T10:30:01Z listening on 8080",
        ])

        page = await app_service.get_logs(owner, response.app_id, limit=1)

        assert [e.message for e in page.data] == ["starting"]
        assert page.next_cursor == "1"

    @pytest.mark.asyncio
    async def test_zero_limit_is_clamped(self, app_service, store, owner):
        response = await app_service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))
        store.add_pod(response.app_id, "hello-pod", [
            "2024-01-15T10:30:00Z starting",
            "2024-01-15T10:30:01Z listening on 8080",
        ])

        page = await app_service.get_logs(owner, response.app_id, limit=0)

        assert [e.message for e in page.data] == ["starting"]
        assert page.next_cursor == "1"

    @pytest.mark.asyncio
    async def test_no_pods(self, app_service, owner):
        response = await app_service.upsert_app(owner, "hello", "Hello", image_for(owner, "hello"))

        page = await app_service.get_logs(owner, response.app_id)

        assert page.data == []
        assert page.next_cursor is None

