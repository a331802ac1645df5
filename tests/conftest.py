"""
Test configuration and fixtures for pytest.

Fixtures include: settings, the in-memory workload store, a fully wired
AppService and owner/admin session tokens.
"""

import sys
import os
from pathlib import Path
from uuid import uuid4

import pytest

# Add the repository root to sys.path
repo_dir = Path(__file__).parent.parent
sys.path.insert(0, str(repo_dir))

ADMIN_TOKEN = "00000000-0000-4000-8000-000000000001"


def pytest_configure(config):
    """
    Pytest hook called before test collection.
    Sets up test environment variables and registers custom markers.
    """
    # Set test environment variables BEFORE any control_plane imports
    os.environ["WORKLOAD_BACKEND"] = "memory"
    os.environ["DATABASE_URL"] = ""
    os.environ["ADMIN_TOKENS"] = ADMIN_TOKEN
    os.environ["REGISTRY_HOST"] = "registry.internal"
    os.environ["APP_BASE_DOMAIN"] = "saki.internal"
    os.environ["K8S_NAMESPACE"] = "saki-apps"

    from control_plane.config import get_settings
    get_settings.cache_clear()

    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "kubernetes: mark test as requiring Kubernetes")


@pytest.fixture
def settings():
    from control_plane.config import Settings
    return Settings(
        registry_host="registry.internal",
        app_base_domain="saki.internal",
        database_url="",
        k8s_namespace="saki-apps",
        workload_backend="memory",
    )


@pytest.fixture
def store(settings):
    from control_plane.services.workloads.memory_store import InMemoryWorkloadStore
    return InMemoryWorkloadStore(settings)


@pytest.fixture
def app_service(store, settings):
    from control_plane.services.apps_service import AppService
    from control_plane.services.schema_provisioner import SchemaProvisioner
    return AppService(
        store=store,
        schema_provisioner=SchemaProvisioner(""),
        settings=settings,
        admin_tokens={ADMIN_TOKEN},
    )


@pytest.fixture
def owner():
    return str(uuid4())


@pytest.fixture
def admin_token():
    return ADMIN_TOKEN


@pytest.fixture
def make_record():
    """Factory for AppRecords with sensible defaults."""
    from control_plane.schemas import AppRecord

    def _make(**overrides):
        values = {
            "app_id": "app_1a2b3c4d5e6f",
            "deployment_id": "dep_a1b2c3d4e5f6",
            "owner": "4b0c7a52-6f0e-4f5b-9d8e-0a1b2c3d4e5f",
            "name": "hello",
            "description": "Hello world app",
            "image": "registry.internal/4b0c7a52-6f0e-4f5b-9d8e-0a1b2c3d4e5f/hello:abc1234",
            "url": "https://hello.saki.internal",
            "status": "deploying",
            "created_at": "2024-01-15T10:30:00.000Z",
            "updated_at": "2024-01-15T10:30:00.000Z",
            "ttl_expiry": "2024-01-22T10:30:00.000Z",
        }
        values.update(overrides)
        return AppRecord(**values)

    return _make
