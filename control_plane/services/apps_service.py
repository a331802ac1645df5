"""
App orchestration service.

Entry point for every app operation. Validates intent, computes derived fields
(URL, TTL, identifiers), enforces owner/admin scoping and drives the workload
store, the log reader and the schema provisioner.

Ownership failures are reported as NotFoundError, never ForbiddenError, so a
caller cannot probe for other owners' app ids.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
from uuid import uuid4

from nanoid import generate

from ..config import Settings, get_settings
from ..errors import ForbiddenError, NamespaceViolationError, NotFoundError
from ..schemas import (
    AppDetail,
    AppRecord,
    AppSummary,
    ListAppsResponse,
    LogsPage,
    PreparePushResponse,
    StatusResponse,
    UpsertAppResponse,
    format_timestamp,
    utc_now_iso,
)
from .schema_provisioner import SchemaProvisioner
from .workloads.base import BaseWorkloadStore
from .workloads.logs import LogReader

logger = logging.getLogger(__name__)

PUSH_TOKEN_ALPHABET = '0123456789abcdefghijklmnopqrstuvwxyz'
PUSH_TOKEN_LENGTH = 24


def generate_app_id() -> str:
    return f"app_{uuid4().hex[:12]}"


def generate_deployment_id() -> str:
    return f"dep_{uuid4().hex[:12]}"


class AppService:

    def __init__(
        self,
        store: BaseWorkloadStore,
        log_reader: Optional[LogReader] = None,
        schema_provisioner: Optional[SchemaProvisioner] = None,
        settings: Optional[Settings] = None,
        admin_tokens: Optional[Iterable[str]] = None
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.log_reader = log_reader or LogReader(store, tail_lines=self.settings.log_tail_lines)
        self.schema_provisioner = schema_provisioner or SchemaProvisioner(self.settings.database_url)
        if admin_tokens is None:
            admin_tokens = self.settings.admin_token_set
        self.admin_tokens = frozenset(admin_tokens)

    def is_admin(self, token: str) -> bool:
        return token in self.admin_tokens

    def _repository(self, owner: str, name: str) -> str:
        return f"{self.settings.registry_host}/{owner}/{name}"

    def _ttl_expiry(self) -> str:
        expiry = datetime.now(timezone.utc) + timedelta(hours=self.settings.default_app_ttl_hours)
        return format_timestamp(expiry)

    async def _get_owned(self, owner: str, app_id: str) -> AppRecord:
        record = await self.store.find_by_id(app_id)
        if record is None or record.owner != owner:
            raise NotFoundError()
        return record

    # =========================================================================
    # PUSH
    # =========================================================================

    def prepare_push(self, owner: str, name: str, git_commit: str) -> PreparePushResponse:
        """Hand out a short-lived push credential for the owner's repository."""
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=self.settings.push_token_ttl_minutes)

        return PreparePushResponse(
            repository=self._repository(owner, name),
            push_token=generate(PUSH_TOKEN_ALPHABET, PUSH_TOKEN_LENGTH),
            expires_at=format_timestamp(expires_at),
            required_tag=git_commit[:7].lower(),
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def upsert_app(self, owner: str, name: str, description: str, image: str) -> UpsertAppResponse:
        """
        Create an app or redeploy an existing one with the same (owner, name).

        Redeploys keep app_id, deployment_id and created_at.

        Raises:
            NamespaceViolationError: If the image is outside {registry}/{owner}/{name}
            ConflictError: If a concurrent write touched the same objects
        """
        expected_repository = self._repository(owner, name)
        if not image.startswith(f"{expected_repository}:"):
            raise NamespaceViolationError(
                "Image must match owner/app namespace",
                details={"expected_prefix": f"{expected_repository}:<tag>"}
            )

        url = f"https://{name}.{self.settings.app_base_domain}"
        now = utc_now_iso()

        existing = await self.store.find_by_owner_and_name(owner, name)
        if existing is not None:
            record = existing.model_copy(update={
                "description": description,
                "image": image,
                "url": url,
                "status": "deploying",
                "updated_at": now,
                "ttl_expiry": self._ttl_expiry(),
            })
            logger.info(f"Redeploying app {record.app_id} ({owner}/{name}) with image {image}")
        else:
            record = AppRecord(
                app_id=generate_app_id(),
                deployment_id=generate_deployment_id(),
                owner=owner,
                name=name,
                description=description,
                image=image,
                url=url,
                status="deploying",
                created_at=now,
                updated_at=now,
                ttl_expiry=self._ttl_expiry(),
            )
            logger.info(f"Creating app {record.app_id} ({owner}/{name}) with image {image}")

        await self.schema_provisioner.ensure_schema(record.app_id)
        connection_string = self.schema_provisioner.connection_string(record.app_id)

        record = await self.store.upsert_resources(record, connection_string, replicas=1)

        return UpsertAppResponse(
            app_id=record.app_id,
            deployment_id=record.deployment_id,
            url=record.url,
            status="deploying",
        )

    async def get_app(self, owner: str, app_id: str) -> AppDetail:
        record = await self._get_owned(owner, app_id)
        return AppDetail.from_record(record)

    async def list_apps(self, owner: str, include_all: bool = False) -> ListAppsResponse:
        """
        List the caller's apps, or every app when include_all is set.

        Raises:
            ForbiddenError: If include_all is requested by a non-admin
        """
        if include_all and not self.is_admin(owner):
            raise ForbiddenError("Listing all apps requires admin access")

        records = await self.store.list_apps(None if include_all else owner)
        return ListAppsResponse(data=[AppSummary.from_record(r) for r in records])

    async def stop_app(self, owner: str, app_id: str) -> StatusResponse:
        record = await self._get_owned(owner, app_id)
        await self.store.set_replicas(record, 0, "stopped")
        logger.info(f"Stopped app {app_id}")
        return StatusResponse(app_id=record.app_id, status="stopped")

    async def start_app(self, owner: str, app_id: str) -> StatusResponse:
        record = await self._get_owned(owner, app_id)
        await self.store.set_replicas(record, 1, "deploying")
        logger.info(f"Started app {app_id}")
        return StatusResponse(app_id=record.app_id, status="deploying")

    async def delete_app(self, owner: str, app_id: str) -> StatusResponse:
        record = await self._get_owned(owner, app_id)
        await self.store.delete_resources(record)
        await self.schema_provisioner.drop_schema(record.app_id)
        logger.info(f"Deleted app {app_id}")
        return StatusResponse(app_id=record.app_id, status="deleting")

    async def get_logs(
        self,
        owner: str,
        app_id: str,
        cursor: Optional[str] = None,
        limit: int = 200
    ) -> LogsPage:
        record = await self._get_owned(owner, app_id)
        return await self.log_reader.read_logs(record, cursor, limit)
