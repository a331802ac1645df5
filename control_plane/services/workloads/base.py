"""
Abstract Workload Store

The cluster is the only system of record for apps: there is no database row
per app. The store reconstructs AppRecords from Deployments and writes them
back as three objects (Deployment, Service, Ingress).

All composition lives here. Backends only implement the transport primitives
(list/read/create/replace/delete per kind, pod listing, pod logs), so the
Kubernetes backend and the in-memory fake share identical semantics:

- lookups fail loudly (ConsistencyError) when more than one object matches
- writes are create-or-replace with the object's resourceVersion, so a
  concurrent writer surfaces as ConflictError instead of a silent overwrite
- deletes tolerate objects that are already gone
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ...config import Settings, get_settings
from ...errors import ConsistencyError, NotFoundError
from ...schemas import AppRecord, parse_timestamp, utc_now_iso
from ...utils.resource_naming import get_resource_names
from . import codec
from .manifests import build_app_manifests
from .status import ObservedState, derive_status

logger = logging.getLogger(__name__)

# Write order for upserts
RESOURCE_KINDS = ("deployment", "service", "ingress")


class BaseWorkloadStore(ABC):
    """
    Abstract base class for app state backed by cluster objects.

    Subclasses implement the underscore-prefixed primitives plus the pod
    accessors used by the log reader.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.namespace = self.settings.k8s_namespace

    # =========================================================================
    # TRANSPORT PRIMITIVES
    # =========================================================================

    @abstractmethod
    async def _list_deployments(self, labels: Dict[str, str]) -> List[Any]:
        """List Deployments carrying all of the given labels."""
        pass

    @abstractmethod
    async def _read_object(self, kind: str, name: str) -> Optional[Any]:
        """Read an object, or None if it does not exist."""
        pass

    @abstractmethod
    async def _create_object(self, kind: str, body: Any) -> Any:
        """
        Create an object.

        Raises:
            ConflictError: If an object with that name already exists
        """
        pass

    @abstractmethod
    async def _replace_object(self, kind: str, name: str, body: Any) -> Any:
        """
        Replace an object; body.metadata.resource_version must match the live one.

        Raises:
            ConflictError: On resourceVersion mismatch
            NotFoundError: If the object no longer exists
        """
        pass

    @abstractmethod
    async def _delete_object(self, kind: str, name: str) -> bool:
        """Delete an object. Returns False if it was already absent."""
        pass

    @abstractmethod
    async def list_pods(self, labels: Dict[str, str]) -> List[Any]:
        """List pods carrying all of the given labels."""
        pass

    @abstractmethod
    async def read_pod_log(
        self,
        pod_name: str,
        container: Optional[str],
        tail_lines: int
    ) -> str:
        """
        Read the most recent lines of a pod's log, each prefixed with its timestamp.

        Raises:
            AmbiguousContainerError: If the container name is rejected
        """
        pass

    # =========================================================================
    # DECODING
    # =========================================================================

    def record_from_deployment(self, deployment: Any) -> Optional[AppRecord]:
        """Decode a Deployment into a record with a freshly derived status."""
        fallback_image = None
        template = deployment.spec.template if deployment.spec is not None else None
        if template is not None and template.spec is not None and template.spec.containers:
            fallback_image = template.spec.containers[0].image

        record = codec.decode(deployment.metadata.annotations, fallback_image)
        if record is None:
            return None

        status = derive_status(ObservedState.from_deployment(deployment))
        return record.model_copy(update={"status": status})

    async def _find_one(
        self,
        labels: Dict[str, str],
        predicate: Callable[[AppRecord], bool],
        description: str
    ) -> Optional[AppRecord]:
        deployments = await self._list_deployments(labels)

        matches = []
        for deployment in deployments:
            record = self.record_from_deployment(deployment)
            if record is not None and predicate(record):
                matches.append((deployment.metadata.name, record))

        if not matches:
            return None

        if len(matches) > 1:
            object_names = sorted(name for name, _ in matches)
            logger.error(f"[K8S] {len(matches)} deployments match {description}: {object_names}")
            raise ConsistencyError(
                f"Multiple deployments match {description}",
                details={"deployments": object_names}
            )

        return matches[0][1]

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def find_by_owner_and_name(self, owner: str, name: str) -> Optional[AppRecord]:
        labels = {
            codec.MANAGED_BY_LABEL: codec.MANAGED_BY_VALUE,
            codec.OWNER_LABEL: codec.normalize_label_value(owner),
            codec.NAME_LABEL: codec.normalize_label_value(name),
        }
        return await self._find_one(
            labels,
            lambda record: record.owner == owner and record.name == name,
            f"owner={owner} name={name}"
        )

    async def find_by_id(self, app_id: str) -> Optional[AppRecord]:
        labels = {
            codec.MANAGED_BY_LABEL: codec.MANAGED_BY_VALUE,
            codec.APP_ID_LABEL: codec.normalize_label_value(app_id),
        }
        return await self._find_one(
            labels,
            lambda record: record.app_id == app_id,
            f"app_id={app_id}"
        )

    async def list_apps(self, owner: Optional[str] = None) -> List[AppRecord]:
        """
        List apps, optionally restricted to one owner, most recently updated first.

        Objects that do not decode into a record are skipped.
        """
        labels = {codec.MANAGED_BY_LABEL: codec.MANAGED_BY_VALUE}
        if owner is not None:
            labels[codec.OWNER_LABEL] = codec.normalize_label_value(owner)

        deployments = await self._list_deployments(labels)

        records = []
        for deployment in deployments:
            record = self.record_from_deployment(deployment)
            if record is None:
                logger.debug(f"[K8S] Skipping undecodable deployment {deployment.metadata.name}")
                continue
            if owner is not None and record.owner != owner:
                continue
            records.append(record)

        records.sort(key=lambda r: parse_timestamp(r.updated_at), reverse=True)
        return records

    # =========================================================================
    # WRITES
    # =========================================================================

    async def _create_or_replace(self, kind: str, body: Any) -> None:
        name = body.metadata.name
        current = await self._read_object(kind, name)

        if current is None:
            await self._create_object(kind, body)
            logger.info(f"[K8S] ✅ Created {kind}: {name}")
            return

        body.metadata.resource_version = current.metadata.resource_version
        if kind == "service" and current.spec is not None:
            # clusterIP is immutable once allocated; the API server derives clusterIPs from it
            body.spec.cluster_ip = current.spec.cluster_ip

        await self._replace_object(kind, name, body)
        logger.info(f"[K8S] ✅ Replaced {kind}: {name} (from version {current.metadata.resource_version})")

    async def upsert_resources(
        self,
        record: AppRecord,
        connection_string: str = "",
        replicas: int = 1
    ) -> AppRecord:
        """
        Create or replace the app's Deployment, Service and Ingress, in that order.

        Each object is written independently. A failure part-way leaves the
        earlier objects updated; calling this again is the repair path.

        Raises:
            ConflictError: If another writer changed an object since it was read
        """
        manifests = build_app_manifests(
            record,
            namespace=self.namespace,
            replicas=replicas,
            port=self.settings.app_container_port,
            connection_string=connection_string,
            image_pull_policy=self.settings.k8s_image_pull_policy,
            ingress_class=self.settings.k8s_ingress_class,
            tls_secret=self.settings.k8s_tls_secret or None,
        )

        for kind in RESOURCE_KINDS:
            await self._create_or_replace(kind, manifests[kind])

        return record

    async def set_replicas(self, record: AppRecord, replicas: int, status: str) -> AppRecord:
        """
        Scale the app's Deployment, stamping status and updated_at annotations.

        Returns:
            The record re-read from the cluster after the write
        """
        deployment_name = get_resource_names(record.name, record.app_id)["deployment"]

        current = await self._read_object("deployment", deployment_name)
        if current is None:
            raise NotFoundError()

        current.spec.replicas = replicas
        annotations = dict(current.metadata.annotations or {})
        annotations[codec.UPDATED_AT_ANNOTATION] = utc_now_iso()
        annotations[codec.STATUS_ANNOTATION] = status
        current.metadata.annotations = annotations

        await self._replace_object("deployment", deployment_name, current)
        logger.info(f"[K8S] Deployment {deployment_name} scaled to {replicas} ({status})")

        fresh = await self._read_object("deployment", deployment_name)
        if fresh is None:
            raise NotFoundError()

        updated = self.record_from_deployment(fresh)
        if updated is None:
            raise ConsistencyError(
                f"Deployment {deployment_name} no longer decodes as an app",
                details={"deployment": deployment_name}
            )
        return updated

    async def delete_resources(self, record: AppRecord) -> None:
        """Delete the Ingress, Service and Deployment concurrently. Absent objects are fine."""
        names = get_resource_names(record.name, record.app_id)
        kinds = ("ingress", "service", "deployment")

        results = await asyncio.gather(
            *(self._delete_object(kind, names[kind]) for kind in kinds)
        )

        for kind, deleted in zip(kinds, results):
            if deleted:
                logger.info(f"[K8S] Deleted {kind}: {names[kind]}")
            else:
                logger.debug(f"[K8S] {kind} {names[kind]} already absent")
