"""
In-memory workload store.

Keeps kubernetes client model objects in dictionaries and mimics the API
server behavior the control plane depends on:

- every write bumps a resourceVersion; replace with a stale version -> ConflictError
- create of an existing name -> ConflictError (AlreadyExists)
- Deployment generation increments on every replace; status is only changed
  through the simulate_* helpers (nothing reconciles it on its own)

Used for local development (WORKLOAD_BACKEND=memory) and tests.
"""

import asyncio
import copy
import logging
from datetime import datetime, timezone
from itertools import count
from typing import Any, Dict, List, Optional

from kubernetes import client

from ...config import Settings
from ...errors import AmbiguousContainerError, ConflictError, NotFoundError
from . import codec
from .base import BaseWorkloadStore, RESOURCE_KINDS

logger = logging.getLogger(__name__)


def _labels_match(obj_labels: Optional[Dict[str, str]], selector: Dict[str, str]) -> bool:
    obj_labels = obj_labels or {}
    return all(obj_labels.get(key) == value for key, value in selector.items())


class InMemoryWorkloadStore(BaseWorkloadStore):

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__(settings)
        self._objects: Dict[str, Dict[str, Any]] = {kind: {} for kind in RESOURCE_KINDS}
        self._pods: Dict[str, client.V1Pod] = {}
        self._pod_logs: Dict[str, List[str]] = {}
        self._versions = count(1)
        # (verb, kind, name) for every primitive call, in order
        self.calls: List[tuple] = []

    # =========================================================================
    # TRANSPORT PRIMITIVES
    # =========================================================================

    async def _list_deployments(self, labels: Dict[str, str]) -> List[Any]:
        self.calls.append(("list", "deployment", None))
        await asyncio.sleep(0)
        return [
            copy.deepcopy(obj)
            for obj in self._objects["deployment"].values()
            if _labels_match(obj.metadata.labels, labels)
        ]

    async def _read_object(self, kind: str, name: str) -> Optional[Any]:
        self.calls.append(("read", kind, name))
        obj = self._objects[kind].get(name)
        snapshot = copy.deepcopy(obj) if obj is not None else None
        # Yield like a network round trip so concurrent writers interleave
        await asyncio.sleep(0)
        return snapshot

    async def _create_object(self, kind: str, body: Any) -> Any:
        self.calls.append(("create", kind, body.metadata.name))
        name = body.metadata.name
        if name in self._objects[kind]:
            raise ConflictError(
                f"{kind} {name} was created concurrently",
                details={"kind": kind, "name": name}
            )

        stored = copy.deepcopy(body)
        stored.metadata.resource_version = str(next(self._versions))
        stored.metadata.creation_timestamp = datetime.now(timezone.utc)
        if kind == "deployment":
            stored.metadata.generation = 1
            stored.status = client.V1DeploymentStatus(observed_generation=0, replicas=0)
        self._objects[kind][name] = stored
        return copy.deepcopy(stored)

    async def _replace_object(self, kind: str, name: str, body: Any) -> Any:
        self.calls.append(("replace", kind, name))
        current = self._objects[kind].get(name)
        if current is None:
            raise NotFoundError(f"{kind} {name} disappeared during update")

        if body.metadata.resource_version != current.metadata.resource_version:
            raise ConflictError(
                f"{kind} {name} was modified concurrently",
                details={
                    "kind": kind,
                    "name": name,
                    "resource_version": body.metadata.resource_version,
                }
            )

        stored = copy.deepcopy(body)
        stored.metadata.resource_version = str(next(self._versions))
        stored.metadata.creation_timestamp = current.metadata.creation_timestamp
        if kind == "deployment":
            # Status is a subresource: replace never changes it
            stored.metadata.generation = (current.metadata.generation or 0) + 1
            stored.status = copy.deepcopy(current.status)
        self._objects[kind][name] = stored
        return copy.deepcopy(stored)

    async def _delete_object(self, kind: str, name: str) -> bool:
        self.calls.append(("delete", kind, name))
        await asyncio.sleep(0)
        return self._objects[kind].pop(name, None) is not None

    async def list_pods(self, labels: Dict[str, str]) -> List[Any]:
        self.calls.append(("list", "pod", None))
        return [
            copy.deepcopy(pod)
            for pod in self._pods.values()
            if _labels_match(pod.metadata.labels, labels)
        ]

    async def read_pod_log(self, pod_name: str, container: Optional[str], tail_lines: int) -> str:
        self.calls.append(("log", "pod", pod_name))
        pod = self._pods.get(pod_name)
        if pod is None:
            raise NotFoundError(f"pod {pod_name} not found")

        if container is not None:
            container_names = [c.name for c in pod.spec.containers]
            if container not in container_names:
                raise AmbiguousContainerError(
                    f"container {container} is not valid for pod {pod_name}"
                )

        lines = self._pod_logs.get(pod_name, [])
        return "\n".join(lines[-tail_lines:])

    # =========================================================================
    # SIMULATION HELPERS
    # =========================================================================

    def get_object(self, kind: str, name: str) -> Optional[Any]:
        return self._objects[kind].get(name)

    def deployment_for(self, app_id: str) -> Optional[Any]:
        for deployment in self._objects["deployment"].values():
            annotations = deployment.metadata.annotations or {}
            if annotations.get(codec.ANNOTATION_KEYS["app_id"]) == app_id:
                return deployment
        return None

    def put_deployment(self, deployment: Any) -> None:
        """Store a Deployment as-is (bypasses create semantics)."""
        stored = copy.deepcopy(deployment)
        stored.metadata.resource_version = str(next(self._versions))
        self._objects["deployment"][stored.metadata.name] = stored

    def simulate_rollout(self, app_id: str) -> None:
        """Mark an app's Deployment as fully rolled out at its desired replica count."""
        deployment = self.deployment_for(app_id)
        if deployment is None:
            raise KeyError(app_id)
        desired = deployment.spec.replicas or 0
        deployment.status = client.V1DeploymentStatus(
            replicas=desired,
            ready_replicas=desired,
            available_replicas=desired,
            observed_generation=deployment.metadata.generation,
        )

    def simulate_progress_deadline_exceeded(self, app_id: str) -> None:
        deployment = self.deployment_for(app_id)
        if deployment is None:
            raise KeyError(app_id)
        status = deployment.status or client.V1DeploymentStatus()
        status.replicas = status.replicas or 1
        status.conditions = [
            client.V1DeploymentCondition(
                type="Progressing",
                status="False",
                reason="ProgressDeadlineExceeded"
            )
        ]
        deployment.status = status

    def add_pod(
        self,
        record_app_id: str,
        pod_name: str,
        lines: Optional[List[str]] = None,
        phase: str = "Running",
        start_time: Optional[datetime] = None,
        containers: Optional[List[str]] = None
    ) -> client.V1Pod:
        """Register a pod for an app, with its raw (timestamped) log lines."""
        labels = {**codec.selector_labels(record_app_id), codec.MANAGED_BY_LABEL: codec.MANAGED_BY_VALUE}
        pod = client.V1Pod(
            metadata=client.V1ObjectMeta(name=pod_name, namespace=self.namespace, labels=labels),
            spec=client.V1PodSpec(
                containers=[client.V1Container(name=name) for name in (containers or ["app"])]
            ),
            status=client.V1PodStatus(phase=phase, start_time=start_time),
        )
        self._pods[pod_name] = pod
        self._pod_logs[pod_name] = list(lines or [])
        return pod
