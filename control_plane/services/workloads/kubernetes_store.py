"""Workload store backed by the Kubernetes API."""

from typing import Any, Dict, List, Optional

from ...config import Settings
from .base import BaseWorkloadStore
from .kubernetes_client import KubernetesClient, get_k8s_client


class KubernetesWorkloadStore(BaseWorkloadStore):
    """Production store: every primitive is one Kubernetes API round trip."""

    def __init__(
        self,
        k8s_client: Optional[KubernetesClient] = None,
        settings: Optional[Settings] = None
    ):
        super().__init__(settings)
        self.k8s = k8s_client or get_k8s_client()
        self.namespace = self.k8s.namespace

    async def _list_deployments(self, labels: Dict[str, str]) -> List[Any]:
        return await self.k8s.list_deployments(labels)

    async def _read_object(self, kind: str, name: str) -> Optional[Any]:
        return await self.k8s.read(kind, name)

    async def _create_object(self, kind: str, body: Any) -> Any:
        return await self.k8s.create(kind, body)

    async def _replace_object(self, kind: str, name: str, body: Any) -> Any:
        return await self.k8s.replace(kind, name, body)

    async def _delete_object(self, kind: str, name: str) -> bool:
        return await self.k8s.delete(kind, name)

    async def list_pods(self, labels: Dict[str, str]) -> List[Any]:
        return await self.k8s.list_pods(labels)

    async def read_pod_log(self, pod_name: str, container: Optional[str], tail_lines: int) -> str:
        return await self.k8s.read_pod_log(pod_name, container, tail_lines)
