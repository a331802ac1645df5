"""
Kubernetes Client for hosted apps

Thin wrapper over the official client for the objects the control plane
manages (Deployments, Services, Ingresses) and the pods behind them.

Credentials are resolved once at construction: in-cluster service account
first, then the kubeconfig at K8S_KUBECONFIG_PATH. If neither works the
client stays constructed but every call raises BootstrapError naming the
credential source that was attempted.
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException
import os
import logging
import asyncio
from typing import Any, Callable, Dict, List, Optional

from ...config import Settings, get_settings
from ...errors import AmbiguousContainerError, BootstrapError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)

IN_CLUSTER_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"


def has_in_cluster_credentials() -> bool:
    return bool(os.getenv("KUBERNETES_SERVICE_HOST")) and os.path.exists(IN_CLUSTER_TOKEN_PATH)


def to_label_selector(labels: Dict[str, str]) -> str:
    """{"a": "1", "b": "2"} -> "a=1,b=2" """
    return ",".join(f"{key}={value}" for key, value in labels.items())


class KubernetesClient:
    """
    Manages Kubernetes API access for the control plane namespace.

    All calls are blocking in the official client, so they run via
    asyncio.to_thread.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.namespace = self.settings.k8s_namespace

        self.auth_source: Optional[str] = None
        self.init_error: Optional[str] = None

        try:
            self.auth_source = self._load_config()
        except Exception as e:
            # Malformed kubeconfigs surface as ConfigException, YAML or type errors
            self.init_error = str(e) or type(e).__name__
            logger.warning(
                f"[K8S] Kubernetes client bootstrap failed (source={self.attempted_source}): {e}"
            )
            return

        self.apps_v1 = client.AppsV1Api()
        self.core_v1 = client.CoreV1Api()
        self.networking_v1 = client.NetworkingV1Api()

        self._operations: Dict[str, Dict[str, Callable]] = {
            "deployment": {
                "read": self.apps_v1.read_namespaced_deployment,
                "create": self.apps_v1.create_namespaced_deployment,
                "replace": self.apps_v1.replace_namespaced_deployment,
                "delete": self.apps_v1.delete_namespaced_deployment,
            },
            "service": {
                "read": self.core_v1.read_namespaced_service,
                "create": self.core_v1.create_namespaced_service,
                "replace": self.core_v1.replace_namespaced_service,
                "delete": self.core_v1.delete_namespaced_service,
            },
            "ingress": {
                "read": self.networking_v1.read_namespaced_ingress,
                "create": self.networking_v1.create_namespaced_ingress,
                "replace": self.networking_v1.replace_namespaced_ingress,
                "delete": self.networking_v1.delete_namespaced_ingress,
            },
        }

        logger.info(f"Kubernetes client initialized (auth={self.auth_source}, namespace={self.namespace})")

    @property
    def attempted_source(self) -> str:
        return "incluster" if has_in_cluster_credentials() else "kubeconfig"

    def _load_config(self) -> str:
        if has_in_cluster_credentials():
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
            return "incluster"

        path = self.settings.k8s_kubeconfig_path
        if not path:
            raise BootstrapError(
                "K8S_KUBECONFIG_PATH is required when running outside Kubernetes "
                "(in-cluster credentials not detected)"
            )
        if not os.path.exists(path):
            raise BootstrapError(f"Kubeconfig file does not exist: {path}")

        config.load_kube_config(config_file=path)
        logger.info(f"Loaded kubeconfig from {path}")
        return "kubeconfig"

    @property
    def is_ready(self) -> bool:
        return self.init_error is None

    def ensure_ready(self) -> None:
        """Fail fast if bootstrap failed."""
        if self.init_error is not None:
            raise BootstrapError(
                f"Kubernetes client unavailable (credential source: {self.attempted_source}): {self.init_error}",
                details={"credential_source": self.attempted_source}
            )

    def _operation(self, kind: str, verb: str) -> Callable:
        self.ensure_ready()
        try:
            return self._operations[kind][verb]
        except KeyError:
            raise ValueError(f"Unsupported resource kind: {kind}")

    # =========================================================================
    # MANAGED OBJECTS
    # =========================================================================

    async def list_deployments(self, labels: Dict[str, str]) -> List[client.V1Deployment]:
        self.ensure_ready()
        result = await asyncio.to_thread(
            self.apps_v1.list_namespaced_deployment,
            namespace=self.namespace,
            label_selector=to_label_selector(labels)
        )
        return list(result.items or [])

    async def read(self, kind: str, name: str) -> Optional[Any]:
        """Read an object; None if it does not exist."""
        read = self._operation(kind, "read")
        try:
            return await asyncio.to_thread(read, name=name, namespace=self.namespace)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"[K8S] {kind} {name} not found")
                return None
            raise

    async def create(self, kind: str, body: Any) -> Any:
        create = self._operation(kind, "create")
        try:
            return await asyncio.to_thread(create, namespace=self.namespace, body=body)
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(
                    f"{kind} {body.metadata.name} was created concurrently",
                    details={"kind": kind, "name": body.metadata.name}
                ) from e
            raise

    async def replace(self, kind: str, name: str, body: Any) -> Any:
        """Replace an object; body must carry the resourceVersion that was read."""
        replace = self._operation(kind, "replace")
        try:
            return await asyncio.to_thread(replace, name=name, namespace=self.namespace, body=body)
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(
                    f"{kind} {name} was modified concurrently",
                    details={
                        "kind": kind,
                        "name": name,
                        "resource_version": body.metadata.resource_version,
                    }
                ) from e
            if e.status == 404:
                raise NotFoundError(f"{kind} {name} disappeared during update") from e
            raise

    async def delete(self, kind: str, name: str) -> bool:
        """Delete an object. Returns False if it was already gone."""
        delete = self._operation(kind, "delete")
        try:
            await asyncio.to_thread(delete, name=name, namespace=self.namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    # =========================================================================
    # POD OPERATIONS
    # =========================================================================

    async def list_pods(self, labels: Dict[str, str]) -> List[client.V1Pod]:
        self.ensure_ready()
        result = await asyncio.to_thread(
            self.core_v1.list_namespaced_pod,
            namespace=self.namespace,
            label_selector=to_label_selector(labels)
        )
        return list(result.items or [])

    async def read_pod_log(
        self,
        pod_name: str,
        container: Optional[str],
        tail_lines: int
    ) -> str:
        self.ensure_ready()
        kwargs = {
            "name": pod_name,
            "namespace": self.namespace,
            "tail_lines": tail_lines,
            "timestamps": True,
        }
        if container:
            kwargs["container"] = container

        try:
            return await asyncio.to_thread(self.core_v1.read_namespaced_pod_log, **kwargs) or ""
        except ApiException as e:
            if e.status == 400 and "container" in str(e.body or "").lower():
                raise AmbiguousContainerError(str(e.body)) from e
            raise


# Global instance - lazily initialized
_k8s_client_instance: Optional[KubernetesClient] = None


def get_k8s_client() -> KubernetesClient:
    """Get or create the global Kubernetes client instance."""
    global _k8s_client_instance
    if _k8s_client_instance is None:
        _k8s_client_instance = KubernetesClient()
    return _k8s_client_instance
