from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Set


class Settings(BaseSettings):
    # HTTP listener
    control_plane_host: str = "0.0.0.0"
    control_plane_port: int = 8080

    # Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = "INFO"

    # Container registry host that push credentials and image namespaces are scoped to
    # Images must look like "{registry_host}/{owner}/{name}:{tag}"
    registry_host: str = "registry.internal"

    # Apps are exposed at https://{name}.{app_base_domain}
    app_base_domain: str = "saki.internal"

    # Every create/redeploy pushes ttl_expiry this far into the future
    default_app_ttl_hours: int = 168

    # Lifetime of the credential returned by prepare-push
    push_token_ttl_minutes: int = 10

    # Comma-separated session tokens allowed to list every owner's apps
    admin_tokens: str = ""

    @property
    def admin_token_set(self) -> Set[str]:
        """Parse admin_tokens into a set, ignoring blanks."""
        return {token.strip() for token in self.admin_tokens.split(",") if token.strip()}

    # Postgres used for per-app schemas
    # Empty disables schema provisioning and the DATABASE_URL env var on workloads
    database_url: str = ""

    # ==========================================================================
    # Workload backend
    # ==========================================================================
    # "kubernetes" (real cluster) or "memory" (in-process fake, for local dev and tests)
    workload_backend: str = "kubernetes"

    # ==========================================================================
    # Kubernetes Settings
    # ==========================================================================
    k8s_namespace: str = "saki-apps"
    # Used only when in-cluster credentials are not detected
    k8s_kubeconfig_path: str = ""
    k8s_ingress_class: str = "nginx"
    k8s_tls_secret: str = ""  # Empty string for local dev (no TLS)
    k8s_image_pull_policy: str = "IfNotPresent"

    # Port the app container listens on (exported to it as PORT)
    app_container_port: int = 8080

    # Size of the log tail window fetched per request
    log_tail_lines: int = 5000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        case_sensitive = False


@lru_cache()
def get_settings():
    return Settings()
