"""
Kubernetes manifests for hosted apps.

Each app is three objects sharing one base name (see utils.resource_naming):
- Deployment: the app container, carrying the record labels/annotations
- Service: ClusterIP in front of the Deployment's pods
- Ingress: maps the app hostname to the Service
"""

from kubernetes import client
from typing import Dict, Optional
from urllib.parse import urlparse

from ...schemas import AppRecord
from ...utils.resource_naming import get_resource_names
from . import codec

APP_CONTAINER_NAME = "app"


def get_app_hostname(record: AppRecord) -> str:
    """Host part of the app URL (https://{name}.{domain} -> {name}.{domain})."""
    return urlparse(record.url).hostname or record.url


def create_deployment_manifest(
    record: AppRecord,
    namespace: str,
    replicas: int,
    port: int,
    connection_string: str = "",
    image_pull_policy: str = "IfNotPresent"
) -> client.V1Deployment:
    """
    Create the app Deployment manifest.

    Args:
        record: App record (labels and annotations are derived from it)
        namespace: Kubernetes namespace
        replicas: Desired replica count (0 = stopped)
        port: Port the app listens on, exported as PORT
        connection_string: Per-app database URL, exported as DATABASE_URL when set
        image_pull_policy: Image pull policy

    Returns:
        V1Deployment manifest
    """
    names = get_resource_names(record.name, record.app_id)
    labels, annotations = codec.encode(record)
    pod_labels = {**codec.selector_labels(record.app_id), codec.MANAGED_BY_LABEL: codec.MANAGED_BY_VALUE}

    env = [client.V1EnvVar(name="PORT", value=str(port))]
    if connection_string:
        env.append(client.V1EnvVar(name="DATABASE_URL", value=connection_string))

    container = client.V1Container(
        name=APP_CONTAINER_NAME,
        image=record.image,
        image_pull_policy=image_pull_policy,
        ports=[
            client.V1ContainerPort(
                container_port=port,
                name="http"
            )
        ],
        env=env,
        resources=client.V1ResourceRequirements(
            requests={"memory": "128Mi", "cpu": "50m"},
            limits={"memory": "512Mi", "cpu": "500m"}
        ),
        readiness_probe=client.V1Probe(
            tcp_socket=client.V1TCPSocketAction(port=port),
            initial_delay_seconds=3,
            period_seconds=5,
            timeout_seconds=3,
            failure_threshold=3
        )
    )

    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(
            name=names["deployment"],
            namespace=namespace,
            labels=labels,
            annotations=annotations
        ),
        spec=client.V1DeploymentSpec(
            replicas=replicas,
            selector=client.V1LabelSelector(
                match_labels=codec.selector_labels(record.app_id)
            ),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=pod_labels),
                spec=client.V1PodSpec(containers=[container])
            )
        )
    )


def create_service_manifest(
    record: AppRecord,
    namespace: str,
    port: int
) -> client.V1Service:
    """
    Create Service manifest selecting the app's pods.

    Returns:
        V1Service manifest
    """
    names = get_resource_names(record.name, record.app_id)

    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(
            name=names["service"],
            namespace=namespace,
            labels=codec.encode_labels(record)
        ),
        spec=client.V1ServiceSpec(
            selector=codec.selector_labels(record.app_id),
            ports=[
                client.V1ServicePort(
                    name="http",
                    port=80,
                    target_port=port,
                    protocol="TCP"
                )
            ],
            type="ClusterIP"
        )
    )


def create_ingress_manifest(
    record: AppRecord,
    namespace: str,
    ingress_class: str = "nginx",
    tls_secret: Optional[str] = None
) -> client.V1Ingress:
    """
    Create Ingress manifest routing the app hostname to its Service.

    Returns:
        V1Ingress manifest
    """
    names = get_resource_names(record.name, record.app_id)
    host = get_app_hostname(record)

    ingress_spec = client.V1IngressSpec(
        ingress_class_name=ingress_class,
        rules=[
            client.V1IngressRule(
                host=host,
                http=client.V1HTTPIngressRuleValue(
                    paths=[
                        client.V1HTTPIngressPath(
                            path="/",
                            path_type="Prefix",
                            backend=client.V1IngressBackend(
                                service=client.V1IngressServiceBackend(
                                    name=names["service"],
                                    port=client.V1ServiceBackendPort(number=80)
                                )
                            )
                        )
                    ]
                )
            )
        ]
    )

    if tls_secret:
        ingress_spec.tls = [
            client.V1IngressTLS(
                hosts=[host],
                secret_name=tls_secret
            )
        ]

    return client.V1Ingress(
        api_version="networking.k8s.io/v1",
        kind="Ingress",
        metadata=client.V1ObjectMeta(
            name=names["ingress"],
            namespace=namespace,
            labels=codec.encode_labels(record)
        ),
        spec=ingress_spec
    )


def build_app_manifests(
    record: AppRecord,
    namespace: str,
    replicas: int,
    port: int,
    connection_string: str = "",
    image_pull_policy: str = "IfNotPresent",
    ingress_class: str = "nginx",
    tls_secret: Optional[str] = None
) -> Dict[str, object]:
    """All three objects keyed by kind, in write order."""
    return {
        "deployment": create_deployment_manifest(
            record, namespace, replicas, port, connection_string, image_pull_policy
        ),
        "service": create_service_manifest(record, namespace, port),
        "ingress": create_ingress_manifest(record, namespace, ingress_class, tls_secret),
    }
