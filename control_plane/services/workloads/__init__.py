"""
Workloads Module - cluster objects as the system of record

- IdentityNaming (utils.resource_naming): stable object names per app
- codec: AppRecord <-> Deployment labels/annotations
- status: lifecycle status derived from observed Deployment state
- BaseWorkloadStore: find/list/upsert/scale/delete composed over backend primitives
- KubernetesWorkloadStore / InMemoryWorkloadStore: the two backends
- LogReader: paginated pod logs
"""

from .base import BaseWorkloadStore, RESOURCE_KINDS
from .status import ObservedState, DeploymentCondition, derive_status
from .logs import LogReader
from .factory import WorkloadStoreFactory, get_workload_store

__all__ = [
    "BaseWorkloadStore",
    "RESOURCE_KINDS",
    "ObservedState",
    "DeploymentCondition",
    "derive_status",
    "LogReader",
    "WorkloadStoreFactory",
    "get_workload_store",
]
