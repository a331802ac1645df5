"""
Workload Store Factory

Creates and caches the workload store for the configured backend.
"""

import logging
from typing import Dict, Optional

from .base import BaseWorkloadStore

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("kubernetes", "memory")

# Cached store instances (singleton per backend)
_stores: Dict[str, BaseWorkloadStore] = {}


class WorkloadStoreFactory:

    @staticmethod
    def get_backend() -> str:
        from ...config import get_settings
        return get_settings().workload_backend.lower()

    @staticmethod
    def create_store(backend: Optional[str] = None) -> BaseWorkloadStore:
        """
        Create or get the cached store for a backend.

        Raises:
            ValueError: If the backend is not supported
        """
        if backend is None:
            backend = WorkloadStoreFactory.get_backend()
        backend = backend.lower()

        if backend in _stores:
            return _stores[backend]

        if backend == "kubernetes":
            from .kubernetes_store import KubernetesWorkloadStore
            store = KubernetesWorkloadStore()
        elif backend == "memory":
            from .memory_store import InMemoryWorkloadStore
            store = InMemoryWorkloadStore()
        else:
            raise ValueError(
                f"Unsupported workload backend: {backend}. Available: {', '.join(SUPPORTED_BACKENDS)}"
            )

        _stores[backend] = store
        logger.info(f"Created {backend} workload store")
        return store

    @staticmethod
    def clear_cache() -> None:
        _stores.clear()


def get_workload_store() -> BaseWorkloadStore:
    return WorkloadStoreFactory.create_store()
