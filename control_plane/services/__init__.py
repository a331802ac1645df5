"""
Services module - business logic and external collaborators.
"""

from .apps_service import AppService
from .schema_provisioner import SchemaProvisioner

__all__ = [
    "AppService",
    "SchemaProvisioner",
]
