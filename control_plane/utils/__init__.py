"""Utility modules for the control plane."""

from .resource_naming import get_resource_names, slugify_name

__all__ = [
    'get_resource_names',
    'slugify_name',
]
