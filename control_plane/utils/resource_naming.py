"""
Resource naming utilities for hosted apps.

Centralized functions for generating the Kubernetes object names of an app's
Deployment, Service and Ingress from its (name, app_id) pair.

Kubernetes naming constraints (DNS-1035 label, the strictest of the three kinds):
- max 63 chars
- lowercase alphanumeric + '-'
- must start with a letter and end with an alphanumeric

Names are derived, never stored, so the same inputs must always produce the
same outputs.
"""

import re
from typing import Dict

RESOURCE_PREFIX = "saki"
NAME_FRAGMENT_MAX_LENGTH = 32
ID_FRAGMENT_LENGTH = 10

FALLBACK_NAME_FRAGMENT = "app"
FALLBACK_ID_FRAGMENT = "0" * ID_FRAGMENT_LENGTH

DEPLOYMENT_SUFFIX = "-deploy"
SERVICE_SUFFIX = "-svc"
INGRESS_SUFFIX = "-route"

MAX_RESOURCE_NAME_LENGTH = 63


def slugify_name(name: str, max_length: int = NAME_FRAGMENT_MAX_LENGTH) -> str:
    """
    Convert an app name to a hyphenated, DNS-safe fragment.

    Examples:
        "My Awesome App!" -> "my-awesome-app"
        "__" -> "app"
        "" -> "app"
    """
    slug = (name or "").lower()

    # Anything outside [a-z0-9-] becomes a hyphen
    slug = re.sub(r'[^a-z0-9-]', '-', slug)

    # Collapse runs of hyphens
    slug = re.sub(r'-+', '-', slug)

    slug = slug.strip('-')

    slug = slug[:max_length]

    # Ensure no trailing hyphen after truncation
    slug = slug.rstrip('-')

    if not slug:
        slug = FALLBACK_NAME_FRAGMENT

    return slug


def app_id_fragment(app_id: str) -> str:
    """
    Short lowercase-alphanumeric fragment of an app id.

    Uses the tail of the id, which is where the random part of
    "app_1a2b3c4d5e6f" lives.

    Example:
        >>> app_id_fragment("app_1a2b3c4d5e6f")
        "2b3c4d5e6f"
    """
    cleaned = re.sub(r'[^a-z0-9]', '', (app_id or "").lower())
    fragment = cleaned[-ID_FRAGMENT_LENGTH:]
    return fragment or FALLBACK_ID_FRAGMENT


def get_base_name(name: str, app_id: str) -> str:
    """
    Base identifier shared by all of an app's objects.

    Example:
        >>> get_base_name("My App", "app_1a2b3c4d5e6f")
        "saki-my-app-2b3c4d5e6f"
    """
    return f"{RESOURCE_PREFIX}-{slugify_name(name)}-{app_id_fragment(app_id)}"


def get_resource_names(name: str, app_id: str) -> Dict[str, str]:
    """
    Generate the Kubernetes object names for an app.

    Returns:
        Dictionary with deployment, service and ingress names
    """
    base_name = get_base_name(name, app_id)
    return {
        "deployment": f"{base_name}{DEPLOYMENT_SUFFIX}",
        "service": f"{base_name}{SERVICE_SUFFIX}",
        "ingress": f"{base_name}{INGRESS_SUFFIX}",
    }


def is_valid_resource_name(value: str) -> bool:
    """Check a name against the DNS-1035 label rules."""
    if not value or len(value) > MAX_RESOURCE_NAME_LENGTH:
        return False
    return bool(re.match(r'^[a-z]([a-z0-9-]*[a-z0-9])?$', value))
