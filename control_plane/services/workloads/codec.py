"""
Record codec: AppRecord <-> Deployment labels and annotations.

The annotation/label layout below is the storage format of the control plane.
Labels are short, normalized and used for selection; annotations hold the
full, unnormalized record.
"""

import logging
import re
from typing import Dict, Optional, Tuple

from ...schemas import AppRecord

logger = logging.getLogger(__name__)

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "saki-control-plane"

OWNER_LABEL = "saki.dev/owner"
NAME_LABEL = "saki.dev/name"
APP_ID_LABEL = "saki.dev/app-id"

LABEL_VALUE_MAX_LENGTH = 63
LABEL_PLACEHOLDER = "none"

ANNOTATION_PREFIX = "saki.dev/"

# record field -> annotation key
ANNOTATION_KEYS: Dict[str, str] = {
    "app_id": f"{ANNOTATION_PREFIX}app-id",
    "deployment_id": f"{ANNOTATION_PREFIX}deployment-id",
    "owner": f"{ANNOTATION_PREFIX}owner",
    "name": f"{ANNOTATION_PREFIX}name",
    "description": f"{ANNOTATION_PREFIX}description",
    "url": f"{ANNOTATION_PREFIX}url",
    "image": f"{ANNOTATION_PREFIX}image",
    "created_at": f"{ANNOTATION_PREFIX}created-at",
    "updated_at": f"{ANNOTATION_PREFIX}updated-at",
    "ttl_expiry": f"{ANNOTATION_PREFIX}ttl-expiry",
    "status": f"{ANNOTATION_PREFIX}status",
}

UPDATED_AT_ANNOTATION = ANNOTATION_KEYS["updated_at"]
STATUS_ANNOTATION = ANNOTATION_KEYS["status"]


def normalize_label_value(value: str) -> str:
    """
    Normalize a value for use as a Kubernetes label value.

    Label values: max 63 chars, [A-Za-z0-9._-], must start and end with an
    alphanumeric. Empty values are replaced by a placeholder because an
    empty selector value would match unlabeled objects.
    """
    normalized = (value or "").lower()
    normalized = re.sub(r'[^a-z0-9._-]', '-', normalized)
    normalized = normalized[:LABEL_VALUE_MAX_LENGTH]
    normalized = re.sub(r'^[^a-z0-9]+', '', normalized)
    normalized = re.sub(r'[^a-z0-9]+$', '', normalized)
    return normalized or LABEL_PLACEHOLDER


def selector_labels(app_id: str) -> Dict[str, str]:
    """Labels that select an app's pods (shared by Deployment selector and Service)."""
    return {APP_ID_LABEL: normalize_label_value(app_id)}


def encode_labels(record: AppRecord) -> Dict[str, str]:
    return {
        MANAGED_BY_LABEL: MANAGED_BY_VALUE,
        OWNER_LABEL: normalize_label_value(record.owner),
        NAME_LABEL: normalize_label_value(record.name),
        APP_ID_LABEL: normalize_label_value(record.app_id),
    }


def encode_annotations(record: AppRecord) -> Dict[str, str]:
    values = record.model_dump()
    return {key: str(values[field]) for field, key in ANNOTATION_KEYS.items()}


def encode(record: AppRecord) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Return (labels, annotations) for a record."""
    return encode_labels(record), encode_annotations(record)


def decode(
    annotations: Optional[Dict[str, str]],
    fallback_image: Optional[str] = None
) -> Optional[AppRecord]:
    """
    Rebuild a record from annotations.

    Args:
        annotations: Deployment annotations
        fallback_image: Image of the running container, used when the image
            annotation is missing (objects written before it existed)

    Returns:
        AppRecord, or None if a required annotation is missing or invalid
    """
    annotations = annotations or {}
    values = {}

    for field, key in ANNOTATION_KEYS.items():
        value = annotations.get(key)
        if value is None and field == "image":
            value = fallback_image
        if value is None:
            logger.debug(f"Annotation {key} missing, object is not a valid app")
            return None
        values[field] = value

    try:
        return AppRecord(**values)
    except ValueError as e:
        logger.debug(f"Annotations do not form a valid app record: {e}")
        return None
