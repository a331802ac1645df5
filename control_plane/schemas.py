import re
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

AppStatus = Literal["pending", "deploying", "healthy", "failed", "stopped", "deleting"]

APP_STATUSES = ("pending", "deploying", "healthy", "failed", "stopped", "deleting")

APP_NAME_PATTERN = re.compile(r'^(?=.{1,63}$)[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$')
COMMIT_PATTERN = re.compile(r'^[a-f0-9]{7,40}$', re.IGNORECASE)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with millisecond precision: 2024-01-15T10:30:00.123Z"""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def parse_timestamp(value: str) -> datetime:
    """Inverse of format_timestamp; also accepts explicit offsets."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


# ============================================================================
# Domain record
# ============================================================================

class AppRecord(BaseModel):
    """
    One hosted app, as reconstructed from its Deployment's annotations.

    Never stored on its own: every read rebuilds it from cluster state, and
    ``status`` is re-derived from the observed Deployment each time.
    """
    app_id: str
    deployment_id: str
    owner: str
    name: str
    description: str
    image: str
    url: str
    status: AppStatus
    created_at: str
    updated_at: str
    ttl_expiry: str

    @field_validator('created_at', 'updated_at', 'ttl_expiry')
    @classmethod
    def validate_timestamp(cls, v):
        try:
            parsed = parse_timestamp(v)
        except ValueError:
            raise ValueError(f'{v!r} is not an ISO-8601 timestamp')
        if parsed.tzinfo is None:
            raise ValueError(f'{v!r} has no UTC offset')
        return v


class LogEntry(BaseModel):
    timestamp: str
    stream: Literal["stdout", "stderr"] = "stdout"
    message: str


class LogsPage(BaseModel):
    data: List[LogEntry] = Field(default_factory=list)
    next_cursor: Optional[str] = None


# ============================================================================
# Request Models
# ============================================================================

class PreparePushRequest(BaseModel):
    name: str
    git_commit: str

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not APP_NAME_PATTERN.match(v):
            raise ValueError(
                'name must be DNS-safe (lowercase letters, digits, dash), max 63 chars, and alphanumeric at ends'
            )
        return v

    @field_validator('git_commit')
    @classmethod
    def validate_git_commit(cls, v):
        if not COMMIT_PATTERN.match(v):
            raise ValueError('git_commit must be a 7-40 character hexadecimal hash')
        return v


class UpsertAppRequest(BaseModel):
    name: str
    description: str = Field(..., max_length=300)
    image: str = Field(..., min_length=1)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not APP_NAME_PATTERN.match(v):
            raise ValueError(
                'name must be DNS-safe (lowercase letters, digits, dash), max 63 chars, and alphanumeric at ends'
            )
        return v


# ============================================================================
# Response Models
# ============================================================================

class PreparePushResponse(BaseModel):
    repository: str
    push_token: str
    expires_at: str
    required_tag: str


class UpsertAppResponse(BaseModel):
    app_id: str
    deployment_id: str
    url: str
    status: AppStatus


class StatusResponse(BaseModel):
    app_id: str
    status: AppStatus


class AppSummary(BaseModel):
    app_id: str
    name: str
    status: AppStatus
    url: str

    @classmethod
    def from_record(cls, record: AppRecord) -> "AppSummary":
        return cls(app_id=record.app_id, name=record.name, status=record.status, url=record.url)


class AppDetail(AppRecord):
    """Full view of an app; same fields as the record."""

    @classmethod
    def from_record(cls, record: AppRecord) -> "AppDetail":
        return cls(**record.model_dump())


class ListAppsResponse(BaseModel):
    data: List[AppSummary] = Field(default_factory=list)
