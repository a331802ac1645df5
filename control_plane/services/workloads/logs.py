"""
Log reader for hosted apps.

Logs are never stored by the control plane. Each request picks a pod, pulls
the most recent window of its log (LOG_TAIL_LINES lines, with timestamps) and
pages through that window.

Known limitations:
- Cursors are offsets into the tail window fetched on that call, not
  positions in the full log. While new lines keep arriving, old ones slide
  out of the window and pages can skip or repeat lines.
- The pod log API merges stdout and stderr, so every entry reports "stdout".
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional

from ...errors import AmbiguousContainerError
from ...schemas import AppRecord, LogEntry, LogsPage, parse_timestamp, utc_now_iso
from . import codec
from .base import BaseWorkloadStore

logger = logging.getLogger(__name__)

DEFAULT_TAIL_LINES = 5000
DEFAULT_PAGE_LIMIT = 200
MIN_PAGE_LIMIT = 1
MAX_PAGE_LIMIT = 1000

# 2024-01-15T10:30:00.123456789Z
_TIMESTAMP_PATTERN = re.compile(
    r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})$'
)


def is_timestamp(token: str) -> bool:
    """Check whether a token is an RFC 3339 timestamp as emitted by the kubelet."""
    match = _TIMESTAMP_PATTERN.match(token)
    if not match:
        return False

    seconds, fraction, offset = match.groups()
    # datetime only keeps microseconds; the kubelet emits nanoseconds
    fraction = (fraction or "")[:7]
    try:
        parse_timestamp(f"{seconds}{fraction}{offset}")
    except ValueError:
        return False
    return True


def parse_log_line(line: str, fallback_timestamp: str) -> LogEntry:
    """
    Split "<timestamp> <message>" into a LogEntry.

    Lines without a leading timestamp keep their full text as the message
    and get the fallback timestamp.
    """
    token, sep, rest = line.partition(" ")
    if sep and is_timestamp(token):
        return LogEntry(timestamp=token, stream="stdout", message=rest)
    return LogEntry(timestamp=fallback_timestamp, stream="stdout", message=line)


def parse_log_text(raw: str) -> List[LogEntry]:
    """Parse raw pod log text into entries, dropping blank lines."""
    now = utc_now_iso()
    entries = []
    for line in (raw or "").splitlines():
        line = line.strip()
        if line:
            entries.append(parse_log_line(line, now))
    return entries


def decode_cursor(cursor: Optional[str]) -> int:
    """Cursor -> line offset. Anything that is not a non-negative integer is 0."""
    if not cursor:
        return 0
    try:
        offset = int(cursor)
    except (TypeError, ValueError):
        return 0
    return offset if offset > 0 else 0


def paginate(entries: List[LogEntry], cursor: Optional[str], limit: int) -> LogsPage:
    offset = decode_cursor(cursor)
    page = entries[offset:offset + limit]
    next_offset = offset + len(page)

    return LogsPage(
        data=page,
        next_cursor=str(next_offset) if next_offset < len(entries) else None
    )


def _start_time_key(pod: Any) -> datetime:
    start_time = pod.status.start_time if pod.status is not None else None
    if start_time is None:
        return datetime.min
    if start_time.tzinfo is not None:
        start_time = start_time.astimezone(timezone.utc).replace(tzinfo=None)
    return start_time


def select_pod(pods: List[Any]) -> Any:
    """First Running pod, else the most recently started one."""
    for pod in pods:
        if pod.status is not None and pod.status.phase == "Running":
            return pod

    return max(pods, key=_start_time_key)


def primary_container_name(pod: Any) -> Optional[str]:
    if pod.spec is not None and pod.spec.containers:
        return pod.spec.containers[0].name
    return None


class LogReader:
    """Reads paginated logs for an app from its pods."""

    def __init__(self, store: BaseWorkloadStore, tail_lines: int = DEFAULT_TAIL_LINES):
        self.store = store
        self.tail_lines = tail_lines

    async def _fetch(self, pod: Any) -> str:
        pod_name = pod.metadata.name
        container = primary_container_name(pod)

        try:
            return await self.store.read_pod_log(pod_name, container, self.tail_lines)
        except AmbiguousContainerError as e:
            if container is None:
                raise
            logger.warning(f"[K8S] Container {container} rejected for pod {pod_name} ({e}), retrying without container")
            return await self.store.read_pod_log(pod_name, None, self.tail_lines)

    async def read_logs(
        self,
        record: AppRecord,
        cursor: Optional[str] = None,
        limit: int = DEFAULT_PAGE_LIMIT
    ) -> LogsPage:
        limit = min(max(limit, MIN_PAGE_LIMIT), MAX_PAGE_LIMIT)

        pods = await self.store.list_pods(codec.selector_labels(record.app_id))
        if not pods:
            logger.debug(f"No pods for app {record.app_id}")
            return LogsPage(data=[], next_cursor=None)

        pod = select_pod(pods)
        raw = await self._fetch(pod)
        entries = parse_log_text(raw)

        logger.debug(f"Read {len(entries)} log lines from pod {pod.metadata.name} for app {record.app_id}")
        return paginate(entries, cursor, limit)
