"""
Apps API Router.

Thin HTTP mapping onto AppService: payload validation happens in the request
models, everything else is delegated.
"""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import SessionContext, require_session
from ..schemas import (
    AppDetail,
    ListAppsResponse,
    LogsPage,
    PreparePushRequest,
    PreparePushResponse,
    StatusResponse,
    UpsertAppRequest,
    UpsertAppResponse,
)
from ..services.apps_service import AppService
from ..services.workloads.factory import get_workload_store
from ..services.workloads.logs import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, MIN_PAGE_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/apps", tags=["apps"])


@lru_cache()
def get_app_service() -> AppService:
    return AppService(store=get_workload_store())


def clamp_log_limit(limit: Optional[str]) -> int:
    """Non-numeric -> default; numeric values are truncated and clamped to [1, 1000]."""
    try:
        requested = int(float(limit))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_PAGE_LIMIT
    return min(max(requested, MIN_PAGE_LIMIT), MAX_PAGE_LIMIT)


@router.post("/prepare", response_model=PreparePushResponse)
async def prepare_push(
    request: PreparePushRequest,
    session: SessionContext = Depends(require_session),
    service: AppService = Depends(get_app_service)
):
    return service.prepare_push(session.owner, request.name, request.git_commit)


@router.post("", response_model=UpsertAppResponse)
async def upsert_app(
    request: UpsertAppRequest,
    session: SessionContext = Depends(require_session),
    service: AppService = Depends(get_app_service)
):
    return await service.upsert_app(session.owner, request.name, request.description, request.image)


@router.get("", response_model=ListAppsResponse)
async def list_apps(
    all: Optional[str] = Query(None),
    session: SessionContext = Depends(require_session),
    service: AppService = Depends(get_app_service)
):
    return await service.list_apps(session.owner, include_all=(all == "true"))


@router.get("/{app_id}/logs", response_model=LogsPage)
async def get_logs(
    app_id: str,
    cursor: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    session: SessionContext = Depends(require_session),
    service: AppService = Depends(get_app_service)
):
    return await service.get_logs(session.owner, app_id, cursor, clamp_log_limit(limit))


@router.get("/{app_id}", response_model=AppDetail)
async def get_app(
    app_id: str,
    session: SessionContext = Depends(require_session),
    service: AppService = Depends(get_app_service)
):
    return await service.get_app(session.owner, app_id)


@router.post("/{app_id}/stop", response_model=StatusResponse)
async def stop_app(
    app_id: str,
    session: SessionContext = Depends(require_session),
    service: AppService = Depends(get_app_service)
):
    return await service.stop_app(session.owner, app_id)


@router.post("/{app_id}/start", response_model=StatusResponse)
async def start_app(
    app_id: str,
    session: SessionContext = Depends(require_session),
    service: AppService = Depends(get_app_service)
):
    return await service.start_app(session.owner, app_id)


@router.delete("/{app_id}", response_model=StatusResponse)
async def delete_app(
    app_id: str,
    session: SessionContext = Depends(require_session),
    service: AppService = Depends(get_app_service)
):
    return await service.delete_app(session.owner, app_id)
