"""
Per-app Postgres schemas.

Every app gets one schema, "app_<app_id>", in the shared database. The app
receives a connection string whose search_path points at its schema.
Everything is a no-op when DATABASE_URL is not configured.
"""

import logging
import re
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..config import get_settings

logger = logging.getLogger(__name__)


def schema_name(app_id: str) -> str:
    return "app_" + re.sub(r'[^a-z0-9_]', '_', app_id.lower())


class SchemaProvisioner:

    def __init__(self, database_url: Optional[str] = None):
        if database_url is None:
            database_url = get_settings().database_url
        self.database_url = database_url
        self._engine: Optional[AsyncEngine] = None

    @property
    def enabled(self) -> bool:
        return bool(self.database_url)

    def _get_engine(self) -> AsyncEngine:
        if self._engine is None:
            url = make_url(self.database_url)
            if url.drivername in ("postgres", "postgresql"):
                url = url.set(drivername="postgresql+asyncpg")
            self._engine = create_async_engine(
                url,
                echo=False,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
        return self._engine

    async def ensure_schema(self, app_id: str) -> None:
        if not self.enabled:
            return

        schema = schema_name(app_id)
        async with self._get_engine().begin() as conn:
            await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema}"'))
        logger.info(f"Ensured schema {schema}")

    async def drop_schema(self, app_id: str) -> None:
        if not self.enabled:
            return

        schema = schema_name(app_id)
        async with self._get_engine().begin() as conn:
            await conn.execute(text(f'DROP SCHEMA IF EXISTS "{schema}" CASCADE'))
        logger.info(f"Dropped schema {schema}")

    def connection_string(self, app_id: str) -> str:
        """
        Database URL handed to the app, scoped to its schema.

        Example:
            postgresql://user:pw@db:5432/apps?options=-csearch_path%3Dapp_app_1a2b3c4d5e6f
        """
        if not self.enabled:
            return ""

        url = make_url(self.database_url)
        url = url.set(drivername="postgresql")
        url = url.update_query_dict({"options": f"-csearch_path={schema_name(app_id)}"})
        return url.render_as_string(hide_password=False)

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
