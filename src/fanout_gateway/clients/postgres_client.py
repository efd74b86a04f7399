"""
Postgres request log client for the fan-out gateway.

Records every completed sub-request as (url, method, responsecode) using a
SQLAlchemy 2.0 async engine + asyncpg.  The log is a side channel: the
batch response is computed before anything is written here, and callers
must treat every failure in this module as non-fatal.

Table written:
- requests (INSERT ... RETURNING id)
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from tenacity import retry, stop_after_attempt, wait_exponential

from ..errors import PersistenceError

if TYPE_CHECKING:
    from dispatcher.dispatcher import RequestLogEntry

logger = structlog.get_logger(__name__)

# VARCHAR(256) columns
_MAX_FIELD_LENGTH = 256

_CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS requests (
        id SERIAL PRIMARY KEY,
        url VARCHAR(256),
        method VARCHAR(256),
        responsecode INT
    )
"""


def _sanitize_url(url: str) -> str:
    """Remove URL query params that asyncpg does not understand.

    ``sslmode`` and ``channel_binding`` are libpq parameters; asyncpg rejects
    unknown connection params, so SSL is passed via ``connect_args`` instead.
    """
    _STRIP_PARAMS = {'channel_binding', 'sslmode'}
    parsed = urlparse(url)
    if not parsed.query:
        return url
    params = parse_qs(parsed.query)
    filtered = {k: v for k, v in params.items() if k not in _STRIP_PARAMS}
    new_query = urlencode(filtered, doseq=True)
    return urlunparse(parsed._replace(query=new_query))


def _ssl_mode(url: str) -> str | None:
    """Return the libpq sslmode from the URL, if any."""
    values = parse_qs(urlparse(url).query).get('sslmode')
    return values[0] if values else None


def _truncate(value: str) -> str:
    return value[:_MAX_FIELD_LENGTH]


class PostgresClient:
    """
    Async Postgres client for the sub-request log.

    Uses SQLAlchemy 2.0 async engine with asyncpg for raw SQL execution.
    """

    def __init__(self, database_url: str | None = None):
        """
        Initialize with a Postgres connection URL.

        Args:
            database_url: Postgres connection URL. 'postgres://' and
                          'postgresql://' URLs are converted to use asyncpg.
        """
        self._engine: AsyncEngine | None = None
        self._database_url = database_url

    async def connect(self, database_url: str | None = None) -> None:
        """
        Create the async engine. Idempotent, no-op if already connected.

        Args:
            database_url: Override the URL from __init__.
        """
        if self._engine is not None:
            return

        url = database_url or self._database_url
        if not url:
            raise ValueError('database_url is required')

        ssl_mode = _ssl_mode(url)
        url = _sanitize_url(url)

        # Normalise driver prefix for asyncpg
        if url.startswith('postgres://'):
            url = url.replace('postgres://', 'postgresql+asyncpg://', 1)
        elif url.startswith('postgresql://') and '+asyncpg' not in url:
            url = url.replace('postgresql://', 'postgresql+asyncpg://', 1)

        connect_args: dict[str, Any] = {}
        if ssl_mode and ssl_mode != 'disable':
            connect_args['ssl'] = ssl_mode

        self._engine = create_async_engine(
            url,
            pool_size=5,
            max_overflow=5,
            pool_pre_ping=True,
            pool_timeout=30,
            connect_args=connect_args,
        )
        logger.info('postgres_client.connected')

    async def close(self) -> None:
        """Dispose of the engine and connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('postgres_client.closed')

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError('PostgresClient not connected, call connect() first')
        return self._engine

    async def verify_connectivity(self) -> bool:
        """Return True if we can execute a simple query."""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text('SELECT 1'))
            return True
        except Exception:
            logger.exception('postgres_client.connectivity_check_failed')
            return False

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
    )
    async def setup_schema(self) -> None:
        """Create the requests table if it does not exist."""
        async with self.engine.begin() as conn:
            await conn.execute(text(_CREATE_TABLE_SQL))
        logger.info('postgres_client.schema_ready')

    # =========================================================================
    # Request log
    # =========================================================================

    async def record_requests(self, entries: Sequence[RequestLogEntry]) -> list[int]:
        """
        INSERT one row per completed sub-request, in batch order.

        Args:
            entries: Completed sub-requests to log

        Returns:
            Generated row ids, in the same order as ``entries``

        Raises:
            PersistenceError: If the insert transaction fails
        """
        if not entries:
            return []

        sql = text("""
            INSERT INTO requests (url, method, responsecode)
            VALUES (:url, :method, :responsecode)
            RETURNING id
        """)

        ids: list[int] = []
        try:
            async with self.engine.begin() as conn:
                for entry in entries:
                    row = await conn.execute(
                        sql,
                        {
                            'url': _truncate(entry.url),
                            'method': _truncate(entry.method),
                            'responsecode': entry.response_code,
                        },
                    )
                    ids.append(row.scalar_one())
        except Exception as e:
            raise PersistenceError(
                f"failed to record requests: {e}",
                context={'count': len(entries), 'error_type': type(e).__name__},
            ) from e

        logger.info('postgres_client.requests_recorded', count=len(ids))
        return ids

    async def fetch_requests(self, ids: Sequence[int]) -> list[dict[str, Any]]:
        """
        Read logged requests back by id.

        Returns:
            Rows as dicts with id, url, method, responsecode, ordered by id
        """
        if not ids:
            return []

        sql = text("""
            SELECT id, url, method, responsecode
            FROM requests
            WHERE id = ANY(:ids)
            ORDER BY id
        """)

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(sql, {'ids': list(ids)})
                return [dict(row) for row in result.mappings().all()]
        except Exception as e:
            raise PersistenceError(
                f"failed to fetch requests: {e}",
                context={'count': len(ids), 'error_type': type(e).__name__},
            ) from e
