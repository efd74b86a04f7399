"""FastAPI application for the request fan-out gateway."""

from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from dispatcher.dispatcher import BatchDispatcher

from ..clients.postgres_client import PostgresClient
from ..config import config
from ..pipeline.executor import SingleRequestExecutor
from .config import Settings, get_settings
from .routes.health import router as health_router
from .routes.requests import router as requests_router

logger = structlog.get_logger(__name__)


def build_dispatcher(settings: Settings) -> BatchDispatcher:
    """Build the dispatcher from explicit service settings."""
    executor = SingleRequestExecutor(
        item_timeout=settings.ITEM_TIMEOUT_SECONDS,
        follow_redirects=settings.FOLLOW_REDIRECTS,
    )
    return BatchDispatcher(
        executor,
        max_concurrency=settings.MAX_CONCURRENCY,
        batch_timeout=settings.BATCH_TIMEOUT_SECONDS,
    )


async def _connect_postgres(database_url: str) -> PostgresClient | None:
    """Connect the request log; None when the database is unusable."""
    pg = PostgresClient(database_url)
    try:
        await pg.connect()
    except Exception as e:
        logger.warning(
            "lifespan.postgres_connect_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        return None
    if not await pg.verify_connectivity():
        logger.warning("lifespan.postgres_connectivity_failed")
        await pg.close()
        return None
    try:
        await pg.setup_schema()
    except Exception as e:
        logger.warning(
            "lifespan.postgres_schema_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        await pg.close()
        return None
    logger.info("lifespan.postgres_ready")
    return pg


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the dispatcher and optional request log at startup."""
    settings = get_settings()

    logger.info(
        "lifespan.startup",
        max_concurrency=settings.MAX_CONCURRENCY,
        item_timeout=settings.ITEM_TIMEOUT_SECONDS,
        batch_timeout=settings.BATCH_TIMEOUT_SECONDS,
    )

    app.state.dispatcher = build_dispatcher(settings)

    # Postgres request log (optional, failure-isolated)
    postgres: PostgresClient | None = None
    if settings.DATABASE_URL:
        postgres = await _connect_postgres(settings.DATABASE_URL)
    app.state.postgres = postgres

    logger.info("lifespan.ready")
    yield

    logger.info("lifespan.shutdown")
    if postgres is not None:
        await postgres.close()


app = FastAPI(
    title="request-fanout-gateway",
    description="Executes batches of outbound HTTP requests concurrently and returns ordered results",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(requests_router)


def main() -> None:
    """Run the gateway with uvicorn."""
    settings = get_settings()
    problems = config.validate()
    if problems:
        raise SystemExit(f"invalid configuration: {', '.join(problems)}")
    uvicorn.run(
        app,
        host=settings.LISTEN_HOST,
        port=settings.LISTEN_PORT,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
