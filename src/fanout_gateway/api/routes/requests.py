"""POST /makeRequest and /makeRequests: decode, fan out, aggregate."""

import uuid

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse

from dispatcher.dispatcher import BatchDispatcher, BatchResult

from ...clients.postgres_client import PostgresClient
from ...envelope import parse_batch_body, parse_single_body
from ...errors import EnvelopeError
from ...logging import StageTimer, logging_context
from ...models.descriptor import SubRequestDescriptor
from ..auth import verify_api_key

logger = structlog.get_logger(__name__)

router = APIRouter()

TRACE_HEADER = "X-Trace-Id"


@router.post("/makeRequests")
async def make_requests(
    request: Request,
    background_tasks: BackgroundTasks,
    _auth: None = Depends(verify_api_key),
):
    """Execute a batch of sub-requests concurrently."""
    trace_id = _trace_id(request)
    raw = await request.body()
    try:
        descriptors = parse_batch_body(raw)
    except EnvelopeError as e:
        return _envelope_error(e, trace_id)
    return await _dispatch(request, background_tasks, descriptors, trace_id)


@router.post("/makeRequest")
async def make_request(
    request: Request,
    background_tasks: BackgroundTasks,
    _auth: None = Depends(verify_api_key),
):
    """Execute one sub-request (a batch of one)."""
    trace_id = _trace_id(request)
    raw = await request.body()
    try:
        descriptor = parse_single_body(raw)
    except EnvelopeError as e:
        return _envelope_error(e, trace_id)
    return await _dispatch(request, background_tasks, [descriptor], trace_id)


def _trace_id(request: Request) -> str:
    return request.headers.get(TRACE_HEADER) or uuid.uuid4().hex


def _envelope_error(error: EnvelopeError, trace_id: str) -> JSONResponse:
    with logging_context(trace_id=trace_id):
        logger.warning("requests.envelope_rejected", error=error.message)
    return JSONResponse(
        status_code=400,
        content={"error": error.message},
        headers={TRACE_HEADER: trace_id},
    )


async def _dispatch(
    request: Request,
    background_tasks: BackgroundTasks,
    descriptors: list[SubRequestDescriptor],
    trace_id: str,
) -> JSONResponse:
    batch_id = uuid.uuid4().hex
    dispatcher: BatchDispatcher = request.app.state.dispatcher
    postgres: PostgresClient | None = getattr(request.app.state, "postgres", None)
    timer = StageTimer()

    with logging_context(trace_id=trace_id, batch_id=batch_id):
        log = logger.bind(batch_size=len(descriptors))
        log.info("requests.received")

        try:
            with timer.stage("dispatch"):
                result = await dispatcher.dispatch(descriptors, batch_id=batch_id)
        except Exception as e:
            log.error("requests.failed", error=str(e), error_type=type(e).__name__)
            return JSONResponse(
                status_code=500,
                content={"error": str(e)},
                headers={TRACE_HEADER: trace_id},
            )

        payload = result.to_dict()

        # Runs after the response has been sent
        if postgres is not None:
            background_tasks.add_task(_persist, postgres, result, trace_id)

        log.info("requests.complete", **result.summary(), timing=timer.summary())

    return JSONResponse(content=payload, headers={TRACE_HEADER: trace_id})


async def _persist(postgres: PostgresClient, result: BatchResult, trace_id: str) -> None:
    """Write completed items to the request log. Failures are logged only."""
    entries = result.completed_requests()
    if not entries:
        return

    timer = StageTimer()
    with logging_context(trace_id=trace_id, batch_id=result.batch_id):
        try:
            with timer.stage("persist"):
                ids = await postgres.record_requests(entries)
        except Exception as e:
            logger.warning(
                "requests.persist_failed",
                error=str(e),
                error_type=type(e).__name__,
                count=len(entries),
            )
            return
        logger.info("requests.persisted", count=len(ids), timing=timer.summary())
