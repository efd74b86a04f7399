"""
Batch dispatcher for concurrent sub-request fan-out.

Spawns one asyncio task per descriptor, each running
SingleRequestExecutor.execute() for its own index.  Results are written into
a pre-sized, index-addressed slot list: each task owns exactly one slot, so
no locking is needed and order never depends on completion sequence.

Fault isolation guarantee: one sub-request failing never affects another.
The join is a strict barrier: dispatch() returns only once every slot is
terminal.
"""

import asyncio
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from fanout_gateway.errors import ExecutionError, RequestTimeoutError
from fanout_gateway.models.descriptor import SubRequestDescriptor
from fanout_gateway.models.result import ExecutionResult
from fanout_gateway.pipeline.aggregator import aggregate_results
from fanout_gateway.pipeline.executor import SingleRequestExecutor

logger = structlog.get_logger(__name__)


# =============================================================================
# Result Model
# =============================================================================


@dataclass(frozen=True)
class RequestLogEntry:
    """Durable record of one completed sub-request."""

    url: str
    method: str
    response_code: int


@dataclass
class BatchResult:
    """
    Aggregate result of dispatching one batch.

    ``results[i].index == i`` for every i, and there is exactly one result
    per descriptor.
    """

    batch_id: str
    descriptors: list[SubRequestDescriptor] = field(default_factory=list)
    results: list[ExecutionResult] = field(default_factory=list)

    # Timing
    started_at: datetime | None = None
    completed_at: datetime | None = None
    dispatch_time_ms: int | None = None

    @property
    def total_count(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failure_count(self) -> int:
        return self.total_count - self.success_count

    @property
    def all_succeeded(self) -> bool:
        return self.failure_count == 0

    def completed_requests(self) -> list[RequestLogEntry]:
        """(url, method, response code) for each completed item, in order."""
        return [
            RequestLogEntry(
                url=self.descriptors[r.index].url,
                method=self.descriptors[r.index].method,
                response_code=r.status_code,
            )
            for r in self.results
            if r.succeeded
        ]

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the API response."""
        return {'responses': [r.to_dict() for r in self.results]}

    def summary(self) -> dict[str, Any]:
        """Counters for logging."""
        return {
            'batch_id': self.batch_id,
            'total_count': self.total_count,
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'dispatch_time_ms': self.dispatch_time_ms,
        }


# =============================================================================
# BatchDispatcher
# =============================================================================


class BatchDispatcher:
    """
    Fans a batch of descriptors out to concurrent executions and joins them.

    Bounds:
    - max_concurrency: Maximum in-flight executions (None or 0 = unbounded)
    - batch_timeout: Seconds before unfinished items are cancelled and
      recorded as timed out (None = wait indefinitely)
    """

    def __init__(
        self,
        executor: SingleRequestExecutor,
        max_concurrency: int | None = None,
        batch_timeout: float | None = None,
    ):
        """
        Initialize with a configured executor.

        Args:
            executor: Executor run once per descriptor
            max_concurrency: In-flight bound for the fan-out
            batch_timeout: Whole-batch deadline in seconds
        """
        if max_concurrency is not None and max_concurrency < 0:
            raise ValueError('max_concurrency must be >= 0')
        self.executor = executor
        self.max_concurrency = max_concurrency or None
        self.batch_timeout = batch_timeout

    async def dispatch(
        self,
        descriptors: Sequence[SubRequestDescriptor],
        batch_id: str | None = None,
    ) -> BatchResult:
        """
        Execute every descriptor concurrently and wait for all of them.

        Flow:
        1. Pre-allocate one pending slot per descriptor
        2. Spawn one task per descriptor, each settling only its own slot
        3. Join (bounded by batch_timeout); time out whatever is unfinished
        4. Order the slots and build the BatchResult

        Args:
            descriptors: Ordered descriptors from the inbound envelope
            batch_id: Identifier for logs (generated when omitted)

        Returns:
            BatchResult with exactly one terminal result per descriptor
        """
        batch_id = batch_id or uuid.uuid4().hex
        started_at = datetime.now()
        t0 = time.monotonic()

        log = logger.bind(batch_id=batch_id, batch_size=len(descriptors))

        result = BatchResult(
            batch_id=batch_id,
            descriptors=list(descriptors),
            started_at=started_at,
        )

        if not descriptors:
            result.completed_at = datetime.now()
            result.dispatch_time_ms = 0
            log.info('dispatcher.empty_batch')
            return result

        log.info(
            'dispatcher.started',
            max_concurrency=self.max_concurrency,
            batch_timeout=self.batch_timeout,
        )

        # ------------------------------------------------------------------
        # Fan out: one task per slot
        # ------------------------------------------------------------------
        slots = [ExecutionResult.pending(i) for i in range(len(descriptors))]
        semaphore = (
            asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
        )

        tasks = [
            asyncio.create_task(self._run_slot(slots, i, descriptor, semaphore))
            for i, descriptor in enumerate(descriptors)
        ]

        # ------------------------------------------------------------------
        # Join
        # ------------------------------------------------------------------
        _, pending = await asyncio.wait(tasks, timeout=self.batch_timeout)

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            error = RequestTimeoutError(
                f"request timed out: batch deadline of {self.batch_timeout:g}s exceeded"
            )
            timed_out = [s.index for s in slots if not s.is_terminal]
            for index in timed_out:
                slots[index] = ExecutionResult.failed(index, error)
            log.warning('dispatcher.batch_timeout', timed_out=timed_out)

        # ------------------------------------------------------------------
        # Finalize
        # ------------------------------------------------------------------
        result.results = aggregate_results(slots)
        result.completed_at = datetime.now()
        result.dispatch_time_ms = int((time.monotonic() - t0) * 1000)

        log.info(
            'dispatcher.complete',
            success_count=result.success_count,
            failure_count=result.failure_count,
            dispatch_time_ms=result.dispatch_time_ms,
        )

        return result

    async def _run_slot(
        self,
        slots: list[ExecutionResult],
        index: int,
        descriptor: SubRequestDescriptor,
        semaphore: asyncio.Semaphore | None,
    ) -> None:
        """Run one execution and settle its slot exactly once."""
        try:
            if semaphore is None:
                outcome = await self.executor.execute(index, descriptor)
            else:
                async with semaphore:
                    outcome = await self.executor.execute(index, descriptor)
        except Exception as e:
            logger.error(
                'dispatcher.item_crashed',
                index=index,
                error=str(e),
                error_type=type(e).__name__,
            )
            outcome = ExecutionResult.failed(
                index,
                ExecutionError(f"request failed unexpectedly: {type(e).__name__}: {e}"),
            )

        if outcome.index != index or not outcome.is_terminal:
            outcome = ExecutionResult.failed(
                index, ExecutionError('executor returned an invalid result')
            )

        if not outcome.succeeded:
            logger.warning(
                'dispatcher.item_failed',
                index=index,
                outcome=outcome.outcome.value,
                error=outcome.error,
            )

        slots[index] = outcome
