"""
Tests for BatchDispatcher.

Tests cover:
- Empty batch: no work spawned, empty well-formed result
- Ordering: results[i].index == i regardless of completion order
- Isolation: failing items never change the status of others
- Concurrent execution (timing verification)
- Concurrency bound via max_concurrency
- Batch deadline: only unfinished items time out
- Unexpected executor exceptions are captured per slot
- BatchResult properties, to_dict and completed_requests

No network access: executors run against httpx.MockTransport or are mocked.
"""

import asyncio
import base64
import time
from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import make_client_factory

from dispatcher.dispatcher import BatchDispatcher, BatchResult, RequestLogEntry
from fanout_gateway.models.descriptor import SubRequestDescriptor
from fanout_gateway.models.result import ExecutionResult, Outcome
from fanout_gateway.pipeline.executor import SingleRequestExecutor


# =============================================================================
# Fixtures
# =============================================================================


def _delayed_handler(delays: dict[str, float]):
    """Answer 200 with the request path after a per-host delay."""

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(delays.get(request.url.host, 0))
        if request.url.host == 'unreachable':
            raise httpx.ConnectError('connection refused', request=request)
        body = await request.aread()
        return httpx.Response(200, content=request.url.host.encode() + b':' + body)

    return handler


def _dispatcher(delays=None, **kwargs) -> BatchDispatcher:
    executor = SingleRequestExecutor(
        client_factory=make_client_factory(_delayed_handler(delays or {}))
    )
    return BatchDispatcher(executor, **kwargs)


def _get(host: str) -> SubRequestDescriptor:
    return SubRequestDescriptor(url=f'http://{host}/', method='GET')


# =============================================================================
# Test: Empty Batch
# =============================================================================


class TestEmptyBatch:
    @pytest.mark.asyncio
    async def test_empty_batch_returns_empty_result(self):
        executor = AsyncMock()
        dispatcher = BatchDispatcher(executor)

        result = await dispatcher.dispatch([])

        assert result.results == []
        assert result.total_count == 0
        assert result.to_dict() == {'responses': []}
        executor.execute.assert_not_called()


# =============================================================================
# Test: Ordering
# =============================================================================


class TestOrdering:
    @pytest.mark.asyncio
    async def test_results_follow_submission_order(self):
        """Later items finish first; output order is still 0..N-1."""
        hosts = [f'h{i}' for i in range(5)]
        delays = {host: 0.01 * (5 - i) for i, host in enumerate(hosts)}
        dispatcher = _dispatcher(delays)

        result = await dispatcher.dispatch([_get(h) for h in hosts])

        assert [r.index for r in result.results] == [0, 1, 2, 3, 4]
        assert [r.response_body for r in result.results] == [
            f'{h}:'.encode() for h in hosts
        ]

    @pytest.mark.asyncio
    async def test_order_independent_of_timing(self):
        """Permuting per-item delays never changes the output."""
        hosts = ['a', 'b', 'c', 'd']
        outputs = []
        for delays in (
            {'a': 0.04, 'b': 0.0, 'c': 0.02, 'd': 0.01},
            {'a': 0.0, 'b': 0.04, 'c': 0.01, 'd': 0.02},
            {'a': 0.02, 'b': 0.01, 'c': 0.04, 'd': 0.0},
        ):
            result = await _dispatcher(delays).dispatch([_get(h) for h in hosts])
            outputs.append(result.to_dict())

        assert outputs[0] == outputs[1] == outputs[2]

    @pytest.mark.asyncio
    async def test_every_index_present_once(self):
        dispatcher = _dispatcher()
        n = 25
        result = await dispatcher.dispatch([_get(f'h{i}') for i in range(n)])

        assert len(result.results) == n
        for i, r in enumerate(result.results):
            assert r.index == i
            assert r.is_terminal


# =============================================================================
# Test: Isolation
# =============================================================================


class TestIsolation:
    @pytest.mark.asyncio
    async def test_mixed_batch(self):
        """The canonical three-item scenario."""
        dispatcher = _dispatcher()
        descriptors = [
            SubRequestDescriptor(url='http://ok', method='GET'),
            SubRequestDescriptor(url='', method='GET'),
            SubRequestDescriptor(url='http://ok2', method='POST', body='eyJhIjoxfQ=='),
        ]

        result = await dispatcher.dispatch(descriptors)

        assert result.to_dict() == {
            'responses': [
                {'index': 0, 'responsecode': 200, 'response': 'ok:'},
                {'index': 1, 'error': 'missing url'},
                {'index': 2, 'responsecode': 200, 'response': 'ok2:{"a":1}'},
            ]
        }

    @pytest.mark.asyncio
    async def test_one_unreachable_among_successes(self):
        k = 4
        hosts = [f'ok{i}' for i in range(k)]
        hosts.insert(2, 'unreachable')
        dispatcher = _dispatcher()

        result = await dispatcher.dispatch([_get(h) for h in hosts])

        assert result.success_count == k
        assert result.failure_count == 1
        failed = [r for r in result.results if not r.succeeded]
        assert [r.index for r in failed] == [2]
        assert failed[0].outcome is Outcome.FAILED_NETWORK

    @pytest.mark.asyncio
    async def test_executor_exception_is_captured(self):
        async def execute(index, descriptor):
            if index == 1:
                raise RuntimeError('executor bug')
            return ExecutionResult.completed(index, 200, b'')

        executor = AsyncMock()
        executor.execute = AsyncMock(side_effect=execute)
        dispatcher = BatchDispatcher(executor)

        result = await dispatcher.dispatch([_get('a'), _get('b'), _get('c')])

        assert [r.outcome for r in result.results] == [
            Outcome.COMPLETED,
            Outcome.FAILED_EXECUTION,
            Outcome.COMPLETED,
        ]
        assert 'executor bug' in result.results[1].error


# =============================================================================
# Test: Concurrency
# =============================================================================


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_items_run_in_parallel(self):
        """Ten 0.1s items finish in well under 10 * 0.1s."""
        hosts = [f'h{i}' for i in range(10)]
        dispatcher = _dispatcher({h: 0.1 for h in hosts})

        t0 = time.monotonic()
        result = await dispatcher.dispatch([_get(h) for h in hosts])
        elapsed = time.monotonic() - t0

        assert result.all_succeeded is True
        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_max_concurrency_is_respected(self):
        in_flight = 0
        peak = 0

        async def execute(index, descriptor):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return ExecutionResult.completed(index, 200, b'')

        executor = AsyncMock()
        executor.execute = AsyncMock(side_effect=execute)
        dispatcher = BatchDispatcher(executor, max_concurrency=2)

        result = await dispatcher.dispatch([_get(f'h{i}') for i in range(6)])

        assert result.success_count == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_zero_means_unbounded(self):
        dispatcher = BatchDispatcher(AsyncMock(), max_concurrency=0)
        assert dispatcher.max_concurrency is None

    def test_negative_bound_rejected(self):
        with pytest.raises(ValueError):
            BatchDispatcher(AsyncMock(), max_concurrency=-1)


# =============================================================================
# Test: Batch Deadline
# =============================================================================


class TestBatchTimeout:
    @pytest.mark.asyncio
    async def test_unfinished_items_time_out(self):
        dispatcher = _dispatcher({'slow': 5.0}, batch_timeout=0.1)

        t0 = time.monotonic()
        result = await dispatcher.dispatch([_get('fast'), _get('slow'), _get('fast2')])
        elapsed = time.monotonic() - t0

        assert elapsed < 1.0
        assert [r.outcome for r in result.results] == [
            Outcome.COMPLETED,
            Outcome.FAILED_TIMEOUT,
            Outcome.COMPLETED,
        ]
        assert result.results[1].error == (
            'request timed out: batch deadline of 0.1s exceeded'
        )


# =============================================================================
# Test: BatchResult
# =============================================================================


class TestBatchResult:
    def _result(self) -> BatchResult:
        descriptors = [_get('a'), SubRequestDescriptor(url='', method='GET'), _get('c')]
        return BatchResult(
            batch_id='batch_001',
            descriptors=descriptors,
            results=[
                ExecutionResult.completed(0, 201, b'created'),
                ExecutionResult(index=1, error='missing url', outcome=Outcome.FAILED_VALIDATION),
                ExecutionResult.completed(2, 500, b'oops'),
            ],
            dispatch_time_ms=12,
        )

    def test_counters(self):
        result = self._result()

        assert result.total_count == 3
        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.all_succeeded is False

    def test_completed_requests(self):
        assert self._result().completed_requests() == [
            RequestLogEntry(url='http://a/', method='GET', response_code=201),
            RequestLogEntry(url='http://c/', method='GET', response_code=500),
        ]

    def test_summary(self):
        summary = self._result().summary()

        assert summary == {
            'batch_id': 'batch_001',
            'total_count': 3,
            'success_count': 2,
            'failure_count': 1,
            'dispatch_time_ms': 12,
        }

    @pytest.mark.asyncio
    async def test_dispatch_sets_timing(self):
        result = await _dispatcher().dispatch([_get('a')], batch_id='fixed')

        assert result.batch_id == 'fixed'
        assert result.started_at is not None
        assert result.completed_at >= result.started_at
        assert result.dispatch_time_ms >= 0
