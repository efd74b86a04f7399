#!/usr/bin/env python3
"""
Live E2E smoke test for the BatchDispatcher.

Fans a small batch of real HTTP requests out against LIVE_BASE_URL
(default https://httpbin.org), including items that are expected to fail
validation or construction, and prints the per-item outcomes in batch
order. When DATABASE_URL is set, completed items are also written to the
requests table and read back.

Usage:
    python scripts/run_live_e2e.py
"""

import asyncio
import base64
import json
import os
import sys
import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / '.env')

from dispatcher.dispatcher import BatchDispatcher, BatchResult
from fanout_gateway.clients.postgres_client import PostgresClient
from fanout_gateway.models import SubRequestDescriptor
from fanout_gateway.pipeline import SingleRequestExecutor


# =============================================================================
# Batch Construction
# =============================================================================


def build_batch(base_url: str) -> list[SubRequestDescriptor]:
    """Build a mixed batch: successes, non-2xx statuses and per-item failures."""
    payload = base64.b64encode(json.dumps({'hello': 'gateway'}).encode()).decode()
    return [
        SubRequestDescriptor(url=f'{base_url}/get', method='GET'),
        SubRequestDescriptor(url=f'{base_url}/post', method='POST', body=payload),
        SubRequestDescriptor(url=f'{base_url}/status/404', method='GET'),
        SubRequestDescriptor(url=f'{base_url}/delay/1', method='GET'),
        SubRequestDescriptor(url=f'{base_url}/get', method=''),
        SubRequestDescriptor(url=f'{base_url}/post', method='POST', body='not base64!'),
        SubRequestDescriptor(url='ftp://example.invalid/file', method='GET'),
    ]


# =============================================================================
# Reporting
# =============================================================================


def print_batch_report(descriptors: list[SubRequestDescriptor], result: BatchResult):
    """Print one line per item plus the batch summary."""
    print(f"\n{'=' * 70}")
    print(f"BATCH {result.batch_id}")
    print("=" * 70)

    for descriptor, item in zip(descriptors, result.results):
        label = f"{descriptor.method or '<none>'} {descriptor.url}"
        if item.succeeded:
            size = len(item.response_body or b'')
            print(f"  [{item.index}] {label}")
            print(f"       -> {item.status_code} ({size} bytes)")
        else:
            print(f"  [{item.index}] {label}")
            print(f"       -> {item.outcome.value}: {item.error}")

    print(f"\n--- SUMMARY ---")
    print(f"  Total: {result.total_count}")
    print(f"  Completed: {result.success_count}")
    print(f"  Failed: {result.failure_count}")
    print(f"  Dispatch time: {result.dispatch_time_ms}ms")

    indices = [item.index for item in result.results]
    if indices == list(range(len(descriptors))):
        print(f"\n  [PASS] Results are in batch order")
    else:
        print(f"\n  [FAIL] Results out of order: {indices}")


async def verify_request_log(database_url: str, result: BatchResult):
    """Write completed items to Postgres and read them back."""
    print(f"\n--- REQUEST LOG ---")
    postgres = PostgresClient(database_url)
    try:
        await postgres.connect()
        await postgres.setup_schema()

        entries = result.completed_requests()
        ids = await postgres.record_requests(entries)
        rows = await postgres.fetch_requests(ids)

        for row in rows:
            print(f"  id={row['id']} {row['method']} {row['url']} -> {row['responsecode']}")

        if len(rows) == len(entries):
            print(f"\n  [PASS] {len(rows)} completed requests logged")
        else:
            print(f"\n  [FAIL] Expected {len(entries)} rows, read back {len(rows)}")
    finally:
        await postgres.close()


# =============================================================================
# Main
# =============================================================================


async def main():
    base_url = os.getenv('LIVE_BASE_URL', 'https://httpbin.org').rstrip('/')
    database_url = os.getenv('DATABASE_URL')

    print("=" * 70)
    print("LIVE E2E: BATCH FAN-OUT")
    print("=" * 70)
    print(f"Target: {base_url}")
    print(f"Request log: {'enabled' if database_url else 'disabled (DATABASE_URL not set)'}")

    descriptors = build_batch(base_url)
    executor = SingleRequestExecutor(item_timeout=15.0)
    dispatcher = BatchDispatcher(executor, max_concurrency=4, batch_timeout=60.0)

    try:
        t0 = time.monotonic()
        result = await dispatcher.dispatch(descriptors)
        total_time_ms = int((time.monotonic() - t0) * 1000)

        print_batch_report(descriptors, result)
        print(f"  Wall time: {total_time_ms}ms")

        if database_url:
            await verify_request_log(database_url, result)

    except Exception as e:
        print(f"\nFATAL ERROR: {e}")
        import traceback
        traceback.print_exc()
        raise


if __name__ == '__main__':
    asyncio.run(main())
