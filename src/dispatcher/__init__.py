"""
Batch dispatcher for concurrent sub-request fan-out.

Runs every descriptor of a batch concurrently, isolates per-item failures,
and returns results in original submission order.
"""

from .dispatcher import BatchDispatcher, BatchResult, RequestLogEntry

__all__ = [
    'BatchDispatcher',
    'BatchResult',
    'RequestLogEntry',
]
