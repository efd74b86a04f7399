"""
Data models for the request fan-out gateway.
"""

from .descriptor import BatchEnvelope, SubRequestDescriptor
from .result import ExecutionResult, Outcome

__all__ = [
    'BatchEnvelope',
    'SubRequestDescriptor',
    'ExecutionResult',
    'Outcome',
]
