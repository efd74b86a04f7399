"""
Sub-request pipeline: validation, single-request execution, and result
ordering.
"""

from .aggregator import aggregate_results
from .executor import ClientFactory, SingleRequestExecutor
from .validator import ValidatedRequest, decode_body, validate_descriptor

__all__ = [
    'aggregate_results',
    'ClientFactory',
    'SingleRequestExecutor',
    'ValidatedRequest',
    'decode_body',
    'validate_descriptor',
]
