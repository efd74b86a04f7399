"""
Request Fan-out Gateway

Accepts a batch of outbound HTTP request descriptors, executes them
concurrently, and returns their results in original submission order.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .models import BatchEnvelope, ExecutionResult, Outcome, SubRequestDescriptor
from .pipeline import (
    SingleRequestExecutor,
    ValidatedRequest,
    aggregate_results,
    validate_descriptor,
)
from .envelope import parse_batch_body, parse_single_body
from .logging import (
    configure_logging,
    get_logger,
    logging_context,
    StageTimer,
)
from .errors import (
    FanoutGatewayError,
    EnvelopeError,
    ItemError,
    ValidationError,
    DecodeError,
    MissingFieldError,
    ExecutionError,
    RequestConstructionError,
    NetworkError,
    ResponseReadError,
    RequestTimeoutError,
    PersistenceError,
)

__all__ = [
    # Version
    '__version__',
    # Models
    'BatchEnvelope',
    'ExecutionResult',
    'Outcome',
    'SubRequestDescriptor',
    # Pipeline
    'SingleRequestExecutor',
    'ValidatedRequest',
    'aggregate_results',
    'validate_descriptor',
    # Envelope decoding
    'parse_batch_body',
    'parse_single_body',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'StageTimer',
    # Errors
    'FanoutGatewayError',
    'EnvelopeError',
    'ItemError',
    'ValidationError',
    'DecodeError',
    'MissingFieldError',
    'ExecutionError',
    'RequestConstructionError',
    'NetworkError',
    'ResponseReadError',
    'RequestTimeoutError',
    'PersistenceError',
]
