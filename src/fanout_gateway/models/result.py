"""
Result models for executed sub-requests.

An ExecutionResult starts pending (only ``index`` set) and is settled
exactly once by the unit that owns it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..errors import ItemError


class Outcome(str, Enum):
    """Terminal state of a sub-request."""

    COMPLETED = 'completed'
    FAILED_VALIDATION = 'failed_validation'
    FAILED_CONSTRUCTION = 'failed_construction'
    FAILED_NETWORK = 'failed_network'
    FAILED_RESPONSE_READ = 'failed_response_read'
    FAILED_TIMEOUT = 'failed_timeout'
    FAILED_EXECUTION = 'failed_execution'


@dataclass
class ExecutionResult:
    """
    Outcome of one descriptor, correlated by its position in the batch.

    Success (status_code + response_body) and error are mutually exclusive.
    """

    index: int
    status_code: int | None = None
    response_body: bytes | None = None
    error: str | None = None
    outcome: Outcome | None = None

    @classmethod
    def pending(cls, index: int) -> ExecutionResult:
        return cls(index=index)

    @classmethod
    def completed(cls, index: int, status_code: int, body: bytes) -> ExecutionResult:
        return cls(
            index=index,
            status_code=status_code,
            response_body=body,
            outcome=Outcome.COMPLETED,
        )

    @classmethod
    def failed(cls, index: int, error: ItemError) -> ExecutionResult:
        return cls(index=index, error=error.message, outcome=error.outcome)

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not None

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire record returned to the caller."""
        if self.succeeded:
            return {
                'index': self.index,
                'responsecode': self.status_code,
                'response': (self.response_body or b'').decode('utf-8', errors='replace'),
            }
        return {'index': self.index, 'error': self.error}
