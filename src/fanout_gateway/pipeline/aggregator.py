"""Restore original submission order for a set of execution results."""

from collections.abc import Iterable
from operator import attrgetter

from ..models.result import ExecutionResult


def aggregate_results(results: Iterable[ExecutionResult]) -> list[ExecutionResult]:
    """
    Order results by their batch index, ascending.

    Accepts results in slot order or in arrival order; completeness is
    guaranteed by the dispatcher and is not re-checked here.
    """
    return sorted(results, key=attrgetter('index'))
