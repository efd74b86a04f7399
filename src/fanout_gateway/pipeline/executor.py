"""
Single sub-request execution.

Runs one descriptor end-to-end and always returns a terminal
ExecutionResult.  Per-item failures are captured into the result and never
raised to the caller:

    Received -> Validating -> (Failed:Validation | Sending)
             -> (Failed:Construction | Failed:Network | Responding)
             -> (Failed:ResponseRead | Completed)

Each execution uses its own httpx.AsyncClient and sends
``Connection: close`` so no connection outlives the item.
"""

import asyncio
import re
from collections.abc import Callable

import httpx
import structlog

from ..errors import (
    ExecutionError,
    NetworkError,
    RequestConstructionError,
    RequestTimeoutError,
    ResponseReadError,
    ValidationError,
    wrap_transport_error,
)
from ..models.descriptor import SubRequestDescriptor
from ..models.result import ExecutionResult
from .validator import ValidatedRequest, validate_descriptor

logger = structlog.get_logger(__name__)

# RFC 7230 token
_METHOD_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")

ClientFactory = Callable[[], httpx.AsyncClient]


class SingleRequestExecutor:
    """
    Executes exactly one outbound call per invocation, with no retries.

    Configuration:
    - item_timeout: Seconds allowed for send + body read (None = no deadline)
    - follow_redirects: Follow 3xx responses instead of returning them
    - client_factory: Builds the per-item httpx.AsyncClient (tests inject
      one backed by httpx.MockTransport)
    """

    def __init__(
        self,
        item_timeout: float | None = None,
        follow_redirects: bool = False,
        client_factory: ClientFactory | None = None,
    ):
        self.item_timeout = item_timeout
        self.follow_redirects = follow_redirects
        self._client_factory = client_factory or self._default_client

    def _default_client(self) -> httpx.AsyncClient:
        # Deadlines are enforced by item_timeout, not by httpx
        return httpx.AsyncClient(timeout=None, follow_redirects=self.follow_redirects)

    async def execute(
        self,
        index: int,
        descriptor: SubRequestDescriptor,
    ) -> ExecutionResult:
        """
        Validate, send and read one sub-request.

        Args:
            index: Position of the descriptor in the original batch
            descriptor: Descriptor to execute

        Returns:
            Terminal ExecutionResult for this index
        """
        log = logger.bind(index=index, method=descriptor.method, url=descriptor.url)

        try:
            request = validate_descriptor(descriptor)
        except ValidationError as e:
            log.info('executor.validation_failed', error=e.message)
            return ExecutionResult.failed(index, e)

        try:
            if self.item_timeout is None:
                status_code, body = await self._perform(request)
            else:
                status_code, body = await asyncio.wait_for(
                    self._perform(request), timeout=self.item_timeout
                )
        except (asyncio.TimeoutError, TimeoutError) as e:
            if self.item_timeout is None:
                # Raised by the transport itself, not by wait_for
                error = NetworkError(
                    f"request failed: {str(e) or type(e).__name__}",
                    context={'error_type': type(e).__name__},
                )
            else:
                error = RequestTimeoutError(
                    f"request timed out after {self.item_timeout:g}s"
                )
            log.warning(
                'executor.timeout',
                outcome=error.outcome.value,
                item_timeout=self.item_timeout,
            )
            return ExecutionResult.failed(index, error)
        except ExecutionError as e:
            log.warning(
                'executor.failed',
                outcome=e.outcome.value,
                error=e.message,
                error_type=e.context.get('error_type'),
            )
            return ExecutionResult.failed(index, e)
        except Exception as e:
            log.exception('executor.unexpected_error', error_type=type(e).__name__)
            return ExecutionResult.failed(
                index, ExecutionError(f"request failed unexpectedly: {type(e).__name__}: {e}")
            )

        log.debug('executor.completed', status_code=status_code, body_bytes=len(body))
        return ExecutionResult.completed(index, status_code, body)

    async def _perform(self, request: ValidatedRequest) -> tuple[int, bytes]:
        """Send the request and read the full response body."""
        async with self._client_factory() as client:
            outbound = self._build(client, request)

            try:
                response = await client.send(outbound, stream=True)
            except httpx.HTTPError as e:
                raise wrap_transport_error(e) from e

            try:
                body = await response.aread()
            except httpx.HTTPError as e:
                raise ResponseReadError(
                    f"failed to read response body: {e}",
                    context={'error_type': type(e).__name__},
                ) from e
            finally:
                await response.aclose()

            return response.status_code, body

    @staticmethod
    def _build(client: httpx.AsyncClient, request: ValidatedRequest) -> httpx.Request:
        """
        Build the outbound request.

        Raises:
            RequestConstructionError: Invalid method or URL
        """
        if not _METHOD_RE.match(request.method):
            raise RequestConstructionError(
                f"failed to build request: invalid method {request.method!r}"
            )

        try:
            outbound = client.build_request(
                request.method,
                request.url,
                content=request.payload or None,
                headers={'Connection': 'close'},
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol, ValueError, TypeError) as e:
            raise RequestConstructionError(f"failed to build request: {e}") from e

        if outbound.url.scheme not in ('http', 'https') or not outbound.url.host:
            raise RequestConstructionError(
                f"failed to build request: unsupported URL {request.url!r}"
            )

        return outbound
