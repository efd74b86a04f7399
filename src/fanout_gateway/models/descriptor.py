"""
Inbound envelope models.

A batch call carries ``{"requests": [...]}``; a single call carries one
descriptor at the top level.  Empty ``url``/``method`` are accepted here and
rejected per item by the validator, so one bad entry never fails the batch.
"""

from pydantic import BaseModel, ConfigDict, Field


class SubRequestDescriptor(BaseModel):
    """One outbound request to perform."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(default='', description='Target URI (required, non-empty)')
    method: str = Field(default='', description='HTTP method (required, non-empty)')
    body: str | None = Field(
        default=None,
        description='Base64-encoded request body (optional)',
    )


class BatchEnvelope(BaseModel):
    """Ordered list of descriptors submitted in one call."""

    requests: list[SubRequestDescriptor] = Field(default_factory=list)
