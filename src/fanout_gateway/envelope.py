"""Decode inbound request bodies into sub-request descriptors."""

from pydantic import ValidationError as PydanticValidationError

from .errors import EnvelopeError
from .models.descriptor import BatchEnvelope, SubRequestDescriptor


def _describe(exc: PydanticValidationError) -> str:
    """Flatten pydantic errors into one line."""
    parts = []
    for err in exc.errors():
        loc = '.'.join(str(p) for p in err.get('loc', ()))
        parts.append(f"{loc}: {err['msg']}" if loc else err['msg'])
    return '; '.join(parts)


def _require_body(raw: bytes) -> None:
    if not raw or not raw.strip():
        raise EnvelopeError('empty request body')


def parse_batch_body(raw: bytes) -> list[SubRequestDescriptor]:
    """
    Extract the ordered descriptor list from a batch call body.

    Body format:
    {
        "requests": [
            {"url": "...", "method": "...", "body": "<base64>"},
            ...
        ]
    }

    Raises:
        EnvelopeError: Empty body, invalid JSON, or wrong field types
    """
    _require_body(raw)
    try:
        envelope = BatchEnvelope.model_validate_json(raw)
    except PydanticValidationError as e:
        raise EnvelopeError(f"invalid request envelope: {_describe(e)}") from e
    return envelope.requests


def parse_single_body(raw: bytes) -> SubRequestDescriptor:
    """
    Extract one descriptor from a single-request call body.

    Raises:
        EnvelopeError: Empty body, invalid JSON, or wrong field types
    """
    _require_body(raw)
    try:
        return SubRequestDescriptor.model_validate_json(raw)
    except PydanticValidationError as e:
        raise EnvelopeError(f"invalid request envelope: {_describe(e)}") from e
