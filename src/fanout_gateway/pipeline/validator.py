"""
Descriptor validation.

Rejects structurally invalid descriptors before any network call is made.
Checks run in a fixed order and stop at the first failure:

1. body, when present, must be valid base64
2. url must be non-empty
3. method must be non-empty
"""

import base64
import binascii
from dataclasses import dataclass

from ..errors import DecodeError, MissingFieldError
from ..models.descriptor import SubRequestDescriptor


@dataclass(frozen=True)
class ValidatedRequest:
    """A descriptor that passed validation, with its payload decoded."""

    method: str
    url: str
    payload: bytes = b''


def decode_body(body: str | None) -> bytes:
    """
    Decode a base64 body using the standard, padded alphabet.

    Raises:
        DecodeError: If the body is not valid base64
    """
    if not body:
        return b''
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid base64 body: {e}") from e


def validate_descriptor(descriptor: SubRequestDescriptor) -> ValidatedRequest:
    """
    Validate one descriptor and decode its payload.

    Args:
        descriptor: Descriptor as received in the envelope

    Returns:
        ValidatedRequest ready for transmission

    Raises:
        DecodeError: Body is not valid base64
        MissingFieldError: url or method is empty
    """
    payload = decode_body(descriptor.body)

    if not descriptor.url:
        raise MissingFieldError('url')
    if not descriptor.method:
        raise MissingFieldError('method')

    return ValidatedRequest(
        method=descriptor.method,
        url=descriptor.url,
        payload=payload,
    )
