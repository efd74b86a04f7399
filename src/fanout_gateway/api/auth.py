"""Optional bearer token authentication for the gateway routes."""

from fastapi import Header, HTTPException

from .config import get_settings


async def verify_api_key(authorization: str | None = Header(default=None)) -> None:
    """Validate the bearer token when GATEWAY_API_KEY is configured."""
    api_key = get_settings().GATEWAY_API_KEY
    if not api_key:
        return
    expected = f"Bearer {api_key}"
    if authorization != expected:
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")
