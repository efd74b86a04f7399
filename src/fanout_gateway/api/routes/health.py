"""Health check endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Report liveness; checks the request log database when one is configured."""
    postgres = getattr(request.app.state, "postgres", None)
    if postgres is not None and not await postgres.verify_connectivity():
        return JSONResponse(status_code=503, content={"status": "unhealthy"})
    return {"status": "ok"}
