"""Health check endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/health")
async def health(request: Request, deep: bool = False):
    """
    Check store connectivity.

    With deep=true the OpenAI model lookup is reported too. It never changes
    the status: classification falls back to the heuristic without OpenAI.
    """
    if not await request.app.state.db.verify_connectivity():
        return JSONResponse(status_code=503, content={"status": "unhealthy"})

    body: dict = {"status": "ok"}
    if deep:
        openai = getattr(request.app.state, "openai", None)
        if openai is None:
            body["openai"] = {"healthy": False, "error": "OPENAI_API_KEY not set"}
        else:
            body["openai"] = await openai.health_check()
    return body
