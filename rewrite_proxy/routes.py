import logging
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse, PlainTextResponse, Response

from rewrite_proxy.proxy.dispatcher import dispatch

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


def static_fallback(static_dir: str, path: str) -> Response:
    """Serve ``path`` from ``static_dir`` when it exists there, else 404."""
    if static_dir:
        root = Path(static_dir).resolve()
        candidate = (root / path.lstrip("/")).resolve()
        if candidate.is_dir():
            candidate = candidate / "index.html"
        if candidate.is_relative_to(root) and candidate.is_file():
            return FileResponse(candidate)
    logger.debug(f"No proxy route or static file for {path}")
    return PlainTextResponse("Not Found", status_code=404)


# Register catch-all route for proxying
@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"],
)
async def proxy_all(request: Request, path: str):
    """Catch-all route that proxies allow-listed targets and falls back to static files."""
    settings = request.app.state.settings
    transport = getattr(request.app.state, "transport", None)
    response = await dispatch(request, settings, transport)
    if response is not None:
        return response
    return static_fallback(settings.static_dir, request.url.path)
