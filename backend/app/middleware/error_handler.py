
import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

log = structlog.get_logger("app.error_handler")

async def http_error_handler(request: Request, exc: Exception):

    log.exception("request.unhandled_error", path=str(request.url), error=repr(exc))
    return JSONResponse(
        status_code=500,
        content={"ok": False, "detail": "Internal Server Error", "error": str(exc)},
    )
