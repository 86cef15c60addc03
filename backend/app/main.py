# app/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.logging import setup_logging
from app.api.v1.routers.calls import router as calls_router
from app.api.v1.routers.webhook import router as webhook_router
from app.api.v1.routers.call_result import router as call_result_router
from app.api.v1.routers.pre_call import router as pre_call_router
from app.services.call_service import CallService, build_call_service

from app.middleware.error_handler import http_error_handler
from app.middleware.request_id import RequestIDMiddleware
from app.middleware.request_timing import RequestTimingMiddleware


def create_app(service: CallService | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # in-memory state lives as long as the process; nothing to tear down
        app.state.call_service = service or build_call_service(settings)
        yield

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",")] if settings.cors_origins else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RequestTimingMiddleware)

    app.include_router(calls_router)
    app.include_router(webhook_router)
    app.include_router(call_result_router)
    app.include_router(pre_call_router)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exc_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def _validation_exc_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})

    @app.exception_handler(Exception)
    async def _unhandled_exc_handler(request: Request, exc: Exception):
        return await http_error_handler(request, exc)

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    return app


setup_logging(settings.log_level)
app = create_app()
