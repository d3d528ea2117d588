import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from askai.api.v1.ask import router as ask_router
from askai.core.config import get_settings
from askai.core.dependencies import build_container, build_session_factory
from askai.models.interaction import Base

settings = get_settings()

logger = logging.getLogger(__name__)

app = FastAPI(
    title="SmartKids Ask AI API",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)


@app.on_event("startup")
async def _startup_services():
    if getattr(app.state, "container", None) is not None:
        return
    session_factory = build_session_factory(settings)
    if session_factory is not None and settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=session_factory.kw["bind"])
    app.state.container = build_container(settings, session_factory=session_factory)


@app.on_event("shutdown")
async def _shutdown_services():
    container = getattr(app.state, "container", None)
    if container is not None:
        container.close()
        app.state.container = None


if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(ask_router, prefix="/api/v1", tags=["ask"])


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Hide internal details for 5xx unless explicitly enabled.
    if exc.status_code >= 500 and not settings.expose_error_details:
        return JSONResponse(status_code=exc.status_code, content={"detail": "Internal server error"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    if settings.expose_error_details:
        return JSONResponse(status_code=500, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
async def health_check():
    container = getattr(app.state, "container", None)
    return {
        "status": "ok",
        "sentiment_model_loaded": bool(container and container.model_handle.loaded),
    }
