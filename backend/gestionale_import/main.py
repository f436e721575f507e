"""FastAPI application bootstrap with router wiring."""

import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gestionale_import.api.routers import health, imports
from gestionale_import.core.config import get_settings

logger = logging.getLogger(__name__)

IMPORT_PREFIX = "/api/import"


async def envelope_http_exception(request: Request, exc: StarletteHTTPException):
    """Import routes answer errors as ``{"success": false, "message": ...}``."""
    if request.url.path.startswith(IMPORT_PREFIX) and isinstance(exc.detail, str):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.detail},
            headers=getattr(exc, "headers", None),
        )
    return await http_exception_handler(request, exc)


def create_app() -> FastAPI:
    """Instantiate the FastAPI app and include top-level routers."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(title=settings.app_name, version="0.1.0")

    cors_origins = settings.cors_origins
    logger.info(f"[CORS] Parsed allowed origins: {cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, envelope_http_exception)

    app.include_router(health.router)
    app.include_router(imports.router, prefix=IMPORT_PREFIX, tags=["import"])

    logger.info(
        f"{settings.app_name} ready: run_mode={settings.import_run_mode}, "
        f"job_store={settings.job_store_backend}"
    )
    return app


app = create_app()
