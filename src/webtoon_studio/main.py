"""FastAPI application factory."""
from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from webtoon_studio import __version__
from webtoon_studio.config import WebtoonConfig, set_config
from webtoon_studio.db import init_db
from webtoon_studio.log_config import logger, setup_logging
from webtoon_studio.routes import ROUTERS


def _error_body(detail: Any) -> dict[str, Any]:
    if isinstance(detail, dict) and "error" in detail:
        return detail
    return {"error": detail}


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("request validation failed path=%s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "details": jsonable_errors(exc)},
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error path=%s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "details": str(exc)},
    )


def create_app(config: WebtoonConfig | None = None, *, initialise_db: bool = True) -> FastAPI:
    """Build the application; the database is initialised unless the caller manages it."""
    config = config or WebtoonConfig()
    set_config(config)
    setup_logging(config.log_level)
    if initialise_db:
        init_db(config.database_url)

    app = FastAPI(title="Webtoon Studio", version=__version__)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
    for router in ROUTERS:
        app.include_router(router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    logger.info("app created environment=%s storage=%s", config.environment, config.storage_backend)
    return app
