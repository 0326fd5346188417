# guru_sync/main.py
from __future__ import annotations

import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from guru_sync.common.errors import AppError
from guru_sync.common.http_client import truncar
from guru_sync.common.logging_setup import get_logger, setup_logging
from guru_sync.common.middlewares import CorrelationIdMiddleware
from guru_sync.routers.guru_webhook import router as guru_webhook_router

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Inicialização de logging
# -----------------------------------------------------------------------------
def _init_logging() -> None:
    # Lê envs: LOG_LEVEL, LOG_JSON, LOG_FILE, LOG_MASK_SECRETS, APP_NAME, APP_VERSION, APP_ENV
    setup_logging()

    logger.info(
        "app_startup",
        extra={"app": os.getenv("APP_NAME", "guru-sync"), "version": os.getenv("APP_VERSION", "0.0.0")},
    )


# -----------------------------------------------------------------------------
# Erros fora do handler (dependências, config) também respondem JSON com `ok`
# -----------------------------------------------------------------------------
async def _erro_inesperado_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("erro_inesperado", exc_info=exc, extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"ok": False, "error": truncar(exc)})


async def _app_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, AppError):
        return await _erro_inesperado_handler(request, exc)
    logger.error("app_error", extra={"code": exc.code, "status": exc.status_code, "path": request.url.path})
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": truncar(exc.message), "code": exc.code},
    )


# -----------------------------------------------------------------------------
# Criação do app
# -----------------------------------------------------------------------------
def create_app() -> FastAPI:
    _init_logging()

    app = FastAPI(title="Guru Sync (Pipedrive + Klaviyo)")

    # Middleware de correlação (injeta/propaga X-Request-Id)
    app.add_middleware(CorrelationIdMiddleware)

    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(Exception, _erro_inesperado_handler)

    app.include_router(guru_webhook_router)

    @app.get("/health", tags=["Health"])
    def health() -> dict[str, bool]:
        return {"ok": True}

    return app


# Instância utilizada pelo servidor (uvicorn)
app = create_app()
