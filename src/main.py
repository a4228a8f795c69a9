"""FastAPI ops application (read-only).

Run with: uvicorn src.main:app --port 8000
The clearing loop itself runs separately: python -m src.bot
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config.settings import settings
from src.ba_bids.api.router import router as bids_router
from src.ba_common.database import engine
from src.ba_common.errors import AppError, InternalError
from src.ba_common.redis_client import close_redis, get_redis
from src.ba_common.request_log import RequestLogMiddleware
from src.ba_common.response import error_response
from src.ba_engine.api.router import router as engine_router
from src.ba_settlement.api.router import router as settlement_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections. Shutdown: dispose."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await get_redis()
    yield
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message, getattr(request.state, "request_id", None))
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s: %s", request.url.path, exc)
    err = InternalError("Database unavailable")
    return JSONResponse(
        status_code=err.http_status,
        content=error_response(
            err.code, err.message, getattr(request.state, "request_id", None)
        ).model_dump(),
    )


app.include_router(engine_router, prefix="/api/v1")
app.include_router(bids_router, prefix="/api/v1")
app.include_router(settlement_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
