import logging
import sys
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, APIRouter, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .errors import setup_error_handlers
from .db import db
from .config import settings
from .checkins import router as checkins_router
from .habits import router as habits_router
from .stakes import router as stakes_router
from .users import router as users_router
from .observability import (
    REQUEST_ID_HEADER,
    reset_request_context,
    set_request_context,
    duration_ms,
    generate_request_id,
    log_ctx,
    log_ctx_json,
    validate_request_id,
)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger("streakly-api")

SERVICE_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Streakly API...")
    if settings.is_production():
        logger.info("security mode: production strict enabled")
    logger.info("Startup CORS config: origins=%s", settings.get_cors_allow_origins())
    await db.create_pool()
    yield
    logger.info("Shutting down Streakly API...")
    await db.close_pool()

app = FastAPI(
    title="Streakly API",
    description="Backend for the Streakly habit tracker",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "PATCH"],
    allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
    expose_headers=[REQUEST_ID_HEADER],
)


@app.middleware("http")
async def request_observability_middleware(request: Request, call_next):
    started_at = time.monotonic()

    incoming_request_id = request.headers.get(REQUEST_ID_HEADER)
    if incoming_request_id is None:
        request_id = generate_request_id()
    else:
        if not validate_request_id(incoming_request_id):
            request_id = generate_request_id()
            request.state.request_id = request_id
            response = JSONResponse(
                status_code=400,
                content={
                    "error": {
                        "code": "VALIDATION_FAILED",
                        "message": "Invalid request data",
                        "details": {
                            "fieldErrors": [
                                {
                                    "field": "header.X-Request-Id",
                                    "issue": "must be non-empty and <= 128 chars",
                                }
                            ]
                        },
                    }
                },
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.warning(
                "REQUEST_REJECTED context=%s",
                log_ctx_json(
                    log_ctx(
                        request,
                        extra={
                            "status_code": 400,
                            "duration_ms": duration_ms(started_at),
                            "reason": "invalid_x_request_id",
                        },
                    )
                ),
            )
            return response
        request_id = incoming_request_id.strip()

    request.state.request_id = request_id
    context_tokens = set_request_context(request_id=request_id, path=request.url.path)
    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "REQUEST_DONE context=%s",
            log_ctx_json(
                log_ctx(
                    request,
                    extra={
                        "status_code": response.status_code,
                        "duration_ms": duration_ms(started_at),
                    },
                )
            ),
        )
        return response
    finally:
        reset_request_context(context_tokens)

setup_error_handlers(app)

v1_router = APIRouter(prefix="/v1")


@app.get("/health", tags=["Health"])
@v1_router.get("/health", tags=["Health"])
async def health_check():
    db_status = await db.db_check()
    return {
        "status": "ok",
        "service": "streakly-api",
        "version": SERVICE_VERSION,
        "db": db_status
    }

app.include_router(v1_router)
app.include_router(users_router)
app.include_router(habits_router)
app.include_router(checkins_router)
app.include_router(stakes_router)
