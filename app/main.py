"""
Main FastAPI application for the token-metered media generation API.
Serves packages, payments, generation, credit history, health and metrics.
"""
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import credits, generation, health, packages, payment
from app.core.config import settings
from app.core.exceptions import AppError
from app.core.logging import configure_logging
from app.db.session import init_db
from app.utils.metrics import router as metrics_router

logger = logging.getLogger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if settings.database_auto_create:
        init_db()
    logger.info("app_started")
    yield


app = FastAPI(
    title="Media Generation API",
    description="Token-metered image and video generation with prepaid packages",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
origins = settings.cors_origins_list
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(request: Request, status_code: int, body: dict) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(AppError)
def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning(
            "request_failed_upstream",
            extra={"path": request.url.path, "method": request.method, "error": exc.code},
        )
    return _error_response(request, exc.status_code, exc.to_dict())


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    first = errs[0] if errs else {}
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query")]
    field = loc[-1] if loc else None
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    body = {"error": message, "code": "validation_error", "status_code": 400}
    if field:
        body["field"] = field
    return _error_response(request, 400, body)


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_exception",
        extra={"path": request.url.path, "method": request.method, "error": type(exc).__name__},
    )
    return _error_response(
        request,
        500,
        {"error": "Internal server error", "code": "internal_error", "status_code": 500},
    )


@app.middleware("http")
async def request_id_and_latency(request: Request, call_next):
    request.state.request_id = request.headers.get(settings.request_id_header) or str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = round((time.perf_counter() - start) * 1000, 2)
    response.headers[settings.request_id_header] = request.state.request_id
    logger.info(
        "http_request",
        extra={
            "request_id": request.state.request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_ms": latency_ms,
        },
    )
    return response


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(packages.router)
app.include_router(payment.router)
app.include_router(generation.router)
app.include_router(credits.router)
app.include_router(metrics_router)
