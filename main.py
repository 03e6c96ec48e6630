import logging
import logging.config
import os
import time
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.openapi.utils import get_openapi
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import models  # noqa: F401  registers every table on Base.metadata
from app.core.config import get_settings
from app.core.exceptions import PharmacyError, ServerError
from app.db.base import Base
from app.db.session import engine
from app.api.v1 import router as v1_router
from app.middleware.rate_limit import RateLimitMiddleware


# ============================================================================
# CONFIGURATION & SETTINGS
# ============================================================================

settings = get_settings()


def build_logging_config() -> dict:
    """Console everywhere; rotating files in production only"""
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "default",
            "stream": "ext://sys.stdout",
        },
    }
    root_handlers = ["console"]
    app_handlers = ["console"]

    if settings.is_production:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "detailed",
            "filename": os.path.join(settings.LOG_DIR, "app.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 10,
        }
        handlers["error_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": "detailed",
            "filename": os.path.join(settings.LOG_DIR, "error.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 10,
        }
        root_handlers = ["console", "file"]
        app_handlers = ["console", "file", "error_file"]

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": {
            "": {  # root logger
                "handlers": root_handlers,
                "level": "INFO",
                "propagate": False,
            },
            "app": {
                "handlers": app_handlers,
                "level": "DEBUG" if not settings.is_production else "INFO",
                "propagate": False,
            },
            "uvicorn.access": {
                "handlers": root_handlers,
                "level": "INFO",
                "propagate": False,
            },
        },
    }


logging.config.dictConfig(build_logging_config())
logger = logging.getLogger(__name__)


# ============================================================================
# LIFECYCLE EVENTS
# ============================================================================

async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection established")
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created/verified")

    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down application")
    await engine.dispose()
    logger.info("All resources cleaned up")


# ============================================================================
# FASTAPI APP INITIALIZATION
# ============================================================================

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Pharmacy inventory, delegation, sales and returns management",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if settings.CORS_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.RATE_LIMIT_ENABLED:
    app.add_middleware(RateLimitMiddleware)

# ============================================================================
# CUSTOM MIDDLEWARE
# ============================================================================

@app.middleware("http")
async def add_request_id_middleware(request: Request, call_next):
    """
    Add request ID to all requests for tracing and logging.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def log_requests_middleware(request: Request, call_next):
    """
    Log all HTTP requests and responses.
    """
    start_time = time.time()

    response = await call_next(request)

    process_time = time.time() - start_time
    request_id = getattr(request.state, "request_id", "unknown")

    logger.info(
        f"[{request_id}] {request.method} {request.url.path} - "
        f"Status: {response.status_code} - Duration: {process_time:.3f}s"
    )

    response.headers["X-Process-Time"] = str(process_time)
    return response


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _format_errors(errors) -> list:
    """Keep only JSON-safe parts of pydantic error entries"""
    formatted_errors = []
    for error in errors:
        clean_error = {
            "loc": list(error.get("loc", [])),
            "msg": str(error.get("msg", "")),
            "type": error.get("type", "validation_error"),
        }
        if "ctx" in error:
            clean_error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        formatted_errors.append(clean_error)
    return formatted_errors


@app.exception_handler(PharmacyError)
async def pharmacy_exception_handler(request: Request, exc: PharmacyError):
    """
    Handle domain errors raised by services and dependencies.
    """
    request_id = _request_id(request)

    if exc.status_code >= 500:
        logger.error(f"[{request_id}] {exc.error} on {request.method} {request.url.path}: {exc.detail}")
    else:
        logger.info(f"[{request_id}] {exc.error} on {request.method} {request.url.path}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content={**exc.to_dict(), "request_id": request_id},
        headers=exc.headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Handle framework HTTP errors (unknown routes, wrong methods).
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "http_error",
            "detail": exc.detail,
            "request_id": _request_id(request),
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle validation errors with detailed error information.
    """
    request_id = _request_id(request)

    logger.warning(
        f"[{request_id}] Validation error on {request.method} {request.url.path}"
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "request_validation_error",
            "detail": "Validation error",
            "errors": _format_errors(exc.errors()),
            "request_id": request_id,
        },
    )


@app.exception_handler(PydanticValidationError)
async def pydantic_validation_exception_handler(request: Request, exc: PydanticValidationError):
    """
    Handle Pydantic ValidationError (from model validation).
    """
    request_id = _request_id(request)

    logger.warning(
        f"[{request_id}] Pydantic validation error on {request.method} {request.url.path}"
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "request_validation_error",
            "detail": "Validation error",
            "errors": _format_errors(exc.errors()),
            "request_id": request_id,
        },
    )


@app.exception_handler(ValueError)
async def value_error_exception_handler(request: Request, exc: ValueError):
    """
    Handle ValueError (e.g., from model validators).
    """
    request_id = _request_id(request)

    logger.warning(
        f"[{request_id}] ValueError on {request.method} {request.url.path}: {str(exc)}"
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "validation_error",
            "detail": str(exc),
            "request_id": request_id,
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """
    Handle database failures; the transaction has already been rolled back.
    """
    request_id = _request_id(request)

    logger.error(
        f"[{request_id}] Database error on {request.method} {request.url.path}: {str(exc)}",
        exc_info=True,
    )

    error = ServerError() if settings.is_production else ServerError(str(exc))
    error_response = {**error.to_dict(), "request_id": request_id}

    if not settings.is_production:
        error_response["type"] = type(exc).__name__

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Handle unexpected exceptions with proper logging.
    """
    request_id = _request_id(request)

    logger.error(
        f"[{request_id}] Unhandled exception on {request.method} {request.url.path}: {str(exc)}",
        exc_info=True,
    )

    error = ServerError() if settings.is_production else ServerError(str(exc))
    error_response = {**error.to_dict(), "request_id": request_id}

    if not settings.is_production:
        error_response["type"] = type(exc).__name__

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response,
    )


# ============================================================================
# ROUTES & ENDPOINTS
# ============================================================================

# API routes
app.include_router(
    v1_router,
    prefix=settings.API_PREFIX,
)


# ============================================================================
# HEALTH CHECK ENDPOINTS
# ============================================================================

@app.get("/health", tags=["System"])
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 OK if the service is running.
    """
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/health/deep", tags=["System"])
async def deep_health_check():
    """
    Deep health check including database connectivity.
    """
    health_status = {
        "status": "ok",
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "checks": {
            "database": "unknown",
        },
    }

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {str(e)}")
        health_status["status"] = "degraded"
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"

    return health_status


# ============================================================================
# OPENAPI CUSTOMIZATION
# ============================================================================

def custom_openapi():
    """
    Customize OpenAPI schema with the bearer auth scheme.
    """
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description=app.description,
        routes=app.routes,
    )

    openapi_schema.setdefault("components", {}).setdefault("securitySchemes", {})["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


# ============================================================================
# ROOT ENDPOINT
# ============================================================================

@app.get("/", tags=["System"])
async def root():
    """
    Root endpoint providing API information.
    """
    return {
        "message": f"Welcome to {settings.PROJECT_NAME}",
        "version": settings.VERSION,
        "api": settings.API_PREFIX,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
        "deep_health": "/health/deep",
    }


# ============================================================================
# APPLICATION ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    # Determine host and port
    host = "0.0.0.0" if settings.is_production else "127.0.0.1"
    port = 9000

    # Determine reload behavior
    reload = not settings.is_production

    # Start server
    logger.info(f"Starting server on {host}:{port}")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info" if settings.is_production else "debug",
        access_log=True,
        workers=1 if reload else 4,
    )
