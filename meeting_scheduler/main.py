import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
from . import models, models_scheduling  # noqa: F401
from .config import ALLOWED_ORIGINS, NOTIFICATION_BACKEND, RATE_LIMIT_ENABLED, SECURITY_HEADERS_ENABLED
from .database import Base, engine
from .domain.scheduling.exceptions import SchedulingError
from .domain.scheduling.notifications import (
    NotificationDispatcher,
    SchedulingNotifier,
    create_dispatcher,
)
from .domain.scheduling.router import router as scheduling_router
from .security_headers import SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


async def start_dispatcher(backend: str = NOTIFICATION_BACKEND):
    """Start the configured dispatcher; fall back to in-process delivery if Redis is down"""
    dispatcher = create_dispatcher(backend)
    try:
        await dispatcher.start()
    except Exception as e:
        if isinstance(dispatcher, NotificationDispatcher):
            raise
        logger.error(f"❌ Could not start '{backend}' notification queue: {e}")
        logger.warning("⚠️ Falling back to in-process notification delivery")
        dispatcher = NotificationDispatcher()
        await dispatcher.start()
    return dispatcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    if RATE_LIMIT_ENABLED:
        from .rate_limiter import get_redis_client

        if get_redis_client() is None:
            logger.warning("Redis unavailable - rate limits are enforced per process")

    dispatcher = await start_dispatcher()
    app.state.dispatcher = dispatcher
    app.state.notifier = SchedulingNotifier(dispatcher)

    yield

    logger.info("Application shutting down...")
    await dispatcher.stop()


app = FastAPI(title="Meeting Scheduler API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(SchedulingError)
async def scheduling_exception_handler(request: Request, exc: SchedulingError):
    """Domain errors carry their own HTTP status and a stable reason code"""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} ({exc.reason})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header.",
                    "reason": "unauthorized",
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors()), "reason": "invalid_request"},
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"])
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(scheduling_router)


@app.get("/")
def root():
    return {"message": "Meeting Scheduler API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/health/redis")
async def redis_health_check():
    """Check Redis connectivity for monitoring"""
    from .rate_limiter import get_redis_client

    redis_client = get_redis_client()
    if redis_client is None:
        return {"status": "unhealthy", "redis": {"connected": False, "error": "not configured or unreachable"}}

    try:
        start_time = time.time()
        redis_client.ping()
        response_time = (time.time() - start_time) * 1000
        info = redis_client.info()
        return {
            "status": "healthy",
            "redis": {
                "connected": True,
                "response_time_ms": round(response_time, 2),
                "version": info.get("redis_version", "unknown"),
                "used_memory_human": info.get("used_memory_human", "unknown"),
                "connected_clients": info.get("connected_clients", 0),
            },
        }
    except Exception as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}


@app.get("/health/notifications")
async def notifications_health_check(request: Request):
    """Delivery counters of the in-process dispatcher"""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        return {"status": "unhealthy", "running": False}
    return {
        "status": "healthy" if dispatcher.is_running else "unhealthy",
        "running": dispatcher.is_running,
        "backend": type(dispatcher).__name__,
        "delivered": getattr(dispatcher, "delivered", None),
        "failed": getattr(dispatcher, "failed", None),
    }
