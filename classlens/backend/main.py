# classlens/backend/main.py
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import redis.asyncio as redis
import logging

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config.config import settings
from .logging.logging_config import setup_logging
from .api import auth, teacher, student
from .db.redis_client import RedisClient, PersistenceError
from .db.attendance_store import AttendanceStore
from .tools.recognition_client import RecognitionClient
from .api.utilities.limiter import limiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Opens the Redis pool, loads the stored roster and reports, and closes the
    pool again on shutdown.
    """
    setup_logging()
    app.state.limiter = limiter
    logger.info("Starting application...")

    redis_pool = redis.ConnectionPool.from_url(settings.APPLICATION_REDIS_URL, decode_responses=True)
    app.state.redis_pool = redis_pool
    app.state.recognition_client = RecognitionClient()

    store = AttendanceStore(RedisClient(pool=redis_pool, key_prefix=settings.STORE_KEY_PREFIX))
    app.state.store = store
    try:
        await store.load()
    except PersistenceError as e:
        # The store stays in its blocking error state; every store-backed endpoint answers 503.
        logger.critical(f"Saved data could not be loaded: {e}")

    yield

    logger.info("Shutting down application...")
    await redis_pool.disconnect()
    logger.info("Redis connection pool closed.")


app = FastAPI(
    title="ClassLens API",
    description="Classroom photo attendance with AI face recognition",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    """Storage failures block the whole application until it is restarted."""
    logger.error(f"Request to {request.url.path} refused, storage is unavailable: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": f"{exc} The application has stopped to avoid working on inconsistent data."}
    )


app.include_router(auth.router, prefix="/api/v1")
app.include_router(teacher.router, prefix="/api/v1")
app.include_router(student.router, prefix="/api/v1")


@app.get("/health", tags=["System"])
def health_check(request: Request):
    """Reports whether the application is up and its stored data is usable."""
    store = getattr(request.app.state, "store", None)
    if store is not None and not store.is_healthy:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "message": store.failure}
        )
    return {"status": "ok", "message": "ClassLens API is running."}
