#classlens/backend/api/dependencies.py
from fastapi import Request, Depends
import redis.asyncio as redis

from ..config.config import settings
from ..db.redis_client import RedisClient
from ..db.attendance_store import AttendanceStore
from ..tools.recognition_client import RecognitionClient
from ..services.roster_service import RosterService
from ..services.report_service import ReportService


def get_redis_pool(request: Request) -> redis.ConnectionPool:
    """
    Provides the Redis connection pool created in the application lifespan.
    """
    return request.app.state.redis_pool


def get_redis_client(redis_pool: redis.ConnectionPool = Depends(get_redis_pool)) -> RedisClient:
    return RedisClient(pool=redis_pool, key_prefix=settings.STORE_KEY_PREFIX)


def get_store(request: Request) -> AttendanceStore:
    """
    Provides the shared store. Raises PersistenceError once the store is in
    its blocking error state, which the app turns into a 503.
    """
    store: AttendanceStore = request.app.state.store
    store.ensure_healthy()
    return store


def get_recognition_client(request: Request) -> RecognitionClient:
    return request.app.state.recognition_client


def get_roster_service(store: AttendanceStore = Depends(get_store)) -> RosterService:
    """
    Builds a RosterService for each request on top of the shared store.
    """
    return RosterService(store=store)


def get_report_service(
    store: AttendanceStore = Depends(get_store),
    recognition_client: RecognitionClient = Depends(get_recognition_client)
) -> ReportService:
    """
    Builds a ReportService for each request, same as the roster service, with
    the shared recognition client.
    """
    return ReportService(store=store, recognition_client=recognition_client)
