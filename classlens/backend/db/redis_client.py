import logging
from typing import List, Optional
from uuid import UUID
import redis.asyncio as redis
from redis.exceptions import RedisError
from pydantic import TypeAdapter, ValidationError

from ..models.domain_models import Classroom, AttendanceReport
from ..models.redis_models import UserSessionRedis

logger = logging.getLogger(__name__)

_classrooms_adapter = TypeAdapter(List[Classroom])
_reports_adapter = TypeAdapter(List[AttendanceReport])


class PersistenceError(Exception):
    """Raised when durable state cannot be read or written."""
    pass


class RedisClient:
    """
    Redis client for user sessions and the two durable collections
    (classroom roster and attendance reports).
    """

    def __init__(self, pool: redis.ConnectionPool, key_prefix: str = "classlens"):
        self._redis = redis.Redis(connection_pool=pool, decode_responses=True)
        self._prefix = key_prefix

    @property
    def classrooms_key(self) -> str:
        return f"{self._prefix}:classrooms"

    @property
    def reports_key(self) -> str:
        return f"{self._prefix}:attendance_reports"

    # ===== User Session Management =====

    async def save_user_session(self, session: UserSessionRedis, ttl: int):
        """Stores the session with a TTL."""
        key = f"{self._prefix}:sessions:{session.session_id}"
        await self._redis.set(key, session.model_dump_json(), ex=ttl)

    async def get_user_session(self, session_id: UUID) -> Optional[UserSessionRedis]:
        key = f"{self._prefix}:sessions:{session_id}"
        session_json = await self._redis.get(key)
        return UserSessionRedis.model_validate_json(session_json) if session_json else None

    async def delete_user_session(self, session_id: UUID) -> int:
        key = f"{self._prefix}:sessions:{session_id}"
        return await self._redis.delete(key)

    # ===== Durable State =====

    async def load_classrooms(self) -> List[Classroom]:
        """Reads the roster collection. A missing key means an empty roster."""
        raw = await self._get_raw(self.classrooms_key)
        if raw is None:
            return []
        try:
            return _classrooms_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error("Stored classroom data is corrupted.", exc_info=True)
            raise PersistenceError("Could not load saved classrooms.") from e

    async def load_reports(self) -> List[AttendanceReport]:
        """Reads the report collection. A missing key means no history."""
        raw = await self._get_raw(self.reports_key)
        if raw is None:
            return []
        try:
            return _reports_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error("Stored attendance reports are corrupted.", exc_info=True)
            raise PersistenceError("Could not load saved attendance reports.") from e

    async def save_state(self, classrooms: List[Classroom], reports: List[AttendanceReport]):
        """
        Writes both collections in one MULTI/EXEC transaction so a reader never
        sees a roster and a report list from different mutations.
        """
        classrooms_json = _classrooms_adapter.dump_json(classrooms).decode("utf-8")
        reports_json = _reports_adapter.dump_json(reports).decode("utf-8")
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(self.classrooms_key, classrooms_json)
                pipe.set(self.reports_key, reports_json)
                await pipe.execute()
        except RedisError as e:
            logger.error("Failed to write state to Redis.", exc_info=True)
            raise PersistenceError("Could not save your changes.") from e

    async def _get_raw(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except RedisError as e:
            logger.error(f"Failed to read '{key}' from Redis.", exc_info=True)
            raise PersistenceError("Could not load saved data.") from e
