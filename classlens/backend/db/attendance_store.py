import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from .redis_client import RedisClient, PersistenceError
from ..models.domain_models import Classroom, AttendanceReport

logger = logging.getLogger(__name__)


class AttendanceStore:
    """
    The in-memory roster and report history, backed by Redis.

    Every change goes through `mutation()`, which serializes writers with a
    single lock and persists the complete post-mutation state before the lock
    is released. Once a load or save fails the store refuses all further use
    until the process is restarted.
    """

    def __init__(self, redis_client: RedisClient):
        self.redis_client = redis_client
        self.classrooms: List[Classroom] = []
        self.reports: List[AttendanceReport] = []
        self.failure: Optional[str] = None
        self._lock = asyncio.Lock()

    async def load(self):
        try:
            classrooms = await self.redis_client.load_classrooms()
            reports = await self.redis_client.load_reports()
        except PersistenceError as e:
            self.failure = str(e)
            raise
        self.classrooms = classrooms
        self.reports = sorted(reports, key=lambda r: r.date, reverse=True)
        logger.info(f"Loaded {len(self.classrooms)} classrooms and {len(self.reports)} reports from Redis.")

    @property
    def is_healthy(self) -> bool:
        return self.failure is None

    def ensure_healthy(self):
        if self.failure is not None:
            raise PersistenceError(self.failure)

    @asynccontextmanager
    async def mutation(self) -> AsyncIterator["AttendanceStore"]:
        """
        Runs one mutation under the store lock and saves afterwards. If the body
        raises, nothing is written.
        """
        self.ensure_healthy()
        async with self._lock:
            self.ensure_healthy()
            yield self
            try:
                await self.redis_client.save_state(self.classrooms, self.reports)
            except PersistenceError as e:
                self.failure = str(e)
                logger.critical("State could not be persisted; the store is now read-blocked.")
                raise

    # ===== Lookups =====

    def get_classroom(self, classroom_id) -> Optional[Classroom]:
        self.ensure_healthy()
        return next((c for c in self.classrooms if c.id == classroom_id), None)

    def get_report(self, report_id) -> Optional[AttendanceReport]:
        self.ensure_healthy()
        return next((r for r in self.reports if r.id == report_id), None)

    def find_student_classroom(self, student_id) -> Optional[Classroom]:
        self.ensure_healthy()
        return next((c for c in self.classrooms if c.find_student(student_id)), None)

    def reports_for_classroom(self, classroom_id) -> List[AttendanceReport]:
        self.ensure_healthy()
        return [r for r in self.reports if r.classroom_id == classroom_id]

    def insert_report(self, report: AttendanceReport):
        """Adds a report and keeps history ordered newest first."""
        self.reports.insert(0, report)
        self.reports.sort(key=lambda r: r.date, reverse=True)
