import asyncio
import uuid
import pytest
from datetime import datetime, timedelta, timezone

from classlens.backend.db.redis_client import PersistenceError
from classlens.backend.models.domain_models import AttendanceReport, Classroom


def report_at(classroom_id, when: datetime) -> AttendanceReport:
    return AttendanceReport(
        id=uuid.uuid4(), classroom_id=classroom_id, classroom_name="Grade 5",
        date=when, period="P", attendance=[], captured_image_data_url="data:,"
    )


@pytest.mark.asyncio
class TestAttendanceStore:

    async def test_load_sorts_reports_newest_first(self, store, mock_redis_client):
        classroom = Classroom(id=uuid.uuid4(), name="Grade 5")
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        reports = [report_at(classroom.id, base + timedelta(days=d)) for d in (1, 3, 2)]
        mock_redis_client.load_classrooms.return_value = [classroom]
        mock_redis_client.load_reports.return_value = reports

        await store.load()

        assert store.classrooms == [classroom]
        assert [r.date.day for r in store.reports] == [4, 3, 2]
        assert store.is_healthy

    async def test_load_failure_blocks_the_store(self, store, mock_redis_client):
        mock_redis_client.load_classrooms.side_effect = PersistenceError("Could not load saved classrooms.")

        with pytest.raises(PersistenceError):
            await store.load()

        assert store.failure == "Could not load saved classrooms."
        with pytest.raises(PersistenceError):
            store.get_classroom(uuid.uuid4())
        with pytest.raises(PersistenceError):
            async with store.mutation():
                pass

    async def test_mutation_saves_after_the_body(self, store, mock_redis_client):
        classroom = Classroom(id=uuid.uuid4(), name="Grade 5")

        async with store.mutation() as s:
            s.classrooms.append(classroom)
            mock_redis_client.save_state.assert_not_called()

        mock_redis_client.save_state.assert_awaited_once_with([classroom], [])

    async def test_failing_body_writes_nothing(self, store, mock_redis_client):
        with pytest.raises(ValueError):
            async with store.mutation():
                raise ValueError("boom")

        mock_redis_client.save_state.assert_not_called()
        assert store.is_healthy

    async def test_failed_save_blocks_the_store(self, store, mock_redis_client):
        mock_redis_client.save_state.side_effect = PersistenceError("Could not save your changes.")

        with pytest.raises(PersistenceError):
            async with store.mutation():
                pass

        assert not store.is_healthy
        with pytest.raises(PersistenceError):
            store.ensure_healthy()

    async def test_mutations_are_serialized(self, store, mock_redis_client):
        order = []

        async def writer(label: str):
            async with store.mutation():
                order.append(f"{label}-start")
                await asyncio.sleep(0)
                order.append(f"{label}-end")

        await asyncio.gather(writer("a"), writer("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]

    async def test_insert_report_keeps_newest_first(self, store):
        classroom_id = uuid.uuid4()
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        late = report_at(classroom_id, base + timedelta(hours=5))
        early = report_at(classroom_id, base)

        store.insert_report(late)
        store.insert_report(early)

        assert store.reports == [late, early]
        assert store.reports_for_classroom(classroom_id) == [late, early]
        assert store.reports_for_classroom(uuid.uuid4()) == []
