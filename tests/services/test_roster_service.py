import pytest
import uuid

from classlens.backend.services.roster_service import RosterService, UpdateStudentRequest
from classlens.backend.services.report_service import build_report
from classlens.backend.services.errors import ValidationError, NotFoundError
from classlens.backend.models.domain_models import RecognitionResult

# --- Test Fixtures ---

@pytest.fixture
def service(store) -> RosterService:
    return RosterService(store=store)

def empty_result() -> RecognitionResult:
    return RecognitionResult(present=[], unknown=[], absent=[], engagement_summary="")

# --- Test Scenarios ---

@pytest.mark.asyncio
class TestClassrooms:

    async def test_create_classroom_trims_name_and_saves(self, service, store, mock_redis_client):
        classroom = await service.create_classroom("  History  ")

        assert classroom.name == "History"
        assert classroom.students == []
        assert store.classrooms == [classroom]
        mock_redis_client.save_state.assert_awaited_once_with(store.classrooms, store.reports)

    async def test_create_classroom_with_blank_name_is_rejected(self, service, store, mock_redis_client):
        with pytest.raises(ValidationError, match="Classroom name cannot be empty."):
            await service.create_classroom("   ")
        assert store.classrooms == []
        mock_redis_client.save_state.assert_not_called()

    async def test_rename_classroom(self, service, classroom_with_students):
        await service.rename_classroom(classroom_with_students.id, "Grade 6")
        assert classroom_with_students.name == "Grade 6"

    async def test_rename_classroom_blank_or_missing(self, service, classroom_with_students):
        with pytest.raises(ValidationError):
            await service.rename_classroom(classroom_with_students.id, "")
        with pytest.raises(NotFoundError):
            await service.rename_classroom(uuid.uuid4(), "Grade 6")
        assert classroom_with_students.name == "Grade 5"

    async def test_delete_classroom_cascades_reports(self, service, store, classroom_with_students, make_student):
        other = await service.create_classroom("Other")
        await service.add_student(other.id, "Cid", "9", "pw", "aGVsbG8=", "image/jpeg")
        for _ in range(2):
            store.insert_report(build_report(classroom_with_students, classroom_with_students.students, empty_result(), "data:,", "P"))
        kept = build_report(other, other.students, empty_result(), "data:,", "P")
        store.insert_report(kept)

        removed = await service.delete_classroom(classroom_with_students.id)

        assert removed == 2
        assert store.classrooms == [other]
        assert store.reports == [kept]

    async def test_delete_missing_classroom(self, service, mock_redis_client):
        with pytest.raises(NotFoundError):
            await service.delete_classroom(uuid.uuid4())
        mock_redis_client.save_state.assert_not_called()


@pytest.mark.asyncio
class TestStudents:

    async def test_add_student_keeps_roster_sorted(self, service, classroom_with_students):
        student = await service.add_student(classroom_with_students.id, " Aaron ", " 7 ", "pw", "aGVsbG8=", "image/png")

        assert student.name == "Aaron"
        assert student.roll_number == "7"
        assert student.image_url == "data:image/png;base64,aGVsbG8="
        assert [s.name for s in classroom_with_students.students] == ["Aaron", "Ann", "Bob"]

    @pytest.mark.parametrize("name, roll, password, image", [
        ("", "7", "pw", "aGVsbG8="),
        ("Cid", " ", "pw", "aGVsbG8="),
        ("Cid", "7", "", "aGVsbG8="),
        ("Cid", "7", "pw", ""),
    ])
    async def test_add_student_requires_every_field(self, service, classroom_with_students, name, roll, password, image):
        with pytest.raises(ValidationError):
            await service.add_student(classroom_with_students.id, name, roll, password, image, "image/jpeg")
        assert len(classroom_with_students.students) == 2

    async def test_add_student_rejects_duplicate_name_or_roll(self, service, classroom_with_students):
        with pytest.raises(ValidationError, match="named 'Ann'"):
            await service.add_student(classroom_with_students.id, "Ann", "99", "pw", "aGVsbG8=", "image/jpeg")
        with pytest.raises(ValidationError, match="Roll number '2'"):
            await service.add_student(classroom_with_students.id, "Cid", "2", "pw", "aGVsbG8=", "image/jpeg")

    async def test_same_name_allowed_in_other_classroom(self, service, classroom_with_students):
        other = await service.create_classroom("Other")
        student = await service.add_student(other.id, "Ann", "1", "pw", "aGVsbG8=", "image/jpeg")
        assert other.students == [student]

    async def test_update_student_changes_fields_and_resorts(self, service, classroom_with_students):
        ann = classroom_with_students.find_student_by_name("Ann")

        await service.update_student(ann.id, UpdateStudentRequest(name="Zara", roll_number="11"))

        assert ann.name == "Zara"
        assert ann.roll_number == "11"
        assert ann.password == "secret"
        assert [s.name for s in classroom_with_students.students] == ["Bob", "Zara"]

    async def test_update_student_password_only_when_given(self, service, classroom_with_students):
        bob = classroom_with_students.find_student_by_name("Bob")

        await service.update_student(bob.id, UpdateStudentRequest(name="Bob", roll_number="2", new_password=""))
        assert bob.password == "secret"
        await service.update_student(bob.id, UpdateStudentRequest(name="Bob", roll_number="2", new_password="n3w"))
        assert bob.password == "n3w"

    async def test_update_student_duplicate_and_missing(self, service, classroom_with_students):
        bob = classroom_with_students.find_student_by_name("Bob")
        with pytest.raises(ValidationError):
            await service.update_student(bob.id, UpdateStudentRequest(name="Ann", roll_number="2"))
        with pytest.raises(NotFoundError):
            await service.update_student(uuid.uuid4(), UpdateStudentRequest(name="X", roll_number="3"))

    async def test_remove_student_keeps_report_copies(self, service, store, classroom_with_students):
        ann = classroom_with_students.find_student_by_name("Ann")
        report = build_report(classroom_with_students, classroom_with_students.students, empty_result(), "data:,", "P")
        store.insert_report(report)

        await service.remove_student(ann.id)

        assert classroom_with_students.find_student(ann.id) is None
        assert report.find_record(ann.id).name == "Ann"
        with pytest.raises(NotFoundError):
            await service.remove_student(ann.id)

    async def test_get_student(self, service, classroom_with_students):
        bob = classroom_with_students.find_student_by_name("Bob")
        classroom, student = service.get_student(bob.id)
        assert classroom is classroom_with_students
        assert student is bob
        with pytest.raises(NotFoundError):
            service.get_student(uuid.uuid4())

    async def test_find_student_by_credentials(self, service, classroom_with_students):
        bob = classroom_with_students.find_student_by_name("Bob")

        assert service.find_student_by_credentials("2", "secret") == (classroom_with_students, bob)
        assert service.find_student_by_credentials("2", "wrong") is None
        assert service.find_student_by_credentials("404", "secret") is None

    async def test_passwords_are_not_serialized(self, classroom_with_students):
        dumped = classroom_with_students.model_dump(mode="json")
        assert all("password" not in s for s in dumped["students"])
