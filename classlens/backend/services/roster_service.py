import hmac
import logging
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from pydantic import BaseModel

from ..db.attendance_store import AttendanceStore
from ..models.domain_models import Classroom, Student
from .errors import ValidationError, NotFoundError

logger = logging.getLogger(__name__)


class UpdateStudentRequest(BaseModel):
    """Edits a student; the password only changes when a new non-empty one is given."""
    name: str
    roll_number: str
    new_password: Optional[str] = None


def _require(value: Optional[str], field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field_name} cannot be empty.")
    return cleaned


def _check_unique(classroom: Classroom, name: str, roll_number: str, ignore_id: Optional[UUID] = None):
    for other in classroom.students:
        if other.id == ignore_id:
            continue
        if other.name == name:
            raise ValidationError(f"A student named '{name}' is already enrolled in this classroom.")
        if other.roll_number == roll_number:
            raise ValidationError(f"Roll number '{roll_number}' is already used in this classroom.")


class RosterService:
    """
    Classroom and student management. Every mutation runs inside a store
    mutation so it is saved together with the report history.
    """
    def __init__(self, store: AttendanceStore):
        self.store = store

    # ===== Classrooms =====

    def list_classrooms(self) -> List[Classroom]:
        self.store.ensure_healthy()
        return list(self.store.classrooms)

    def get_classroom(self, classroom_id: UUID) -> Classroom:
        classroom = self.store.get_classroom(classroom_id)
        if not classroom:
            raise NotFoundError("Classroom not found.")
        return classroom

    async def create_classroom(self, name: str) -> Classroom:
        name = _require(name, "Classroom name")
        classroom = Classroom(id=uuid4(), name=name, students=[])
        async with self.store.mutation() as store:
            store.classrooms.append(classroom)
        logger.info(f"Classroom '{name}' ({classroom.id}) created.")
        return classroom

    async def rename_classroom(self, classroom_id: UUID, name: str) -> Classroom:
        name = _require(name, "Classroom name")
        async with self.store.mutation() as store:
            classroom = self.get_classroom(classroom_id)
            classroom.name = name
        logger.info(f"Classroom {classroom_id} renamed to '{name}'.")
        return classroom

    async def delete_classroom(self, classroom_id: UUID) -> int:
        """Deletes the classroom, its students and every report that references it."""
        async with self.store.mutation() as store:
            classroom = self.get_classroom(classroom_id)
            store.classrooms = [c for c in store.classrooms if c.id != classroom.id]
            remaining = [r for r in store.reports if r.classroom_id != classroom.id]
            removed_reports = len(store.reports) - len(remaining)
            store.reports = remaining
        logger.info(f"Classroom {classroom_id} deleted together with {removed_reports} reports.")
        return removed_reports

    # ===== Students =====

    async def add_student(self, classroom_id: UUID, name: str, roll_number: str, password: str, image_base64: str, image_type: str) -> Student:
        name = _require(name, "Student name")
        roll_number = _require(roll_number, "Roll number")
        password = _require(password, "Password")
        if not image_base64 or not image_type:
            raise ValidationError("A reference photo is required.")

        async with self.store.mutation():
            classroom = self.get_classroom(classroom_id)
            _check_unique(classroom, name, roll_number)
            student = Student(
                id=uuid4(), name=name, roll_number=roll_number, password=password,
                image_base64=image_base64, image_type=image_type
            )
            classroom.students.append(student)
            classroom.sort_students()
        logger.info(f"Student '{name}' ({student.id}) enrolled in classroom {classroom_id}.")
        return student

    async def update_student(self, student_id: UUID, update: UpdateStudentRequest) -> Student:
        name = _require(update.name, "Student name")
        roll_number = _require(update.roll_number, "Roll number")

        async with self.store.mutation() as store:
            classroom = store.find_student_classroom(student_id)
            if not classroom:
                raise NotFoundError("Student not found.")
            _check_unique(classroom, name, roll_number, ignore_id=student_id)
            student = classroom.find_student(student_id)
            student.name = name
            student.roll_number = roll_number
            if update.new_password:
                student.password = update.new_password
            classroom.sort_students()
        logger.info(f"Student {student_id} updated.")
        return student

    async def remove_student(self, student_id: UUID):
        """Removes the student from the roster. Existing reports keep their copies."""
        async with self.store.mutation() as store:
            classroom = store.find_student_classroom(student_id)
            if not classroom:
                raise NotFoundError("Student not found.")
            classroom.students = [s for s in classroom.students if s.id != student_id]
        logger.info(f"Student {student_id} removed from classroom {classroom.id}.")

    def get_student(self, student_id: UUID) -> Tuple[Classroom, Student]:
        classroom = self.store.find_student_classroom(student_id)
        if not classroom:
            raise NotFoundError("Student not found.")
        return classroom, classroom.find_student(student_id)

    def find_student_by_credentials(self, roll_number: str, password: str) -> Optional[Tuple[Classroom, Student]]:
        """First student in any classroom whose roll number and password both match."""
        self.store.ensure_healthy()
        for classroom in self.store.classrooms:
            for student in classroom.students:
                if student.roll_number != roll_number or student.password is None:
                    continue
                if hmac.compare_digest(student.password.encode("utf-8"), password.encode("utf-8")):
                    return classroom, student
        return None
