from pydantic import BaseModel, Field
from uuid import UUID
from typing import List

from ...models.domain_models import Classroom, Student

class ClassroomCreateRequest(BaseModel):
    """Request model for creating or renaming a classroom."""
    name: str = Field(..., description="Display name, e.g. 'Grade 5 - B'.")

class StudentResponse(BaseModel):
    """A roster entry as shown to the teacher. The password is never returned."""
    id: UUID
    name: str
    roll_number: str
    image_url: str = Field(description="Reference photo as a data URL.")

    @classmethod
    def from_student(cls, student: Student) -> "StudentResponse":
        return cls(id=student.id, name=student.name, roll_number=student.roll_number, image_url=student.image_url)

class ClassroomResponse(BaseModel):
    id: UUID
    name: str
    students: List[StudentResponse]

    @classmethod
    def from_classroom(cls, classroom: Classroom) -> "ClassroomResponse":
        return cls(
            id=classroom.id,
            name=classroom.name,
            students=[StudentResponse.from_student(s) for s in classroom.students]
        )

class StudentProfileResponse(StudentResponse):
    """The read-only profile a student sees on their dashboard."""
    classroom_id: UUID
    classroom_name: str
