# classlens/backend/models/domain_models.py

import math
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

UNKNOWN_FACE_NAME = "Unknown"


class Student(BaseModel):
    """
    An enrolled student. The name is the join key against recognition results.
    """
    id: UUID = Field(..., description="Unique identifier of the student")
    name: str
    roll_number: str = Field(..., description="Roll/library id, unique within a classroom")
    # Never written to the persisted roster; survives only for the process lifetime.
    password: Optional[str] = Field(None, exclude=True)
    image_base64: str = Field(..., description="Reference photo, base64 encoded")
    image_type: str = Field(..., description="Mime type of the reference photo")

    @property
    def image_url(self) -> str:
        return f"data:{self.image_type};base64,{self.image_base64}"


class Classroom(BaseModel):
    """
    A classroom and its roster, kept sorted by student name.
    """
    id: UUID
    name: str
    students: List[Student] = Field(default_factory=list)

    def find_student(self, student_id: UUID) -> Optional[Student]:
        return next((s for s in self.students if s.id == student_id), None)

    def find_student_by_name(self, name: str) -> Optional[Student]:
        return next((s for s in self.students if s.name == name), None)

    def sort_students(self):
        self.students.sort(key=lambda s: s.name)


class AttendanceStatus(str, Enum):
    PRESENT = "Present"
    ABSENT = "Absent"

    def toggled(self) -> "AttendanceStatus":
        return AttendanceStatus.ABSENT if self is AttendanceStatus.PRESENT else AttendanceStatus.PRESENT


class AttendanceRecord(BaseModel):
    """
    One student's status inside a report. Name and roll number are copied at
    report creation so history does not change when the roster does.
    """
    student_id: UUID = Field(..., description="Back-reference to the student")
    name: str
    roll_number: str
    status: AttendanceStatus


class BoundingBox(BaseModel):
    """Face box, every coordinate normalized to [0, 1] of the source image."""
    top: float = Field(..., allow_inf_nan=False)
    right: float = Field(..., allow_inf_nan=False)
    bottom: float = Field(..., allow_inf_nan=False)
    left: float = Field(..., allow_inf_nan=False)

    @field_validator("top", "right", "bottom", "left", mode="before")
    @classmethod
    def clamp_to_unit_interval(cls, v):
        if isinstance(v, (int, float)):
            if not math.isfinite(v):
                raise ValueError("Bounding box coordinates must be finite numbers.")
            return min(max(float(v), 0.0), 1.0)
        return v

    @model_validator(mode="after")
    def check_ordering(self):
        if self.left > self.right or self.top > self.bottom:
            raise ValueError("Bounding box must satisfy left <= right and top <= bottom.")
        return self


class DetectedFace(BaseModel):
    id: UUID = Field(..., description="Unique per capture, targets identity corrections")
    name: str = Field(..., description="A roster name or 'Unknown'")
    box: BoundingBox

    @property
    def is_unknown(self) -> bool:
        return self.name == UNKNOWN_FACE_NAME


class RecognitionResult(BaseModel):
    """Parsed answer of one recognition call."""
    present: List[DetectedFace]
    unknown: List[DetectedFace]
    absent: List[str]
    engagement_summary: str


class AttendanceReport(BaseModel):
    """
    The persisted outcome of one capture. Identity and membership never change;
    only record statuses and detected face names do.
    """
    id: UUID
    classroom_id: UUID
    classroom_name: str
    date: datetime = Field(..., description="Capture time, timezone aware")
    period: str = Field(..., description="Free-text session label, e.g. 'Period 1'")
    attendance: List[AttendanceRecord]
    captured_image_data_url: str
    detected_faces: List[DetectedFace] = Field(default_factory=list)
    engagement_summary: str = ""

    def find_record(self, student_id: UUID) -> Optional[AttendanceRecord]:
        return next((r for r in self.attendance if r.student_id == student_id), None)

    def find_face(self, face_id: UUID) -> Optional[DetectedFace]:
        return next((f for f in self.detected_faces if f.id == face_id), None)

    @property
    def present_count(self) -> int:
        return sum(1 for r in self.attendance if r.status is AttendanceStatus.PRESENT)

    @property
    def absent_count(self) -> int:
        return len(self.attendance) - self.present_count
