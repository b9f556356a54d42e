from pydantic import BaseModel, Field, ConfigDict
from uuid import UUID
from datetime import datetime
from typing import List

from ...models.domain_models import AttendanceRecord, AttendanceReport, DetectedFace

class ResolveFaceRequest(BaseModel):
    """Request model for confirming who an unknown face is."""
    confirmed_name: str = Field(..., description="Roster name of the student the face belongs to.")

class ReportSummaryResponse(BaseModel):
    """A history entry, without the embedded photo."""
    id: UUID
    classroom_id: UUID
    classroom_name: str
    date: datetime
    period: str
    total_students: int
    present_count: int
    absent_count: int

    @classmethod
    def from_report(cls, report: AttendanceReport) -> "ReportSummaryResponse":
        return cls(
            id=report.id,
            classroom_id=report.classroom_id,
            classroom_name=report.classroom_name,
            date=report.date,
            period=report.period,
            total_students=len(report.attendance),
            present_count=report.present_count,
            absent_count=report.absent_count,
        )

class ReportResponse(ReportSummaryResponse):
    """The full report including records, detected faces and photo."""
    attendance: List[AttendanceRecord]
    detected_faces: List[DetectedFace]
    captured_image_data_url: str
    engagement_summary: str

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_report(cls, report: AttendanceReport) -> "ReportResponse":
        summary = ReportSummaryResponse.from_report(report)
        return cls(
            **summary.model_dump(),
            attendance=report.attendance,
            detected_faces=report.detected_faces,
            captured_image_data_url=report.captured_image_data_url,
            engagement_summary=report.engagement_summary,
        )

class IdentificationResponse(BaseModel):
    face_id: UUID
    suggestion: str
    cropped_image_data_url: str
