import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel

from ..db.attendance_store import AttendanceStore
from ..models.domain_models import (
    Classroom, Student, RecognitionResult,
    AttendanceRecord, AttendanceReport, AttendanceStatus
)
from ..tools.recognition_client import RecognitionClient
from ..tools.image_utils import (
    crop_image, parse_data_url, to_base64, to_data_url, ImageProcessingError
)
from .errors import ServiceError, ValidationError, NotFoundError

logger = logging.getLogger(__name__)


class IdentificationResult(BaseModel):
    """A suggestion for one unknown face, with the crop that was sent."""
    face_id: UUID
    suggestion: str
    cropped_image_data_url: str


class StudentAttendanceEntry(BaseModel):
    """One line of a student's attendance history."""
    report_id: UUID
    period: str
    date: datetime
    status: AttendanceStatus


def build_report(classroom: Classroom, students: List[Student], result: RecognitionResult, image_data_url: str, period: str, now: Optional[datetime] = None) -> AttendanceReport:
    """
    Turns one recognition result into a complete report. The remote service
    only knows names, so presence is decided by exact name match.
    """
    present_names = {face.name for face in result.present}
    attendance = sorted(
        (
            AttendanceRecord(
                student_id=student.id,
                name=student.name,
                roll_number=student.roll_number,
                status=AttendanceStatus.PRESENT if student.name in present_names else AttendanceStatus.ABSENT,
            )
            for student in students
        ),
        key=lambda record: record.name,
    )
    return AttendanceReport(
        id=uuid4(),
        classroom_id=classroom.id,
        classroom_name=classroom.name,
        date=now or datetime.now(timezone.utc),
        period=period,
        attendance=attendance,
        captured_image_data_url=image_data_url,
        detected_faces=[*result.present, *result.unknown],
        engagement_summary=result.engagement_summary,
    )


class ReportService:
    """
    Creates attendance reports from classroom photos and applies the teacher's
    corrections to them.
    """
    def __init__(self, store: AttendanceStore, recognition_client: RecognitionClient):
        self.store = store
        self.recognition_client = recognition_client

    # ===== Report creation =====

    async def take_attendance(self, classroom_id: UUID, image_bytes: bytes, image_type: str, period: str) -> AttendanceReport:
        """
        Sends the photo for recognition and stores the resulting report. A failed
        remote call leaves the history untouched.
        """
        period = (period or "").strip()
        if not period:
            raise ValidationError("Please enter a period or subject name.")
        if not image_bytes:
            raise ValidationError("Please upload a classroom photo.")

        classroom = self.store.get_classroom(classroom_id)
        if not classroom:
            raise NotFoundError("Classroom not found.")
        # Roster as it stands when the photo is submitted.
        students = [student.model_copy() for student in classroom.students]
        if not students:
            raise ValidationError("The roster has no students. Add students before taking attendance.")

        result = await self.recognition_client.recognize(to_base64(image_bytes), image_type, students)

        async with self.store.mutation() as store:
            current = store.get_classroom(classroom_id)
            if not current:
                raise NotFoundError("The classroom was deleted while attendance was being taken.")
            report = build_report(current, students, result, to_data_url(image_bytes, image_type), period)
            store.insert_report(report)

        logger.info(f"Report {report.id} created for classroom {classroom_id}: {report.present_count}/{len(report.attendance)} present.")
        return report

    # ===== Queries =====

    def list_reports(self, classroom_id: UUID) -> List[AttendanceReport]:
        return self.store.reports_for_classroom(classroom_id)

    def get_report(self, report_id: UUID) -> AttendanceReport:
        report = self.store.get_report(report_id)
        if not report:
            raise NotFoundError("Report not found.")
        return report

    def get_student_history(self, classroom_id: UUID, student_id: UUID) -> List[StudentAttendanceEntry]:
        """Every report of the classroom that has a record for the student, newest first."""
        entries = []
        for report in self.store.reports_for_classroom(classroom_id):
            record = report.find_record(student_id)
            if record:
                entries.append(StudentAttendanceEntry(report_id=report.id, period=report.period, date=report.date, status=record.status))
        entries.sort(key=lambda entry: entry.date, reverse=True)
        return entries

    # ===== Corrections =====

    async def toggle_status(self, report_id: UUID, student_id: UUID) -> Optional[AttendanceReport]:
        """
        Flips one record between Present and Absent. Unknown report or student
        ids are ignored and None is returned.
        """
        async with self.store.mutation() as store:
            report = store.get_report(report_id)
            record = report.find_record(student_id) if report else None
            if record:
                record.status = record.status.toggled()
        if not record:
            logger.warning(f"Ignored status toggle for missing record (report {report_id}, student {student_id}).")
            return report
        logger.info(f"Student {student_id} in report {report_id} is now {record.status.value}.")
        return report

    async def resolve_unknown_face(self, report_id: UUID, face_id: UUID, confirmed_name: str) -> Optional[AttendanceReport]:
        """
        Confirms who an unknown face is: toggles the matching student's record and
        relabels the face. Both changes happen together or not at all.
        """
        async with self.store.mutation() as store:
            report = store.get_report(report_id)
            if not report:
                logger.warning(f"Ignored face resolution for missing report {report_id}.")
                return None
            classroom = store.get_classroom(report.classroom_id)
            student = classroom.find_student_by_name(confirmed_name) if classroom else None
            record = report.find_record(student.id) if student else None
            face = report.find_face(face_id)
            if not (record and face):
                logger.warning(f"Face {face_id} in report {report_id} left unchanged; no match for '{confirmed_name}'.")
                return report
            record.status = record.status.toggled()
            face.name = student.name
        logger.info(f"Face {face_id} in report {report_id} confirmed as '{student.name}'.")
        return report

    async def identify_face(self, report_id: UUID, face_id: UUID) -> IdentificationResult:
        """
        Crops the face out of the report photo and asks the remote service which
        of the students recorded absent it most likely is.
        """
        report = self.get_report(report_id)
        face = report.find_face(face_id)
        if not face:
            raise NotFoundError("Face not found in this report.")

        try:
            image_bytes, _ = parse_data_url(report.captured_image_data_url)
            cropped_bytes, cropped_type = crop_image(image_bytes, face.box)
        except ImageProcessingError as e:
            logger.error(f"Could not crop face {face_id} from report {report_id}.", exc_info=True)
            raise ServiceError("Failed to crop the face from the captured image.") from e

        absent_names = {r.name for r in report.attendance if r.status is AttendanceStatus.ABSENT}
        classroom = self.store.get_classroom(report.classroom_id)
        roster = classroom.students if classroom else []
        candidate_names = [s.name for s in roster if s.name in absent_names]

        suggestion = await self.recognition_client.identify(to_base64(cropped_bytes), cropped_type, candidate_names)
        logger.info(f"Identification for face {face_id} in report {report_id}: '{suggestion}'.")
        return IdentificationResult(
            face_id=face_id,
            suggestion=suggestion,
            cropped_image_data_url=to_data_url(cropped_bytes, cropped_type),
        )
