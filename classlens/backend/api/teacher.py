from fastapi import (
    APIRouter, Depends, HTTPException, status, Response, Request,
    File, Form, UploadFile
)
from typing import List, Optional
from uuid import UUID

from ..services.roster_service import RosterService, UpdateStudentRequest
from ..services.report_service import ReportService, StudentAttendanceEntry
from ..services.errors import ServiceError, NotFoundError
from ..tools.recognition_client import RemoteCallError
from ..tools.image_utils import to_base64
from ..modules.csv_export import build_attendance_csv, build_csv_filename
from ..models.redis_models import UserSessionRedis
from .schemas.classroom import ClassroomCreateRequest, ClassroomResponse, StudentResponse
from .schemas.report import (
    ReportResponse, ReportSummaryResponse, ResolveFaceRequest, IdentificationResponse
)
from .auth import require_teacher
from .dependencies import get_roster_service, get_report_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/teacher", tags=["Teacher Endpoints"])


# --- HELPERS ---

def _to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, RemoteCallError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


async def _read_photo(photo: Optional[UploadFile]):
    if photo is None:
        return b"", ""
    return await photo.read(), photo.content_type or "image/jpeg"


# === PART 1: CLASSROOMS ===

@router.get("/classrooms", response_model=List[ClassroomResponse], summary="List all classrooms with their rosters")
@limiter.limit("60/minute")
async def list_classrooms(request: Request, session: UserSessionRedis = Depends(require_teacher), service: RosterService = Depends(get_roster_service)):
    return [ClassroomResponse.from_classroom(c) for c in service.list_classrooms()]

@router.post("/classrooms", response_model=ClassroomResponse, status_code=status.HTTP_201_CREATED, summary="Create an empty classroom")
@limiter.limit("30/minute")
async def create_classroom(request: Request, create_request: ClassroomCreateRequest, session: UserSessionRedis = Depends(require_teacher), service: RosterService = Depends(get_roster_service)):
    try:
        classroom = await service.create_classroom(create_request.name)
    except ServiceError as e:
        raise _to_http_error(e)
    return ClassroomResponse.from_classroom(classroom)

@router.patch("/classrooms/{classroom_id}", response_model=ClassroomResponse, summary="Rename a classroom")
@limiter.limit("30/minute")
async def rename_classroom(request: Request, classroom_id: UUID, rename_request: ClassroomCreateRequest, session: UserSessionRedis = Depends(require_teacher), service: RosterService = Depends(get_roster_service)):
    try:
        classroom = await service.rename_classroom(classroom_id, rename_request.name)
    except ServiceError as e:
        raise _to_http_error(e)
    return ClassroomResponse.from_classroom(classroom)

@router.delete("/classrooms/{classroom_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a classroom, its roster and all its reports")
@limiter.limit("10/minute")
async def delete_classroom(request: Request, classroom_id: UUID, session: UserSessionRedis = Depends(require_teacher), service: RosterService = Depends(get_roster_service)):
    try:
        await service.delete_classroom(classroom_id)
    except ServiceError as e:
        raise _to_http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# === PART 2: ROSTER ===

@router.post("/classrooms/{classroom_id}/students", response_model=StudentResponse, status_code=status.HTTP_201_CREATED, summary="Enroll a student with a reference photo")
@limiter.limit("60/minute")
async def add_student(
    request: Request,
    classroom_id: UUID,
    name: str = Form(""),
    roll_number: str = Form(""),
    password: str = Form(""),
    photo: Optional[UploadFile] = File(None),
    session: UserSessionRedis = Depends(require_teacher),
    service: RosterService = Depends(get_roster_service)
):
    """Expects `multipart/form-data` with the student's details and a `photo` file."""
    photo_bytes, photo_type = await _read_photo(photo)
    try:
        student = await service.add_student(classroom_id, name, roll_number, password, to_base64(photo_bytes) if photo_bytes else "", photo_type)
    except ServiceError as e:
        raise _to_http_error(e)
    return StudentResponse.from_student(student)

@router.patch("/students/{student_id}", response_model=StudentResponse, summary="Edit a student's name, roll number or password")
@limiter.limit("60/minute")
async def update_student(request: Request, student_id: UUID, update_request: UpdateStudentRequest, session: UserSessionRedis = Depends(require_teacher), service: RosterService = Depends(get_roster_service)):
    try:
        student = await service.update_student(student_id, update_request)
    except ServiceError as e:
        raise _to_http_error(e)
    return StudentResponse.from_student(student)

@router.delete("/students/{student_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Remove a student from the roster")
@limiter.limit("60/minute")
async def remove_student(request: Request, student_id: UUID, session: UserSessionRedis = Depends(require_teacher), service: RosterService = Depends(get_roster_service)):
    try:
        await service.remove_student(student_id)
    except ServiceError as e:
        raise _to_http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/students/{student_id}/history", response_model=List[StudentAttendanceEntry], summary="A student's attendance across all reports of their classroom")
@limiter.limit("60/minute")
async def get_student_history(
    request: Request,
    student_id: UUID,
    session: UserSessionRedis = Depends(require_teacher),
    roster_service: RosterService = Depends(get_roster_service),
    report_service: ReportService = Depends(get_report_service)
):
    try:
        classroom, _ = roster_service.get_student(student_id)
    except ServiceError as e:
        raise _to_http_error(e)
    return report_service.get_student_history(classroom.id, student_id)

# === PART 3: REPORTS ===

@router.post("/classrooms/{classroom_id}/reports", response_model=ReportResponse, status_code=status.HTTP_201_CREATED, summary="Take attendance from a classroom photo")
@limiter.limit("10/minute")
async def take_attendance(
    request: Request,
    classroom_id: UUID,
    period: str = Form(""),
    photo: Optional[UploadFile] = File(None),
    session: UserSessionRedis = Depends(require_teacher),
    service: ReportService = Depends(get_report_service)
):
    """
    Sends the classroom photo to the recognition service and stores the report.
    Expects `multipart/form-data` with `period` and a `photo` file.
    """
    photo_bytes, photo_type = await _read_photo(photo)
    try:
        report = await service.take_attendance(classroom_id, photo_bytes, photo_type, period)
    except (ServiceError, RemoteCallError) as e:
        raise _to_http_error(e)
    return ReportResponse.from_report(report)

@router.get("/classrooms/{classroom_id}/reports", response_model=List[ReportSummaryResponse], summary="Report history of a classroom, newest first")
@limiter.limit("60/minute")
async def list_reports(request: Request, classroom_id: UUID, session: UserSessionRedis = Depends(require_teacher), service: ReportService = Depends(get_report_service)):
    return [ReportSummaryResponse.from_report(r) for r in service.list_reports(classroom_id)]

@router.get("/reports/{report_id}", response_model=ReportResponse, summary="A full attendance report")
@limiter.limit("60/minute")
async def get_report(request: Request, report_id: UUID, session: UserSessionRedis = Depends(require_teacher), service: ReportService = Depends(get_report_service)):
    try:
        return ReportResponse.from_report(service.get_report(report_id))
    except ServiceError as e:
        raise _to_http_error(e)

@router.get("/reports/{report_id}/export.csv", summary="Download a report as CSV")
@limiter.limit("30/minute")
async def export_report_csv(request: Request, report_id: UUID, session: UserSessionRedis = Depends(require_teacher), service: ReportService = Depends(get_report_service)):
    try:
        report = service.get_report(report_id)
    except ServiceError as e:
        raise _to_http_error(e)
    return Response(
        content=build_attendance_csv(report.attendance),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{build_csv_filename(report)}"'}
    )

# --- Corrections ---

@router.post("/reports/{report_id}/records/{student_id}/toggle", response_model=Optional[ReportResponse], summary="Flip a student between Present and Absent")
@limiter.limit("200/minute")
async def toggle_status(request: Request, report_id: UUID, student_id: UUID, session: UserSessionRedis = Depends(require_teacher), service: ReportService = Depends(get_report_service)):
    """Unknown ids are ignored; the response is null when the report no longer exists."""
    report = await service.toggle_status(report_id, student_id)
    return ReportResponse.from_report(report) if report else None

@router.post("/reports/{report_id}/faces/{face_id}/identify", response_model=IdentificationResponse, summary="Ask the AI who an unknown face is")
@limiter.limit("20/minute")
async def identify_face(request: Request, report_id: UUID, face_id: UUID, session: UserSessionRedis = Depends(require_teacher), service: ReportService = Depends(get_report_service)):
    try:
        result = await service.identify_face(report_id, face_id)
    except (ServiceError, RemoteCallError) as e:
        raise _to_http_error(e)
    return IdentificationResponse(**result.model_dump())

@router.post("/reports/{report_id}/faces/{face_id}/resolve", response_model=Optional[ReportResponse], summary="Confirm who an unknown face is")
@limiter.limit("200/minute")
async def resolve_unknown_face(request: Request, report_id: UUID, face_id: UUID, resolve_request: ResolveFaceRequest, session: UserSessionRedis = Depends(require_teacher), service: ReportService = Depends(get_report_service)):
    """Marks the student present and relabels the face; does nothing when the name matches no student."""
    report = await service.resolve_unknown_face(report_id, face_id, resolve_request.confirmed_name)
    return ReportResponse.from_report(report) if report else None
