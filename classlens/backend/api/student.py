from fastapi import APIRouter, Depends, HTTPException, status, Request
from typing import List

from ..services.roster_service import RosterService
from ..services.report_service import ReportService, StudentAttendanceEntry
from ..services.errors import NotFoundError
from ..models.redis_models import UserSessionRedis
from .schemas.classroom import StudentProfileResponse
from .auth import require_student
from .dependencies import get_roster_service, get_report_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/student", tags=["Student Endpoints"])

PROFILE_NOT_FOUND = "Could not find student profile. Please log out and try again."


def _get_own_profile(session: UserSessionRedis, service: RosterService) -> StudentProfileResponse:
    try:
        classroom, student = service.get_student(session.student_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PROFILE_NOT_FOUND)
    if classroom.id != session.classroom_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PROFILE_NOT_FOUND)
    return StudentProfileResponse(
        id=student.id,
        name=student.name,
        roll_number=student.roll_number,
        image_url=student.image_url,
        classroom_id=classroom.id,
        classroom_name=classroom.name,
    )


@router.get("/me", response_model=StudentProfileResponse, summary="My profile")
@limiter.limit("60/minute")
async def get_my_profile(
    request: Request,
    session: UserSessionRedis = Depends(require_student),
    service: RosterService = Depends(get_roster_service)
):
    return _get_own_profile(session, service)


@router.get("/me/attendance", response_model=List[StudentAttendanceEntry], summary="My attendance history, newest first")
@limiter.limit("60/minute")
async def get_my_attendance(
    request: Request,
    session: UserSessionRedis = Depends(require_student),
    roster_service: RosterService = Depends(get_roster_service),
    report_service: ReportService = Depends(get_report_service)
):
    """Read-only view of every report in my classroom that has a record for me."""
    _get_own_profile(session, roster_service)
    return report_service.get_student_history(session.classroom_id, session.student_id)
