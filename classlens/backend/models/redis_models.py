from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID


class UserRole(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class UserSessionRedis(BaseModel):
    """
    The logged-in identity stored in Redis for the lifetime of one session.
    For students it also pins which student and classroom the session reads.
    """
    session_id: UUID = Field(..., description="Unique ID for this specific session.")
    role: UserRole
    student_id: Optional[UUID] = None
    classroom_id: Optional[UUID] = None
    session_start_time: datetime = Field(..., description="The time this session began.")
    session_end_time: datetime = Field(..., description="The time this session will expire.")
