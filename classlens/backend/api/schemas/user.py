# classlens/backend/api/schemas/user.py
from pydantic import BaseModel, ConfigDict
from typing import Optional
from uuid import UUID

from ...models.redis_models import UserRole

class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    role: Optional[UserRole] = None

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class SessionResponse(BaseModel):
    role: UserRole
    student_id: Optional[UUID] = None
    classroom_id: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    token: Token
    session: SessionResponse

# Internal representation of JWT data
class TokenData(BaseModel):
    session_id: Optional[UUID] = None
