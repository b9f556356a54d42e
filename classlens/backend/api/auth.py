import logging
from fastapi import APIRouter, Depends, HTTPException, status, Response, Request
from fastapi.security import OAuth2PasswordBearer
from datetime import datetime, timedelta, timezone
from uuid import uuid4
import jwt
from pydantic import ValidationError as PydanticValidationError

from .schemas.user import Token, TokenData, LoginRequest, LoginResponse, SessionResponse
from ..models.redis_models import UserSessionRedis, UserRole
from ..db.redis_client import RedisClient
from ..services.roster_service import RosterService
from ..services.errors import ValidationError
from ..config.config import settings
from .dependencies import get_redis_client, get_roster_service
from .utilities.limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

INVALID_CREDENTIALS = "Invalid credentials. Please check your details and try again."


# --- Helpers ---
def create_access_token(data: dict, expires_delta: timedelta) -> str:
    """Creates a signed JWT for the given data and lifetime."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


# --- Dependencies for protected routes ---
async def get_current_session(
    token: str = Depends(oauth2_scheme),
    redis_client: RedisClient = Depends(get_redis_client)
) -> UserSessionRedis:
    """
    Decodes the token and returns the session it points to, as long as that
    session still exists in Redis.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        token_data = TokenData.model_validate(payload)
    except (jwt.PyJWTError, PydanticValidationError) as e:
        logger.warning(f"Token validation error: {e}")
        raise credentials_exception

    if token_data.session_id is None:
        logger.warning(f"Token is valid but missing 'session_id': {payload}")
        raise credentials_exception

    session = await redis_client.get_user_session(token_data.session_id)
    if session is None:
        logger.warning(f"Session {token_data.session_id} has a valid token but no longer exists in Redis.")
        raise credentials_exception
    return session


def require_teacher(session: UserSessionRedis = Depends(get_current_session)) -> UserSessionRedis:
    if session.role is not UserRole.TEACHER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This operation is only valid for teachers.")
    return session


def require_student(session: UserSessionRedis = Depends(get_current_session)) -> UserSessionRedis:
    if session.role is not UserRole.STUDENT:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This operation is only valid for students.")
    return session


# --- Login ---

def _check_login_fields(login_request: LoginRequest):
    if login_request.role is None:
        raise ValidationError("Please select your role.")
    if not (login_request.username or "").strip() or not login_request.password:
        raise ValidationError("Please enter your library ID and password.")


async def _perform_login(login_request: LoginRequest, redis_client: RedisClient, roster_service: RosterService) -> LoginResponse:
    _check_login_fields(login_request)
    username = login_request.username.strip()
    logger.info(f"Login attempt for '{username}' as {login_request.role.value}.")

    session = None
    now = datetime.now(timezone.utc)
    if login_request.role is UserRole.TEACHER:
        if username.lower() == settings.TEACHER_USERNAME.lower() and login_request.password == settings.TEACHER_PASSWORD:
            ttl = settings.TEACHER_SESSION_TTL_SECONDS
            session = UserSessionRedis(
                session_id=uuid4(), role=UserRole.TEACHER,
                session_start_time=now, session_end_time=now + timedelta(seconds=ttl)
            )
    else:
        match = roster_service.find_student_by_credentials(username, login_request.password)
        if match:
            classroom, student = match
            ttl = settings.STUDENT_SESSION_TTL_SECONDS
            session = UserSessionRedis(
                session_id=uuid4(), role=UserRole.STUDENT,
                student_id=student.id, classroom_id=classroom.id,
                session_start_time=now, session_end_time=now + timedelta(seconds=ttl)
            )

    if session is None:
        logger.warning(f"Invalid credentials for '{username}'.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)

    await redis_client.save_user_session(session, ttl=ttl)
    access_token = create_access_token(data={"session_id": str(session.session_id)}, expires_delta=timedelta(seconds=ttl))
    logger.info(f"'{username}' logged in as {session.role.value} (session {session.session_id}).")
    return LoginResponse(token=Token(access_token=access_token), session=SessionResponse.model_validate(session))


# --- API Endpoints ---

@router.post("/login", response_model=LoginResponse)
@limiter.limit("20/minute")
async def login(
    request: Request,
    login_request: LoginRequest,
    redis_client: RedisClient = Depends(get_redis_client),
    roster_service: RosterService = Depends(get_roster_service)
):
    """Logs a teacher or a student in and opens a session."""
    try:
        return await _perform_login(login_request, redis_client, roster_service)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("60/minute")
async def logout(
    request: Request,
    redis_client: RedisClient = Depends(get_redis_client),
    session: UserSessionRedis = Depends(get_current_session)
):
    """Ends the session by deleting it from Redis."""
    await redis_client.delete_user_session(session.session_id)
    logger.info(f"Session {session.session_id} ended.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=SessionResponse)
async def who_am_i(session: UserSessionRedis = Depends(get_current_session)):
    """Returns the identity of the current session."""
    return session
