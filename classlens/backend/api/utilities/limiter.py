# classlens/backend/api/utilities/limiter.py

from fastapi import Request
import jwt

from slowapi import Limiter
from slowapi.util import get_remote_address

from ...config.config import settings

def get_limiter_key(request: Request) -> str:
    """
    Returns the rate limit key for a request.
    A request carrying a decodable JWT is limited per session; anything else
    falls back to the client IP address.
    """
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ")[1]
        try:
            # Only the session id is needed here, expiry is checked by auth.
            payload = jwt.decode(
                token,
                settings.SECRET_KEY,
                algorithms=[settings.ALGORITHM],
                options={"verify_exp": False}
            )
            session_id: str = payload.get("session_id")
            if session_id:
                return session_id
        except jwt.PyJWTError:
            pass

    return get_remote_address(request)

# RATE_LIMITER_REDIS_URL may be "memory://" for a single process.
limiter = Limiter(key_func=get_limiter_key, storage_uri=settings.RATE_LIMITER_REDIS_URL)
