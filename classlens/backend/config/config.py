import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

class Config:
    """
    Holds the settings read from environment variables in one simple place.
    """
    # Redis
    APPLICATION_REDIS_URL: str = os.environ.get("APPLICATION_REDIS_URL", "redis://localhost:6379/0")
    RATE_LIMITER_REDIS_URL: str = os.environ.get("RATE_LIMITER_REDIS_URL", "memory://")
    STORE_KEY_PREFIX: str = os.environ.get("STORE_KEY_PREFIX", "classlens")

    # Remote recognition service (Gemini REST API)
    GEMINI_API_KEY: Optional[str] = os.environ.get("GEMINI_API_KEY")
    GEMINI_API_URL: str = os.environ.get("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta")
    GEMINI_MODEL: str = os.environ.get("GEMINI_MODEL", "gemini-2.5-pro")
    GEMINI_TEMPERATURE: float = float(os.environ.get("GEMINI_TEMPERATURE", 0.1))

    # Auth
    SECRET_KEY: str = os.environ.get("SECRET_KEY", "classlens-development-secret-key-change-me")
    ALGORITHM: str = os.environ.get("ALGORITHM", "HS256")
    TEACHER_USERNAME: str = os.environ.get("TEACHER_USERNAME", "teacher")
    TEACHER_PASSWORD: str = os.environ.get("TEACHER_PASSWORD", "password123")
    TEACHER_SESSION_TTL_SECONDS: int = int(os.environ.get("TEACHER_SESSION_TTL_SECONDS", 3600))
    STUDENT_SESSION_TTL_SECONDS: int = int(os.environ.get("STUDENT_SESSION_TTL_SECONDS", 1800))

    # Logging
    LOG_DIR: str = os.environ.get("LOG_DIR", "logs")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

# Single importable settings instance
settings = Config()
