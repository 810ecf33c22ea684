"""
H10CM Access Configuration

Environment-based settings for the access-control core.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings loaded from environment variables (prefix ``H10CM_``)."""

    # Application
    APP_NAME: str = "H10CM Access Control"
    LOG_LEVEL: str = "INFO"

    # Profile construction
    # Role assigned when the identity store supplies neither a role nor the
    # system-admin flag.
    DEFAULT_ROLE: str = "Technician"
    ENFORCE_GRANT_EXPIRY: bool = True

    # Program context persistence
    PERSIST_PROGRAM_SELECTION: bool = True
    PROGRAM_PREFERENCE_FILE: Optional[str] = None

    # Session caches
    AUDIT_BUFFER_SIZE: int = 1000
    DECISION_CACHE_SIZE: int = 512

    class Config:
        env_prefix = "H10CM_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def setup_logging(level: Optional[str] = None) -> None:
    """Setup logging configuration."""
    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("H10CM_Config").info(f"{settings.APP_NAME} logging at {level}")
