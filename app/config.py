"""
Configuration settings for the VanBan assistant backend.
Loads environment variables and provides application-wide settings.
"""
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Gemini Configuration
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"

    # Retry policy for rate-limited model calls
    RETRY_MAX_ATTEMPTS: int = 8
    RETRY_BASE_DELAY_MS: float = 2000.0
    RETRY_JITTER_MS: float = 1000.0

    # Draft editor: quiet period before a page is sent to the AI pipeline
    DRAFT_DEBOUNCE_SECONDS: float = 1.5

    # Draft and analyzer sessions untouched this long are dropped on the next create
    SESSION_IDLE_SECONDS: float = 6 * 3600

    # Database Configuration (only display preferences are persisted)
    DATABASE_URL: str = "sqlite+aiosqlite:///./vanban.db"

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Upload Configuration
    MAX_FILE_SIZE: int = 20 * 1024 * 1024  # 20 MB per file

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]


# Global settings instance
settings = Settings()
