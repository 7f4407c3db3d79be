"""
Configuration settings for the TCM report portal.
Loads environment variables and provides application-wide settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Deployment environment ("development" / "production")
    APP_ENV: str = "development"

    # Gemini Configuration
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_MAX_OUTPUT_TOKENS: int = 10000
    GEMINI_TIMEOUT_MS: int = 45000  # 45 s per generation call
    GEMINI_CONNECT_TIMEOUT: float = 10.0
    # Log raw / parsed model responses
    GEMINI_DEBUG: bool = False

    # Persistence (unset → in-memory store)
    DATABASE_URL: Optional[str] = None

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # PDF export
    EXPORT_PIXEL_RATIO: float = 2.0
    PDF_PAGE_WIDTH_MM: float = 210.0
    PDF_PAGE_HEIGHT_MM: float = 297.0
    PDF_MARGIN_MM: float = 8.0
    PDF_JPEG_QUALITY: int = 98
    # Width of the HTML layout box the report is rendered into (points)
    REPORT_RENDER_WIDTH_PT: float = 680.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.strip().lower() in ("prod", "production")


# Global settings instance
settings = Settings()
