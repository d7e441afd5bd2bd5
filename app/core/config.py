from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./quiz.db"

    # Sanity content store
    SANITY_PROJECT_ID: Optional[str] = None
    SANITY_DATASET: str = "production"
    SANITY_API_VERSION: str = "2024-01-01"
    SANITY_USE_CDN: bool = True
    SANITY_API_TOKEN: Optional[str] = None
    SANITY_TIMEOUT_SECONDS: float = 10.0

    # Confirmation email (Resend)
    RESEND_API_KEY: Optional[str] = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    FROM_EMAIL: str = "Formula IHU <quiz@fihu.gr>"
    REPLY_TO_EMAIL: str = "quiz@fihu.gr"
    EMAIL_MAX_RETRIES: int = 2

    # Admin studio login
    STUDIO_PASSWORD: str = "admin"
    COOKIE_SECURE: bool = False

    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Quiz config cache (seconds)
    QUIZ_CACHE_TTL_SECONDS: float = 300.0
    QUIZ_CACHE_ACTIVE_TTL_SECONDS: float = 30.0
    QUIZ_CACHE_PRESTART_BUFFER_SECONDS: float = 120.0

    # Positional point table, used for questions without their own weight
    QUIZ_QUESTION_POINTS: List[float] = []

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def sanity_configured(self) -> bool:
        return bool(self.SANITY_PROJECT_ID)


settings = Settings()
