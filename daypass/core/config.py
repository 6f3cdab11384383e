from functools import lru_cache
from pathlib import Path
from typing import List
from urllib.parse import urlparse
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(ENV_FILE), case_sensitive=False)

    APP_NAME: str = "Daypass Backend"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"
    BACKEND_HOST: str = "0.0.0.0"
    BACKEND_PORT: int = 8000

    DATABASE_URL: str = "sqlite:///./daypass.db"

    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    ACCEPTANCE_TOKEN_TTL_DAYS: int = 7

    CORS_ORIGINS: str = (
        "http://localhost:5173,"
        "http://127.0.0.1:5173,"
        "https://localhost:3000"
    )

    SOCKET_PATH: str = "/socket.io"
    DASHBOARD_NAMESPACE: str = "/realtime/dashboard"

    # Business rules
    TIMEZONE: str = "America/Los_Angeles"
    CHECKIN_CUTOFF: str = "23:59"
    VISIT_DURATION_HOURS: int = 12
    ROLLING_WINDOW_DAYS: int = 30
    QR_TOKEN_TTL_MINUTES: int = 30
    ACCEPTANCE_LEGACY_DAYS: int = 365
    DISCOUNT_VISIT_THRESHOLD: int = 3
    DEFAULT_GUEST_MONTHLY_LIMIT: int = 3
    DEFAULT_HOST_CONCURRENT_LIMIT: int = 3

    OVERRIDE_PASSWORD: str = ""
    OVERRIDE_REASON_MIN: int = 10
    OVERRIDE_REASON_MAX: int = 500

    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = ""
    EMAIL_API_URL: str = "https://api.resend.com/emails"
    EMAIL_TIMEOUT_SECONDS: float = 5.0
    FRONTEND_BASE_URL: str = "http://localhost:5173"

    @property
    def cors_origins(self) -> List[str]:
        origins: list[str] = []
        for raw in self.CORS_ORIGINS.split(","):
            value = raw.strip()
            if not value:
                continue
            parsed = urlparse(value)
            if parsed.scheme and parsed.netloc:
                value = f"{parsed.scheme}://{parsed.netloc}"
            origins.append(value.rstrip("/"))
        return origins

    @property
    def email_configured(self) -> bool:
        return bool(self.RESEND_API_KEY.strip() and self.EMAIL_FROM.strip())


@lru_cache
def get_settings() -> Settings:
    return Settings()
