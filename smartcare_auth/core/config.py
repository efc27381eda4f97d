from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Smart Care Device Auth"

    # MongoDB Config
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "smart_care"

    # Public base URL used in emailed links and redirects
    APP_URL: str = "http://localhost:3000"

    # Signs JWTs and approval link tokens
    SECRET_KEY: str = "dev-change-me"

    # 📧 Resend
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Smart Care Security <security@smartcare.local>"

    # Redis is optional; cooldowns are skipped when it is not configured
    REDIS_URL: Optional[str] = None

    # Login approval flow
    LOGIN_REQUEST_TTL_MINUTES: int = 10
    POLL_INTERVAL_SECONDS: float = 2.0
    REDIRECT_DELAY_SECONDS: float = 1.0
    REQUIRE_LINK_TOKEN: bool = True
    APPROVAL_EMAIL_COOLDOWN_SECONDS: int = 60
    TRUST_WRITE_RETRIES: int = 3
    RECONCILE_INTERVAL_SECONDS: int = 60

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
