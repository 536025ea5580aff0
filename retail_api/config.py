from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # ─── Application ───────────────────────────────────────────────────────────
    APP_NAME: str = "Retail Management System"
    APP_ENV:  str = "development"
    APP_DEBUG: bool = True
    APP_HOST:  str = "0.0.0.0"
    APP_PORT:  int = 8000

    # ─── Database ──────────────────────────────────────────────────────────────
    DATABASE_URL:          str
    DATABASE_POOL_SIZE:    int  = 10
    DATABASE_MAX_OVERFLOW: int  = 20
    DATABASE_POOL_TIMEOUT: int  = 30
    DATABASE_ECHO:         bool = False

    # ─── JWT ───────────────────────────────────────────────────────────────────
    SECRET_KEY:               str
    ALGORITHM:                str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7

    # ─── Passwords ─────────────────────────────────────────────────────────────
    BCRYPT_ROUNDS: int = 12

    # ─── OTP / Reset token ─────────────────────────────────────────────────────
    OTP_EXPIRE_MINUTES:         int = 10
    RESET_TOKEN_EXPIRE_MINUTES: int = 30

    # ─── SMTP ──────────────────────────────────────────────────────────────────
    SMTP_HOST:     str  = "smtp.gmail.com"
    SMTP_PORT:     int  = 587
    SMTP_USER:     str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS:  bool = True
    EMAIL_FROM:    str  = "noreply@retailmanagement.com"

    # ─── CORS ──────────────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5000,http://127.0.0.1:3000"

    def get_cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    model_config = {"env_file": ".env", "case_sensitive": True, "extra": "ignore"}


settings = Settings()
