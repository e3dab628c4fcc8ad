import json
from typing import Annotated, Optional, List
from pydantic_settings import BaseSettings, NoDecode
from pydantic import Field, field_validator


class Settings(BaseSettings):
    # API Settings
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "Plexus Chat API"
    ENVIRONMENT: str = "development"  # development or production
    FRONTEND_URL: str = "http://localhost:5173"

    # Bearer tokens
    SECRET_KEY: str = Field(..., env="SECRET_KEY")
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "plexus-app"
    JWT_AUDIENCE: str = "plexus-users"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7

    # Sessions and cookies
    SESSION_EXPIRE_DAYS: int = 7
    COOKIE_NAME: str = "token"

    # One-time passcodes
    OTP_LENGTH: int = 6
    OTP_EXPIRE_MINUTES: int = 10
    OTP_MAX_ATTEMPTS: int = 3
    OTP_HASH_ROUNDS: int = 10
    OTP_RESEND_AFTER_SECONDS: int = 60

    # Account security
    MAX_FAILED_LOGIN_ATTEMPTS: int = 5
    ACCOUNT_LOCK_MINUTES: int = 30
    LOGIN_HISTORY_LIMIT: int = 20

    # Database
    DATABASE_URL: str = Field(..., env="DATABASE_URL")

    # Google OAuth
    GOOGLE_CLIENT_ID: str = Field(..., env="GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET: str = Field(..., env="GOOGLE_CLIENT_SECRET")
    GOOGLE_REDIRECT_URI: str = Field(..., env="GOOGLE_REDIRECT_URI")

    # OpenAI
    OPENAI_API_KEY: str = Field(..., env="OPENAI_API_KEY")
    OPENAI_TEXT_MODEL: str = "gpt-4o-mini"
    OPENAI_VISION_MODEL: str = "gpt-4o"
    OPENAI_MAX_TOKENS: int = 2000

    # Email delivery
    SMTP_HOST: Optional[str] = Field(default=None, env="SMTP_HOST")
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = Field(default=None, env="SMTP_USER")
    SMTP_PASSWORD: Optional[str] = Field(default=None, env="SMTP_PASSWORD")
    SMTP_FROM: Optional[str] = Field(default=None, env="SMTP_FROM")

    # Uploads
    MAX_UPLOAD_SIZE_BYTES: int = 10 * 1024 * 1024
    MAX_FILES_PER_UPLOAD: int = 5
    MAX_CONTEXT_CHARS_PER_FILE: int = 15000

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    AUTH_RATE_LIMIT: str = "5/15minutes"
    API_RATE_LIMIT: str = "100/15minutes"
    UPLOAD_RATE_LIMIT: str = "10/hour"

    # CORS
    BACKEND_CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:5173", "http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or console

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("[") and stripped.endswith("]"):
                try:
                    parsed = json.loads(stripped)
                    if isinstance(parsed, list):
                        return [str(item).strip() for item in parsed if str(item).strip()]
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
