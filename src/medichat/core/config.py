# src/medichat/core/config.py
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # Environment setting
    ENVIRONMENT: str = Field(
        "development", description="Environment: development, staging, production"
    )

    # API settings
    API_PREFIX: str = Field("/api")
    DEBUG: bool = Field(False)
    ALLOWED_ORIGINS: str = Field("*")
    APP_URL: str = Field("http://localhost:3000", description="Public web origin")

    # Database settings
    DB_HOST: str = Field("localhost")
    DB_PORT: int = Field(5432)
    DB_USER: str = Field("")
    DB_PASSWORD: str = Field("")
    DB_NAME: str = Field("medichat")
    DB_DRIVER: str = Field("postgresql+asyncpg")

    SQLITE_MODE: bool = False
    AUTO_CREATE_TABLES: bool = Field(
        False, description="Run metadata.create_all on startup"
    )

    # Jwt Security settings
    SECRET_KEY: str = Field("")
    ALGORITHM: str = Field("HS256")

    # Invite settings
    INVITE_EXPIRE_DAYS: int = Field(7)

    # LLM provider settings (OpenAI-compatible endpoint)
    AI_API_BASE: str = Field("https://openrouter.ai/api/v1")
    AI_API_KEY: str = Field("")
    AI_MODEL_CHAT: str = Field("openai/gpt-4o-mini")
    AI_MODEL_EXTRACT: str = Field("openai/gpt-4o-mini")
    AI_MODEL_DASHBOARD: str = Field("openai/gpt-4o-mini")
    AI_REQUEST_TIMEOUT: float = Field(60.0)

    # Chat engine settings
    CHAT_MAX_TOOL_ROUNDS: int = Field(3)
    CHAT_HISTORY_LIMIT: int = Field(30)

    # Document settings
    EXTRACTION_MAX_CHARS: int = Field(20000)
    DOCUMENT_STORAGE_PATH: str = Field("./storage/documents")
    FILE_ENCRYPTION_KEY: str = Field("")
    MAX_UPLOAD_BYTES: int = Field(15 * 1024 * 1024)

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = Field(True)
    CHAT_RATE_LIMIT: str = Field("30/minute")
    INVITE_ACCEPT_RATE_LIMIT: str = Field("10/minute")

    # Uvicorn settings
    UVICORN_HOST: str = Field("0.0.0.0")
    UVICORN_PORT: int = Field(8000)
    WORKERS_COUNT: int = Field(1)
    RELOAD: bool = Field(False)

    @property
    def POSTGRESQL_DATABASE_URL(self) -> str:
        return (
            f"{self.DB_DRIVER}://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def SQLITE_DATABASE_URL(self) -> str:
        return f"sqlite+aiosqlite:///{self.DB_NAME}.db"

    @property
    def DATABASE_URL(self) -> str:
        return (
            self.SQLITE_DATABASE_URL
            if self.SQLITE_MODE
            else self.POSTGRESQL_DATABASE_URL
        )

    @field_validator("ALLOWED_ORIGINS")
    def validate_origins(cls, v: str) -> List[str]:
        return v.split(",") if v else []

    @field_validator("APP_URL")
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()
