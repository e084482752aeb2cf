"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    APP_NAME: str = "Ticket Importer"

    DATABASE_URL: str = "postgresql+psycopg://postgres@localhost:5432/tickets"

    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    COOKIE_NAME: str = "tw_access"
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: str = "http://localhost:3000"

    # CSV import
    IMPORT_RETENTION_DAYS: int = 3
    IMPORT_SAMPLE_ROWS: int = 5
    IMPORT_DATE_FORMAT: str = "%Y-%m-%d"
    IMPORT_DEFAULT_DELIMITER: str = ","
    IMPORT_DEFAULT_QUOTE_CHAR: str = '"'
    IMPORT_DEFAULT_ENCODING: str = "utf-8"
    IMPORT_MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    model_config = SettingsConfigDict(env_file=str(BASE_DIR / ".env"), env_file_encoding="utf-8")

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()
