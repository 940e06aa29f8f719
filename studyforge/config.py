from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

ALLOWED_UPLOAD_MIME_TYPES = (
    'application/pdf',
    'image/jpeg',
    'image/png',
    'image/webp',
    'image/heic',
    'image/heif',
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    ENVIRONMENT: str = 'development'
    MAX_UPLOAD_MB: int = 15
    MAX_PDF_PAGES_OCR: int = 30
    RATE_LIMIT_UPLOAD_MAX: int = 8
    RATE_LIMIT_UPLOAD_WINDOW_MS: int = 60_000
    RATE_LIMIT_ARTIFACTS_MAX: int = 20
    RATE_LIMIT_ARTIFACTS_WINDOW_MS: int = 60_000
    FREE_DAILY_CONVERSIONS: int = 3
    STUDY_OUTPUT_LANGUAGE: str = 'Brazilian Portuguese'
    INGESTION_WORKERS: int = 4


@lru_cache()
def get_settings() -> Settings:
    return Settings()
