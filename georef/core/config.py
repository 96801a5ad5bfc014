"""
Application configuration
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    # App
    PROJECT_NAME: str = "GeoRef PSGC"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    APP_NAME: str = "GEOREF"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./georef.db"
    DATABASE_ECHO: bool = False

    # Ingestion
    IMPORT_BATCH_SIZE: int = 1000
    IMPORT_MODE: str = "merge"            # 'merge' | 'replace'
    IMPORT_ON_ERROR: str = "continue"     # 'continue' | 'abort'
    IMPORT_MAX_WORKERS: int = 1           # concurrent batches within one level
    IMPORT_STRICT_PARSE: bool = False
    IMPORT_ERROR_SAMPLE_SIZE: int = 3
    SOURCE_HTTP_TIMEOUT: float = 30.0

    # Search
    SEARCH_DEFAULT_LIMIT: int = 20
    SEARCH_MAX_PAGE_SIZE: int = 100
    SEARCH_MIN_QUERY_LENGTH: int = 2
    SEARCH_MAX_VARIATIONS: int = 24
    SEARCH_MAX_WORKERS: int = 8
    SEARCH_REGION_CAP: int = 10
    SEARCH_PROVINCE_CAP: int = 15
    SEARCH_CITY_CAP: int = 20
    SEARCH_CITY_BY_PROVINCE_CAP: int = 25
    SEARCH_BARANGAY_CAP: int = 25
    SEARCH_BARANGAY_BY_PROVINCE_CAP: int = 30
    SEARCH_BARANGAY_BY_CITY_CAP: int = 20

    # Integrity
    AUDIT_SAMPLE_SIZE: int = 5

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=True
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
