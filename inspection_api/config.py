"""
Configuration settings for the Inspection API.

Uses Pydantic Settings to load environment variables for the database
connection, logging, HTTP serving, request limits and the Cloudinary media
store. Values can also come from a local `.env` file.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    database_url: Optional[str] = Field(None, alias="DATABASE_URL")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("inspection", alias="DB_NAME")
    db_sslmode: Optional[str] = Field(None, alias="DB_SSLMODE")
    db_statement_timeout_ms: int = Field(15_000, alias="DB_STATEMENT_TIMEOUT_MS")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE")
    db_auto_migrate: bool = Field(True, alias="DB_AUTO_MIGRATE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")
    host: str = Field("0.0.0.0", alias="HOST")
    port: int = Field(5000, alias="PORT")
    cors_origins: str = Field("*", alias="CORS_ORIGINS")

    # Request limits
    reports_limit_default: int = Field(200, alias="REPORTS_LIMIT_DEFAULT")
    reports_limit_min: int = Field(1, alias="REPORTS_LIMIT_MIN")
    reports_limit_max: int = Field(500, alias="REPORTS_LIMIT_MAX")
    catalog_limit_default: int = Field(2000, alias="CATALOG_LIMIT_DEFAULT")
    catalog_limit_max: int = Field(5000, alias="CATALOG_LIMIT_MAX")
    link_expiry_days_default: int = Field(7, alias="LINK_EXPIRY_DAYS_DEFAULT")
    link_expiry_days_max: int = Field(90, alias="LINK_EXPIRY_DAYS_MAX")
    quiz_default_pass_mark: int = Field(80, alias="QUIZ_DEFAULT_PASS_MARK")
    upload_max_bytes: int = Field(20 * 1024 * 1024, alias="UPLOAD_MAX_BYTES")

    # Cloudinary
    cloudinary_url: Optional[str] = Field(None, alias="CLOUDINARY_URL")
    cloudinary_cloud_name: Optional[str] = Field(None, alias="CLOUDINARY_CLOUD_NAME")
    cloudinary_api_key: Optional[str] = Field(None, alias="CLOUDINARY_API_KEY")
    cloudinary_api_secret: Optional[str] = Field(None, alias="CLOUDINARY_API_SECRET")
    cloudinary_folder: str = Field("qcs", alias="CLOUDINARY_FOLDER")
    image_max_dimension: int = Field(1280, alias="IMAGE_MAX_DIMENSION")
    image_quality: int = Field(80, alias="IMAGE_QUALITY")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def cors_origin_list(self) -> List[str]:
        """Split the comma separated CORS_ORIGINS value."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
