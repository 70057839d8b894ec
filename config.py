from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Study Tracker API"
    app_timezone: str = "Asia/Tokyo"
    database_url: str = ""
    database_name: str = ""
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    archive_retention_days: int = 7
    # When false, an archive that already exists for (user, week) is left alone
    # and the late logs for that week are dropped.
    archive_merge_existing: bool = True

    min_password_length: int = 4
    elementary_max_grade: int = 6
    weakness_top_n: int = 3


settings = Settings()
