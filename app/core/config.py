from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Promotion threshold per subject; distinct from per-period minimums.
    minimum_promotion_grade: float = Field(7.0, alias="MINIMUM_PROMOTION_GRADE")
    default_period_minimum_grade: float = Field(7.0, alias="DEFAULT_PERIOD_MINIMUM_GRADE")
    default_course_capacity: int = Field(30, alias="DEFAULT_COURSE_CAPACITY")

    rollover_max_wait_seconds: float = Field(30.0, alias="ROLLOVER_MAX_WAIT_SECONDS")
    rollover_timeout_seconds: float = Field(30.0, alias="ROLLOVER_TIMEOUT_SECONDS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


settings = Settings()
