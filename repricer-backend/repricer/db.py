from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    database_url: str = Field(alias="DATABASE_URL")

    shop_api_version: str = Field(default="2025-01", alias="SHOP_API_VERSION")
    shop_api_timeout_seconds: float = Field(default=30.0, alias="SHOP_API_TIMEOUT_SECONDS")
    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")
    scheduler_interval_seconds: int = Field(default=30, alias="SCHEDULER_INTERVAL_SECONDS")
    apply_wave_size: int = Field(default=5, alias="APPLY_WAVE_SIZE")
    apply_wave_delay_ms: int = Field(default=500, alias="APPLY_WAVE_DELAY_MS")
    mutation_max_attempts: int = Field(default=3, alias="MUTATION_MAX_ATTEMPTS")
    mutation_retry_base_seconds: float = Field(default=1.0, alias="MUTATION_RETRY_BASE_SECONDS")
    shop_webhook_secret: str | None = Field(default=None, alias="SHOP_WEBHOOK_SECRET")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_allowed_origins: str = Field(default="", alias="CORS_ALLOWED_ORIGINS")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def DATABASE_URL(self) -> str:
        return self.database_url

    @property
    def CORS_ORIGINS(self) -> list[str]:
        return [item.strip() for item in self.cors_allowed_origins.split(",") if item.strip()]

    @property
    def APPLY_WAVE_DELAY_SECONDS(self) -> float:
        return self.apply_wave_delay_ms / 1000

    @field_validator("apply_wave_size", "scheduler_interval_seconds", "mutation_max_attempts")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("apply_wave_delay_ms")
    @classmethod
    def validate_delay(cls, value: int) -> int:
        if value < 0:
            raise ValueError("APPLY_WAVE_DELAY_MS cannot be negative")
        return value


settings = Settings()

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class Base(DeclarativeBase):
    pass


# Dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
