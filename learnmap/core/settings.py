import logging
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


PROJECT_ROOT = Path(__file__).resolve().parents[2]
ROOT_ENV = PROJECT_ROOT / ".env"
ROOT_ENV_LOCAL = PROJECT_ROOT / ".env.local"


class Settings(BaseSettings):
    """
    Learning Map Service - Global Configuration Registry
    Centralizes all environment variables using Pydantic Settings.
    """

    model_config = SettingsConfigDict(
        env_file=(str(ROOT_ENV), str(ROOT_ENV_LOCAL)),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Config
    API_PORT: int = Field(8000, validation_alias=AliasChoices("API_PORT", "PORT"))
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = Field("development", validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV"))
    ALLOWED_ORIGINS: str = "http://localhost:5173"
    BASE_PATH: str = "/api/v1"

    # AI Models & Services
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash-lite"
    GEMINI_TEMPERATURE: float = 0.2
    GEMINI_TIMEOUT_SECONDS: float = 60.0

    # Persistence
    MAP_STORE: Literal["memory", "supabase"] = "memory"
    SUPABASE_URL: Optional[str] = Field(
        None, validation_alias=AliasChoices("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
    )
    SUPABASE_SERVICE_KEY: Optional[str] = Field(
        None, validation_alias=AliasChoices("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_KEY")
    )
    LEARNING_MAP_TABLE: str = "learning_maps"
    STORE_TRANSIENT_MAX_RETRIES: int = 3
    STORE_TRANSIENT_BASE_DELAY_SECONDS: float = 0.4

    # Rate limiting scaffold (disabled by default)
    RATE_LIMIT_ENABLED: bool = False
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_MAX_REQUESTS: int = 100
    RATE_LIMIT_TRUST_PROXY: bool = False

    @field_validator("ENVIRONMENT", mode="before")
    @classmethod
    def _normalize_environment_label(cls, value: str | None) -> str:
        return str(value or "development").strip().lower()

    @field_validator("MAP_STORE", mode="before")
    @classmethod
    def _normalize_map_store(cls, value: str | None) -> str:
        return str(value or "memory").strip().lower()

    @field_validator("BASE_PATH", mode="before")
    @classmethod
    def _normalize_base_path(cls, value: str | None) -> str:
        path = "/" + str(value or "").strip().strip("/")
        return "" if path == "/" else path

    @model_validator(mode="after")
    def _warn_on_incomplete_store_config(self) -> "Settings":
        if self.MAP_STORE == "supabase" and not (self.SUPABASE_URL and self.SUPABASE_SERVICE_KEY):
            logger.warning(
                "MAP_STORE=supabase without SUPABASE_URL/SUPABASE_SERVICE_ROLE_KEY; storage calls will fail",
                extra={"environment": self.ENVIRONMENT},
            )
        return self

    @property
    def allowed_origins(self) -> list[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT in {"production", "prod"}


settings = Settings()  # type: ignore[call-arg]
