"""Centralized application settings using pydantic settings."""

from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
# Look for .env in the backend directory or project root
env_path = Path(__file__).parent.parent.parent / ".env"
if not env_path.exists():
    env_path = Path(__file__).parent.parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path, override=False)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
]


class Settings(BaseSettings):
    """Environment-aware configuration (DB URL, job store, import policy)."""

    # Application settings
    app_name: str = "Gestionale Energia Import"
    log_level: str = "INFO"

    # Database settings
    database_url: str = Field(
        default="sqlite:///./gestionale_energia.db",
        description="SQLAlchemy database URL",
    )
    database_path: str | None = Field(
        default=None,
        description="Path of the SQLite file; overrides database_url when set",
    )

    # Redis / Celery settings
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    celery_broker_url: str | None = None
    celery_result_url: str | None = None

    # Import job settings
    job_store_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Where import job progress/results are kept",
    )
    job_ttl_seconds: int = Field(default=86400, ge=60)
    job_store_max_entries: int = Field(default=500, ge=1)
    import_run_mode: Literal["sync", "background"] = Field(
        default="sync",
        description="sync runs the job inside the upload request, background hands it to Celery",
    )

    # Import business policy
    import_actor_email: str = Field(
        default="admin@gestionale.it",
        description="User recorded as created_by for imported rows",
    )
    import_consent_privacy: bool = True
    import_consent_marketing: bool = True
    default_contract_state: str = "compilazione"

    # CORS settings - stored as string, converted to list via property
    cors_origins_raw: str | None = Field(
        default=None,
        validation_alias="CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins",
        exclude=True,
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS from comma-separated string to list."""
        if self.cors_origins_raw is None or not self.cors_origins_raw.strip():
            return list(DEFAULT_CORS_ORIGINS)
        origins = [
            origin.strip().rstrip("/")
            for origin in self.cors_origins_raw.split(",")
            if origin.strip()
        ]
        return origins if origins else list(DEFAULT_CORS_ORIGINS)

    @property
    def sqlalchemy_url(self) -> str:
        """Effective database URL, honouring DATABASE_PATH for SQLite deployments."""
        if self.database_path:
            return f"sqlite:///{Path(self.database_path).resolve()}"
        return self.database_url

    @field_validator("database_url", mode="before")
    @classmethod
    def fix_database_url(cls, v: str | None) -> str:
        """Fix Heroku DATABASE_URL format (postgres:// -> postgresql+psycopg://)."""
        if v is None:
            return "sqlite:///./gestionale_energia.db"
        if isinstance(v, str) and v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql+psycopg://", 1)
        return v

    @field_validator("log_level", mode="after")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.strip().upper() or "INFO"

    @model_validator(mode="after")
    def check_background_store(self) -> "Settings":
        """Background imports run in another process, so job state must be shared."""
        if self.import_run_mode == "background" and self.job_store_backend != "redis":
            raise ValueError("IMPORT_RUN_MODE=background requires JOB_STORE_BACKEND=redis")
        return self


@lru_cache
def get_settings() -> Settings:
    """Provide singleton-like access for dependency injection."""
    return Settings()
