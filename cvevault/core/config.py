"""Application configuration loaded from environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Allowed URL schemes for DATABASE_URL (module-level so validators can use it).
VALID_DATABASE_URL_PREFIXES = (
    "sqlite://",
    "sqlite+pysqlite://",
)

# NVD CVE API 2.0 caps resultsPerPage at 2000.
NVD_MAX_PAGE_SIZE = 2000


class Settings(BaseSettings):
    """Validated application settings from env and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    APP_ENV: Literal["dev", "prod"] = "dev"
    DEBUG: bool = False
    # Routes are served at /health, /records, /sync unless a prefix is set (e.g. /api).
    API_PREFIX: str = ""
    CORS_ORIGINS: list[str] = []

    HOST: str = "0.0.0.0"
    PORT: int = 8080

    # SQLite file holding the vulnerabilities table; parent directory is created on startup.
    DATABASE_URL: str = "sqlite:///./data/cves.db"

    # Upstream vulnerability feed (NVD CVE API 2.0)
    NVD_API_URL: str = "https://services.nvd.nist.gov/rest/json/cves/2.0"
    NVD_API_KEY: SecretStr | None = None
    NVD_PAGE_SIZE: int = NVD_MAX_PAGE_SIZE
    NVD_REQUEST_TIMEOUT_SEC: float = 30.0
    # NVD asks unauthenticated clients to pause between pages; 0 disables the pause.
    NVD_PAGE_DELAY_SEC: float = 0.0

    # Sync engine
    SYNC_BATCH_SIZE: int = 100
    STARTUP_SYNC_ENABLED: bool = True
    STARTUP_SYNC_BACKGROUND: bool = True

    @field_validator("API_PREFIX")
    @classmethod
    def validate_api_prefix(cls, v: str) -> str:
        s = (v or "").strip().rstrip("/")
        if s and not s.startswith("/"):
            raise ValueError("API_PREFIX must start with '/' (e.g. /api) or be empty")
        return s

    @field_validator("PORT")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if v < 1 or v > 65535:
            raise ValueError("PORT must be between 1 and 65535")
        return v

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("DATABASE_URL must be set and non-empty")
        if not any(v.startswith(prefix) for prefix in VALID_DATABASE_URL_PREFIXES):
            raise ValueError(
                "DATABASE_URL must be a SQLite URL (e.g. sqlite:///./data/cves.db)"
            )
        return v.strip()

    @field_validator("NVD_API_URL")
    @classmethod
    def validate_nvd_api_url(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("NVD_API_URL must be set and non-empty")
        s = v.strip().lower()
        if not (s.startswith("http://") or s.startswith("https://")):
            raise ValueError(
                "NVD_API_URL must use http or https (e.g. https://services.nvd.nist.gov/rest/json/cves/2.0)"
            )
        return v.strip()

    @field_validator("NVD_API_KEY")
    @classmethod
    def validate_nvd_api_key(cls, v: SecretStr | None) -> SecretStr | None:
        if v is None or not v.get_secret_value().strip():
            return None
        return v

    @field_validator("NVD_PAGE_SIZE")
    @classmethod
    def validate_nvd_page_size(cls, v: int) -> int:
        if v < 1 or v > NVD_MAX_PAGE_SIZE:
            raise ValueError(
                f"NVD_PAGE_SIZE must be between 1 and {NVD_MAX_PAGE_SIZE}"
            )
        return v

    @field_validator("NVD_REQUEST_TIMEOUT_SEC")
    @classmethod
    def validate_nvd_timeout(cls, v: float) -> float:
        if v <= 0 or v > 300:
            raise ValueError(
                "NVD_REQUEST_TIMEOUT_SEC must be greater than 0 and at most 300"
            )
        return v

    @field_validator("NVD_PAGE_DELAY_SEC")
    @classmethod
    def validate_nvd_page_delay(cls, v: float) -> float:
        if v < 0 or v > 60:
            raise ValueError("NVD_PAGE_DELAY_SEC must be between 0 and 60")
        return v

    @field_validator("SYNC_BATCH_SIZE")
    @classmethod
    def validate_sync_batch_size(cls, v: int) -> int:
        if v < 1 or v > 5000:
            raise ValueError("SYNC_BATCH_SIZE must be between 1 and 5000")
        return v


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance (safe to call from dependencies)."""
    return Settings()


settings = get_settings()
