"""Pipeline configuration with environment variable support."""

import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_workers() -> int:
    """Return a sensible default for stage worker threads."""
    cpu_count = os.cpu_count() or 1
    return max(1, min(32, cpu_count))


class Settings(BaseSettings):
    """Staging server configuration loaded from environment variables.

    Loads from environment (PLN_*), .env file, or defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="PLN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Network policy
    accepting: bool = True
    min_software_version: str = "3.1.0.0"
    network_default: str = "The PLN can accept deposits from this provider."
    network_accepting: str = "The PLN is accepting deposits from this provider."
    network_old_version: str = (
        "This provider must upgrade its software before deposits will be accepted."
    )
    terms_of_use: list[str] = Field(
        default_factory=lambda: [
            "I agree to allow the PLN to preserve the deposited content.",
            "I have the legal right to grant preservation rights for this content.",
        ]
    )
    max_upload_size: int = 1_000_000
    upload_checksum_type: str = "SHA-1"

    # Storage
    data_dir: Path = Path("data/files")
    state_file: Path = Path("data/state.json")

    # Harvest
    max_harvest_attempts: int = 5
    size_tolerance: float = 0.08
    min_free_fraction: float = 0.10
    http_timeout: float = 30.0
    user_agent: str = "PlnStagingBot 1.0"
    checksum_key: str | None = None

    # Packaging
    max_au_size: int = 10 * 1024 * 1024 * 1024

    # Downstream preservation service
    downstream_col_iri: str | None = None
    downstream_on_behalf_of: str | None = None
    public_url: str = "http://localhost:8000"

    # Scanning
    clamdscan_path: str = "/usr/bin/clamdscan"

    # Health
    days_silent: int = 90
    notify_emails: list[str] = Field(default_factory=list)

    # Performance
    max_workers: int = Field(default_factory=_default_workers)

    # API
    sword_prefix: str = "/api/sword/2.0"
    operator_api_key: str | None = None
    host: str = "127.0.0.1"
    port: int = 8000

    log_level: str = "INFO"

    @field_validator(
        "checksum_key",
        "downstream_col_iri",
        "downstream_on_behalf_of",
        "operator_api_key",
        mode="before",
    )
    @classmethod
    def parse_null_string(cls, v: str | None) -> str | None:
        """Convert 'null' string to None."""
        if isinstance(v, str) and v.lower() in ("null", "none", ""):
            return None
        return v

    @field_validator("data_dir", "state_file", mode="after")
    @classmethod
    def create_dirs(cls, v: Path) -> Path:
        """Create directories if they don't exist."""
        if v.suffix == ".json":  # state_file
            v.parent.mkdir(parents=True, exist_ok=True)
        else:
            v.mkdir(parents=True, exist_ok=True)
        return v.resolve()
