"""
Cashu POS Configuration Module

Loads listen address, payment callback URL and the accepted mint allow-list.

Sources, highest priority first:
- keyword arguments passed to Settings()
- environment variables (CASHU_POS_ prefix, "__" for nested keys)
- .env file in the working directory
- TOML config file (~/.cashu-pos/config.toml, overridable via CASHU_POS_CONFIG_FILE)
"""
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

logger = logging.getLogger(__name__)

DEFAULT_WORK_DIR = Path.home() / ".cashu-pos"
CONFIG_FILE_ENV = "CASHU_POS_CONFIG_FILE"
DATABASE_FILE_NAME = "cashu-pos.db"

EXAMPLE_CONFIG = """\
[pos]
# Address the POS HTTP server binds to
listen_host = "127.0.0.1"
listen_port = 8085

# Public URL wallets POST their payment payload to
payment_url = "http://127.0.0.1:8085/payment"

# Mints whose ecash this terminal accepts
accepted_mints = ["https://mint.example.com"]
"""


def config_file_path() -> Path:
    """Location of the TOML config file."""
    override = os.environ.get(CONFIG_FILE_ENV)
    if override:
        return Path(override).expanduser()
    return DEFAULT_WORK_DIR / "config.toml"


class PosSettings(BaseModel):
    """The [pos] table of the config file."""

    listen_host: str = "127.0.0.1"
    listen_port: int = Field(default=8085, gt=0, lt=65536)
    payment_url: str = ""
    accepted_mints: List[str] = Field(default_factory=list)


class Settings(BaseSettings):
    """
    Application settings.

    The `pos` section mirrors the original config.toml layout; everything else
    is operational tuning that normally comes from the environment.
    """

    pos: PosSettings = Field(default_factory=PosSettings)

    # Storage
    work_dir: Path = DEFAULT_WORK_DIR
    database_path: Optional[str] = None  # defaults to <work_dir>/cashu-pos.db

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Demo mode accepts any well-formed proofs without contacting a mint
    demo_mode: bool = False

    # Settlement reconciliation
    settlement_retry_interval_seconds: int = Field(default=30, gt=0)
    pending_settlement_grace_seconds: int = Field(default=300, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="CASHU_POS_",
        env_nested_delimiter="__",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=config_file_path()),
        )

    @property
    def resolved_database_path(self) -> Path:
        if self.database_path:
            return Path(self.database_path).expanduser()
        return self.work_dir.expanduser() / DATABASE_FILE_NAME


def ensure_example_config(config_path: Path) -> Optional[Path]:
    """
    Write example.config.toml next to a missing config file.

    Returns:
        Path of the example file if one was written, otherwise None
    """
    if config_path.exists():
        return None

    example_path = config_path.parent / "example.config.toml"
    if example_path.exists():
        return None

    example_path.parent.mkdir(parents=True, exist_ok=True)
    example_path.write_text(EXAMPLE_CONFIG, encoding="utf-8")
    logger.warning(
        f"No config found at {config_path}. "
        f"Created example configuration at {example_path}; copy and edit it."
    )
    return example_path


@lru_cache()
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
