"""
WordCard Configuration

Type-safe settings for the replica:
- Environment-based configuration (WORDCARD_ prefix, ``__`` for nesting)
- JSON config files
- One sub-model per subsystem

The app factory builds a WordCardConfig and hands it down explicitly;
nothing reads configuration from module globals.
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StoreConfig(BaseModel):
    """Configuration for the canonical store."""
    path: Optional[Path] = None  # None means data_dir/cards.json
    backup_dir: Path = Path("./backups")


class LanSyncConfig(BaseModel):
    """Configuration for replication through a LAN directory."""
    enabled: bool = False
    directory: Path = Path("./shared")
    file_name: str = "sync.json"
    poll_interval: float = Field(default=3.0, gt=0)
    self_echo_window: float = Field(default=2.0, ge=0)
    debounce: float = Field(default=0.3, ge=0)
    retry_interval: float = Field(default=5.0, gt=0)
    watch_file_events: bool = True


class CloudSyncConfig(BaseModel):
    """Configuration for replication through a cloud-synced container."""
    enabled: bool = False
    container: Optional[Path] = None
    documents_dir: str = "Documents"
    file_name: str = "WordCardSync.json"
    poll_interval: float = Field(default=5.0, gt=0)
    self_echo_window: float = Field(default=3.0, ge=0)
    debounce: float = Field(default=0.5, ge=0)
    retry_interval: float = Field(default=10.0, gt=0)
    watch_file_events: bool = True


class LiveConfig(BaseModel):
    """Configuration for the live update stream."""
    keepalive_interval: float = Field(default=30.0, gt=0)


class MonitoringConfig(BaseModel):
    """Configuration for logging."""
    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "text"] = "json"


class WordCardConfig(BaseSettings):
    """
    Main WordCard Configuration

    Loads configuration from environment variables and/or config files.
    Environment variables are prefixed with WORDCARD_
    (e.g. WORDCARD_LAN__DIRECTORY=/mnt/shared).
    """

    instance_id: str = Field(default="wordcard-replica")

    # Server configuration
    host: str = "127.0.0.1"
    port: int = 8765

    # Subsystem configurations
    store: StoreConfig = Field(default_factory=StoreConfig)
    lan: LanSyncConfig = Field(default_factory=LanSyncConfig)
    cloud: CloudSyncConfig = Field(default_factory=CloudSyncConfig)
    live: LiveConfig = Field(default_factory=LiveConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    data_dir: Path = Field(default=Path("./data"))

    model_config = {
        "env_prefix": "WORDCARD_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @field_validator("data_dir", mode="before")
    @classmethod
    def ensure_path(cls, v: Any) -> Path:
        if isinstance(v, str):
            return Path(v)
        return v

    @property
    def store_path(self) -> Path:
        """Store file, defaulting into the data directory."""
        return self.store.path or self.data_dir / "cards.json"

    def ensure_directories(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_file(cls, config_path: Path) -> "WordCardConfig":
        """Load configuration from a JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = json.load(f)

        return cls(**config_data)

    def to_file(self, config_path: Path) -> None:
        """Save configuration to a JSON file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)
