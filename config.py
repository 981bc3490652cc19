"""Application configuration objects."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path


def _default_base_dir() -> Path:
    # A bundled executable keeps its config and assets next to the binary.
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent


@dataclass(frozen=True)
class AppConfig:
    """Immutable container for application configuration."""

    base_dir: Path = field(default_factory=_default_base_dir)
    config_file_name: str = "config.json"
    host: str = "0.0.0.0"
    port: int = 80
    public_hostname: str = "shiny.local"
    reload_debounce_seconds: float = 0.1
    watch_poll_seconds: float = 0.25

    @property
    def config_file_path(self) -> Path:
        return self.base_dir / self.config_file_name

    @property
    def public_url(self) -> str:
        if self.port == 80:
            return f"http://{self.public_hostname}"
        return f"http://{self.public_hostname}:{self.port}"


config = AppConfig()

# Simple names used by the rest of the application.
BASE_DIR: Path = config.base_dir
CONFIG_FILE_PATH: Path = config.config_file_path
STATIC_DIR: Path = Path(__file__).resolve().parent / "static"
