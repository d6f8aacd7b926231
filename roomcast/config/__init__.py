"""
Configuration management for Roomcast.

This module loads server settings (bind address, database path, media
directory, streaming chunk size, room capacity tiers) from TOML files.
"""

from __future__ import annotations

import logging
import string
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent

DEFAULT_ALPHABET = string.ascii_lowercase + string.ascii_uppercase + string.digits

# Older clients send the tier name with this spelling.
PLAN_ALIASES: dict[str, str] = {"standart": "standard"}


@dataclass(frozen=True)
class CapacityTiers:
    """Room capacity per subscription plan of the room creator."""

    basic: int = 5
    standard: int = 15
    premium: int = 100
    default: int = 100

    def for_plan(self, plan: str | None) -> int:
        """
        Get the room capacity for a creator's plan.

        Unknown or missing plans fall back to `default`.
        """
        name = (plan or "").strip().lower()
        name = PLAN_ALIASES.get(name, name)
        if name == "basic":
            return self.basic
        if name == "standard":
            return self.standard
        if name == "premium":
            return self.premium
        return self.default


@dataclass(frozen=True)
class ServerConfig:
    """Loaded server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    db_path: str = "roomcast.sqlite3"
    media_dir: Path = Path("media")
    media_suffix: str = ".mp3"
    chunk_size: int = 4096
    ping_interval: float = 10.0
    invitation_code_length: int = 5
    invitation_alphabet: str = DEFAULT_ALPHABET
    capacity: CapacityTiers = field(default_factory=CapacityTiers)

    def with_overrides(self, **overrides: Any) -> ServerConfig:
        """
        Return a copy with the given fields replaced.

        `None` values are ignored so CLI flags that were not passed keep the
        file values.
        """
        values = {k: v for k, v in overrides.items() if v is not None}
        if "media_dir" in values:
            values["media_dir"] = Path(values["media_dir"])
        return replace(self, **values)


def _parse_capacity(data: dict[str, Any]) -> CapacityTiers:
    """Parse the [capacity] section from the TOML data."""
    defaults = CapacityTiers()
    return CapacityTiers(
        basic=int(data.get("basic", defaults.basic)),
        standard=int(data.get("standard", defaults.standard)),
        premium=int(data.get("premium", defaults.premium)),
        default=int(data.get("default", defaults.default)),
    )


def load_config(config_path: Path | None = None) -> ServerConfig:
    """
    Load server configuration from a TOML file.

    Args:
        config_path: Path to roomcast.toml. If None, uses default location.

    Returns:
        Loaded ServerConfig instance.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "roomcast.toml"

    logger.debug("Loading server config from %s", config_path)

    with config_path.open("rb") as f:
        data = tomllib.load(f)

    server = data.get("server", {})
    streaming = data.get("streaming", {})
    rooms = data.get("rooms", {})
    defaults = ServerConfig()

    chunk_size = int(streaming.get("chunk_size", defaults.chunk_size))
    if chunk_size <= 0:
        raise ValueError(f"streaming.chunk_size must be positive, got {chunk_size}")

    return ServerConfig(
        host=str(server.get("host", defaults.host)),
        port=int(server.get("port", defaults.port)),
        db_path=str(server.get("db_path", defaults.db_path)),
        media_dir=Path(streaming.get("media_dir", defaults.media_dir)),
        media_suffix=str(streaming.get("media_suffix", defaults.media_suffix)),
        chunk_size=chunk_size,
        ping_interval=float(server.get("ping_interval", defaults.ping_interval)),
        invitation_code_length=int(
            rooms.get("invitation_code_length", defaults.invitation_code_length)
        ),
        invitation_alphabet=str(rooms.get("invitation_alphabet", defaults.invitation_alphabet)),
        capacity=_parse_capacity(data.get("capacity", {})),
    )


# Global singleton instance (lazy loaded)
_config: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Packaged defaults, loaded on first use and shared afterwards."""
    global _config
    if _config is None:
        _config = load_config()
    return _config

