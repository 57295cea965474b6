"""
Configuration management for ntpclock.

Loads sync defaults from environment variables or a .env file.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Check common locations for .env
_ENV_LOCATIONS = [
    Path.home() / ".ntpclock" / ".env",
    Path.home() / ".config" / "ntpclock" / ".env",
    Path.cwd() / ".env",
]
for _env_path in _ENV_LOCATIONS:
    if _env_path.exists():
        load_dotenv(_env_path)
        break


DEFAULT_POOL = "time.apple.com"
DEFAULT_STORAGE_PATH = Path.home() / ".ntpclock" / "stable_time.json"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass
class NTPConfig:
    """Sync parameters and response-validation thresholds."""

    # Pool sampling
    pool: str = DEFAULT_POOL
    samples: int = 4
    max_servers: int = 5
    timeout: float = 5.0  # Per exchange
    port: int = 123
    version: int = 3

    # Name resolution
    dns_timeout: float = 5.0
    nameservers: list[str] = field(default_factory=list)

    # Response validation
    max_delay_difference: float = 0.1
    max_origin_age: float = 10.0
    max_dispersion: float = 100.0

    # Stored state is dropped if the implied boot time moved more than this
    boot_time_tolerance: float = 1.0

    storage_path: Path = DEFAULT_STORAGE_PATH

    @classmethod
    def from_env(cls) -> "NTPConfig":
        """Load configuration from environment variables."""
        nameservers = os.getenv("NTPCLOCK_NAMESERVERS", "")
        return cls(
            pool=os.getenv("NTPCLOCK_POOL", DEFAULT_POOL),
            samples=_env_int("NTPCLOCK_SAMPLES", 4),
            max_servers=_env_int("NTPCLOCK_MAX_SERVERS", 5),
            timeout=_env_float("NTPCLOCK_TIMEOUT", 5.0),
            port=_env_int("NTPCLOCK_PORT", 123),
            version=_env_int("NTPCLOCK_VERSION", 3),
            dns_timeout=_env_float("NTPCLOCK_DNS_TIMEOUT", 5.0),
            nameservers=[ns.strip() for ns in nameservers.split(",") if ns.strip()],
            max_delay_difference=_env_float("NTPCLOCK_MAX_DELAY_DIFFERENCE", 0.1),
            max_origin_age=_env_float("NTPCLOCK_MAX_ORIGIN_AGE", 10.0),
            max_dispersion=_env_float("NTPCLOCK_MAX_DISPERSION", 100.0),
            boot_time_tolerance=_env_float("NTPCLOCK_BOOT_TIME_TOLERANCE", 1.0),
            storage_path=Path(os.getenv("NTPCLOCK_STORAGE_PATH", str(DEFAULT_STORAGE_PATH))),
        )


# Global config instance
_config: NTPConfig | None = None


def get_config() -> NTPConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = NTPConfig.from_env()
    return _config


def set_config(config: NTPConfig | None) -> None:
    """Set the global configuration instance (None reloads from the environment)."""
    global _config
    _config = config
