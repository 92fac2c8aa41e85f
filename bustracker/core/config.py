from dataclasses import dataclass, field, fields
from pathlib import Path
import os

from dotenv import load_dotenv

ENV_PREFIX = "BUSTRACKER_"


def detect_cpu_cores() -> int:
    return max(1, os.cpu_count() or 1)


@dataclass
class ApplicationConfig:
    """Centralized configuration"""

    # Feed settings
    feed_url: str = "https://temporeal.pbh.gov.br/?param=C"
    update_interval_seconds: int = 30
    request_timeout_seconds: int = 30
    user_agent: str = "BusTrackerApp/1.0"
    feed_utc_offset_minutes: int = -180  # feed reports local civil time, UTC-3

    # History settings
    position_retention_minutes: int = 5
    prediction_window_minutes: int = 5

    # Line code translation
    reference_refresh_hours: float = 1.0
    legacy_line_map_path: Path = Path("bhtrans_bdlinha.csv")

    # Processing settings
    max_concurrent_requests: int = field(default_factory=lambda: detect_cpu_cores() * 2)

    # Storage
    db_path: Path = Path("./db/bustracker.db")

    # Web server
    host: str = "0.0.0.0"
    port: int = 8080

    @property
    def reference_refresh_seconds(self) -> float:
        return self.reference_refresh_hours * 3600

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "ApplicationConfig":
        """Build a config from defaults overlaid with BUSTRACKER_* environment variables."""
        if dotenv:
            load_dotenv()

        config = cls()
        for f in fields(cls):
            raw = os.getenv(ENV_PREFIX + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            current = getattr(config, f.name)
            raw = raw.strip()
            try:
                if isinstance(current, Path):
                    value = Path(raw)
                elif isinstance(current, bool):
                    value = raw.lower() in ("1", "true", "yes", "on")
                elif isinstance(current, int):
                    value = int(raw)
                elif isinstance(current, float):
                    value = float(raw)
                else:
                    value = raw
            except ValueError:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}")
            setattr(config, f.name, value)
        return config
