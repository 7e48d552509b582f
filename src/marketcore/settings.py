"""Runtime settings for marketcore, read from the environment."""

import os
from dataclasses import dataclass, field
from pathlib import Path

# Local data directory within the marketcore project
# Can be overridden via MARKETCORE_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Configuration shared by the store, services, API and CLI."""

    data_dir: Path = field(default_factory=lambda: _default_data_dir)
    # When False, a direct status write may jump to any known status
    strict_transitions: bool = True
    currency: str = "RWF"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=Path(os.environ.get("MARKETCORE_DATA_DIR", _default_data_dir)),
            strict_transitions=_env_flag("MARKETCORE_STRICT_TRANSITIONS", True),
            currency=os.environ.get("MARKETCORE_CURRENCY", "RWF"),
            log_level=os.environ.get("MARKETCORE_LOG_LEVEL", "INFO").upper(),
        )
