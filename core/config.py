"""Engine configuration.

Settings come from environment variables, optionally loaded from a ``.env``
file at the repository root:

- RECON_DB_PATH: SQLite database file (default: <repo>/reconciliation.db)
- RECON_SHARE_TOLERANCE: max |item amount - sum of split shares| (default 0.01)
- RECON_TOTAL_TOLERANCE: max |invoice total - line sum| before a discrepancy
  is reported to the reviewer (default 0.01)
- RECON_BUSY_TIMEOUT: seconds SQLite waits on a locked database (default 5)
- RECON_LOG_LEVEL: logging level name (default INFO)
- RECON_LOG_JSON: "1"/"true" for JSON log lines (default false)
"""

import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

REPO_ROOT = Path(__file__).resolve().parents[1]

# Load .env file if it exists
env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

DEFAULT_DB_PATH = REPO_ROOT / "reconciliation.db"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class ReconciliationConfig(BaseModel):
    """Tolerances, storage location and logging settings for the engine."""

    db_path: Path = Field(default=DEFAULT_DB_PATH, description="SQLite database file")

    # Money tolerances (smallest currency unit by default)
    share_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        description="Allowed difference between a split's shares and the item amount",
    )
    total_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        description="Allowed difference between invoice total and line-item sum",
    )

    # Roster rules
    min_entity_name_length: int = Field(default=2, description="Min trimmed length of a new entity name")

    # Storage
    busy_timeout_seconds: float = Field(default=5.0, description="SQLite busy timeout")

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    @classmethod
    def from_env(cls) -> "ReconciliationConfig":
        """Build a config from RECON_* environment variables."""
        return cls(
            db_path=Path(os.getenv("RECON_DB_PATH", str(DEFAULT_DB_PATH))),
            share_tolerance=Decimal(os.getenv("RECON_SHARE_TOLERANCE", "0.01")),
            total_tolerance=Decimal(os.getenv("RECON_TOTAL_TOLERANCE", "0.01")),
            busy_timeout_seconds=float(os.getenv("RECON_BUSY_TIMEOUT", "5")),
            log_level=os.getenv("RECON_LOG_LEVEL", "INFO"),
            log_json=_env_bool("RECON_LOG_JSON"),
        )


@lru_cache(maxsize=1)
def get_config() -> ReconciliationConfig:
    """Process-wide config read from the environment (cached)."""
    return ReconciliationConfig.from_env()
