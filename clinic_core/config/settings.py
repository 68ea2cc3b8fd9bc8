# =============================================================================
# clinic_core/config/settings.py
# Settings for the offline/online sync engine
# =============================================================================
"""
Sync settings are read from ``.streamlit/secrets.toml`` first and fall back
to environment variables (optionally loaded from a ``.env`` file).

Expected secrets layout:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-service-role-key"

    [sync]
    local_db_path = "local_data/clinic.db"
    concurrency = 2
    upsert_retries = 2
"""

from __future__ import annotations
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import toml
from dotenv import load_dotenv

from clinic_core.errors.exceptions import ConfigurationError
from clinic_core.logging import get_logger

logger = get_logger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent
SECRETS_PATH = PROJECT_ROOT / ".streamlit" / "secrets.toml"
DEFAULT_DB_PATH = PROJECT_ROOT / "local_data" / "clinic.db"


@dataclass
class SyncSettings:
    """Tunables for connectivity probing, retries and per-entity concurrency."""
    local_db_path: Path = DEFAULT_DB_PATH
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Connectivity: attempts, sleeping backoff_base * 2**attempt seconds between
    connect_retries: int = 3
    backoff_base: float = 1.0
    probe_timeout: float = 5.0

    # Per-record upsert retries
    upsert_retries: int = 2
    upsert_retry_delay: float = 1.0

    # Upserts in flight per entity
    concurrency: int = 2

    def validate(self) -> SyncSettings:
        """Raise ConfigurationError if a tunable is out of range."""
        for name in ("connect_retries", "upsert_retries", "concurrency"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(
                    f"{name} must be a positive integer, got {value!r}",
                    config_key=name,
                    expected_type="int >= 1",
                )
        for name in ("backoff_base", "upsert_retry_delay", "probe_timeout"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value < 0:
                raise ConfigurationError(
                    f"{name} must be a non-negative number, got {value!r}",
                    config_key=name,
                    expected_type="float >= 0",
                )
        return self

    @property
    def has_online_credentials(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _load_secrets(path: Path) -> Dict[str, Any]:
    """Read secrets.toml, returning an empty dict if it does not exist."""
    if not path.exists():
        return {}
    try:
        return toml.load(path)
    except toml.TomlDecodeError as e:
        raise ConfigurationError(
            f"Could not parse {path}: {e}",
            config_key=str(path),
        ) from e


def load_settings(secrets_path: Optional[Path] = None) -> SyncSettings:
    """
    Build SyncSettings from secrets.toml with environment fallback.

    Args:
        secrets_path: Override for the secrets file location

    Returns:
        Validated SyncSettings
    """
    load_dotenv()
    secrets = _load_secrets(secrets_path or SECRETS_PATH)

    supabase = secrets.get("supabase", {})
    sync = dict(secrets.get("sync", {}))

    known = {f.name for f in fields(SyncSettings)} - {"supabase_url", "supabase_key"}
    unknown = set(sync) - known
    if unknown:
        logger.warning(f"Ignoring unknown [sync] settings: {sorted(unknown)}")

    overrides = {k: v for k, v in sync.items() if k in known}

    db_path = os.getenv("CLINIC_SYNC_DB_PATH") or overrides.pop("local_db_path", None)
    if db_path:
        overrides["local_db_path"] = Path(db_path)

    settings = SyncSettings(
        supabase_url=supabase.get("url") or os.getenv("SUPABASE_URL"),
        supabase_key=(
            supabase.get("key")
            or os.getenv("SUPABASE_SERVICE_ROLE_KEY")
            or os.getenv("SUPABASE_KEY")
        ),
        **overrides,
    )

    if not settings.has_online_credentials:
        logger.warning("Supabase credentials not configured; online database will be unreachable")

    return settings.validate()
