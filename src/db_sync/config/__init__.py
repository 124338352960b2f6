"""Connection profiles and sync defaults from ``db.toml``.

Usage:
    >>> from db_sync.config import load_db_config
    >>> config = load_db_config()
    >>> config.profiles["local"].url, config.backup_dir
"""

from db_sync.config.loader import load_db_config
from db_sync.config.models import DatabaseConfig, DatabaseProfile, SyncSettings

__all__ = ["load_db_config", "DatabaseConfig", "DatabaseProfile", "SyncSettings"]
