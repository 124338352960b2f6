"""Adapter construction from ``db.toml`` profiles.

The active profile is named by the ``<PREFIX>DB_PROFILE`` environment
variable or, after a successful ``connect``, by the ``.db-profile`` file in
the working directory.  The variable wins so CI runs can override a local
choice without touching the file.

Usage:
    from db_sync.factory import connect, get_adapter

    result = await connect("local")      # verifies and remembers "local"
    adapter = await get_adapter()         # uses the remembered profile
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from db_sync.adapters.mysql import AsyncMySQLAdapter
from db_sync.config.loader import load_db_config
from db_sync.config.models import ConnectionResult, DatabaseProfile

logger = logging.getLogger(__name__)

_PROFILE_LOCK_FILE = Path(".db-profile")

PASSWORD_PLACEHOLDER = "[YOUR-PASSWORD]"


class ProfileNotFoundError(Exception):
    """No profile selected, or the selected name is not in ``db.toml``."""


# ----------------------------------------------------------------------------
# Remembered profile
# ----------------------------------------------------------------------------


def read_profile_lock() -> str | None:
    """Profile remembered by the last successful ``connect``, if any."""
    try:
        name = _PROFILE_LOCK_FILE.read_text().strip()
    except FileNotFoundError:
        return None
    return name or None


def write_profile_lock(profile_name: str) -> None:
    _PROFILE_LOCK_FILE.write_text(profile_name)


def clear_profile_lock() -> None:
    _PROFILE_LOCK_FILE.unlink(missing_ok=True)


def get_active_profile_name(env_prefix: str = "") -> str:
    """Name of the profile to use: env variable first, then the lock file.

    Raises:
        ProfileNotFoundError: Neither is set.
    """
    variable = f"{env_prefix}DB_PROFILE"
    name = os.environ.get(variable) or read_profile_lock()
    if name:
        return name
    raise ProfileNotFoundError(
        f"No database profile selected. Set {variable}=<name> and run: db-sync connect"
    )


def get_active_profile(
    env_prefix: str = "", config_path: Path | None = None
) -> tuple[str, DatabaseProfile]:
    """Active profile name together with its ``db.toml`` entry."""
    name = get_active_profile_name(env_prefix=env_prefix)
    return name, _lookup_profile(name, config_path)


def _lookup_profile(profile_name: str, config_path: Path | None = None) -> DatabaseProfile:
    profiles = load_db_config(config_path).profiles
    try:
        return profiles[profile_name]
    except KeyError:
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' is not defined in db.toml. "
            f"Available profiles: {', '.join(profiles) or '(none)'}"
        ) from None


# ----------------------------------------------------------------------------
# Adapters
# ----------------------------------------------------------------------------


def resolve_url(profile: DatabaseProfile) -> str:
    """Profile URL with ``[YOUR-PASSWORD]`` replaced by the quoted password.

    Example:
        >>> resolve_url(DatabaseProfile(url="mysql://root:[YOUR-PASSWORD]@db/app",
        ...                             db_password="p@ss"))
        'mysql://root:p%40ss@db/app'
    """
    if not profile.db_password:
        return profile.url
    return profile.url.replace(PASSWORD_PLACEHOLDER, quote(profile.db_password, safe=""))


async def get_adapter(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> AsyncMySQLAdapter:
    """Build an adapter for *profile_name*, or for the active profile.

    No connection is opened until the first query.

    Raises:
        ProfileNotFoundError: No profile selected, or unknown name.
        FileNotFoundError: ``db.toml`` is missing.

    Example:
        >>> adapter = await get_adapter("local")
        >>> tables = await adapter.fetch("SHOW TABLES")
    """
    name = profile_name or get_active_profile_name(env_prefix=env_prefix)
    profile = _lookup_profile(name, config_path)
    logger.debug(f"Creating {profile.provider} adapter for profile '{name}'")
    return AsyncMySQLAdapter(database_url=resolve_url(profile))


async def connect(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> ConnectionResult:
    """Verify a profile with ``SELECT 1`` and remember it on success.

    Failures are reported in the result, never raised; the previously
    remembered profile is kept when the check fails.

    Example:
        >>> result = await connect("local")
        >>> result.success, result.error
        (True, None)
    """
    try:
        name = profile_name or get_active_profile_name(env_prefix=env_prefix)
    except ProfileNotFoundError as e:
        return ConnectionResult(success=False, error=str(e))

    try:
        adapter = await get_adapter(name, config_path=config_path)
    except (ProfileNotFoundError, FileNotFoundError) as e:
        return ConnectionResult(success=False, profile_name=name, error=str(e))

    try:
        await adapter.test_connection()
    except Exception as e:
        logger.debug(f"Connection check for '{name}' failed: {e}")
        return ConnectionResult(
            success=False, profile_name=name, error=f"Failed to connect to database: {e}"
        )
    finally:
        await adapter.close()

    write_profile_lock(name)
    logger.info(f"Connected to profile '{name}'")
    return ConnectionResult(success=True, profile_name=name)
