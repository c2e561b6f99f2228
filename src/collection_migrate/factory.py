"""Store factory and profile selection.

Profiles live in ``migrate.toml``.  The active profile is chosen from, in
order: an explicit name, the ``{env_prefix}MIGRATE_PROFILE`` environment
variable, and the ``.migrate-profile`` lock file that ``connect`` writes
after a successful connection check.

Usage:
    from collection_migrate.factory import get_store, connect_and_check

    result = await connect_and_check("local")
    store = get_store()
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from collection_migrate.adapters.base import CollectionStore
from collection_migrate.adapters.memory import InMemoryStore
from collection_migrate.adapters.sql import AsyncSqlStore
from collection_migrate.config.loader import load_config
from collection_migrate.config.models import ConnectionResult, MigrateConfig, StoreProfile
from collection_migrate.errors import MigrateError

logger = logging.getLogger(__name__)

# Relative, so it resolves against the working directory at each use
_PROFILE_LOCK_FILE = Path(".migrate-profile")


# ============================================================================
# Profile Lock File Operations
# ============================================================================


class ProfileNotFoundError(Exception):
    """Raised when no store profile is configured."""

    pass


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip() or None
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after a successful connection check.
    """
    _PROFILE_LOCK_FILE.write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    if _PROFILE_LOCK_FILE.exists():
        _PROFILE_LOCK_FILE.unlink()


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Priority:
    1. ``{env_prefix}MIGRATE_PROFILE`` env var (initial connect or CI/CD)
    2. .migrate-profile file (profile from a previous connect)
    3. Raise ProfileNotFoundError

    Args:
        env_prefix: Prefix for the environment variable, e.g. ``"APP_"``
            reads ``APP_MIGRATE_PROFILE``.

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_var = f"{env_prefix}MIGRATE_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No store profile configured.\n"
        f"Run: {env_var}=<name> collection-migrate connect"
    )


def resolve_profile(
    profile_name: str | None = None,
    env_prefix: str = "",
    config: MigrateConfig | None = None,
) -> tuple[str, StoreProfile]:
    """Resolve the active profile name and its configuration.

    Raises:
        ProfileNotFoundError: If no profile is configured or the name is
            not in the config.
        FileNotFoundError: If migrate.toml does not exist.
    """
    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)
    if config is None:
        config = load_config()

    if profile_name not in config.profiles:
        available = ", ".join(config.profiles) or "none"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found. Available: {available}"
        )
    return profile_name, config.profiles[profile_name]


# ============================================================================
# Store Factory
# ============================================================================


def resolve_url(profile: StoreProfile) -> str:
    """Resolve profile URL with password substitution.

    Example:
        >>> resolve_url(StoreProfile(url="postgresql://app:[YOUR-PASSWORD]@db/app", db_password="p@ss"))
        'postgresql://app:p%40ss@db/app'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def get_store(
    profile_name: str | None = None,
    env_prefix: str = "",
    config: MigrateConfig | None = None,
) -> CollectionStore:
    """Create a store for a profile.

    Args:
        profile_name: Profile from migrate.toml.  When ``None`` the active
            profile is used (see ``get_active_profile_name``).
        env_prefix: Prefix for environment variable lookup.
        config: Pre-loaded config; loaded from ``./migrate.toml`` when
            ``None``.

    Returns:
        ``InMemoryStore`` for the ``memory`` provider, ``AsyncSqlStore``
        otherwise.  The caller closes it.

    Raises:
        ProfileNotFoundError: If no usable profile is configured.
        ValueError: If a SQL profile has no URL.
    """
    if config is None:
        config = load_config()
    name, profile = resolve_profile(profile_name, env_prefix, config)

    if profile.provider == "memory":
        logger.debug(f"Using in-memory store for profile {name}")
        return InMemoryStore()

    url = resolve_url(profile)
    if not url:
        raise ValueError(f"Profile '{name}' has no url")

    settings = config.migrations
    logger.debug(f"Using {profile.provider} store for profile {name}")
    return AsyncSqlStore(
        url,
        collections_table=settings.collections_table,
        markers_table=settings.markers_table,
        lock_key=settings.lock_key,
    )


async def connect_and_check(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | str | None = None,
) -> ConnectionResult:
    """Connect to a profile's store and record it as the active profile.

    On success the profile name is written to ``.migrate-profile`` so later
    commands use it without repeating the name.

    Example:
        >>> result = await connect_and_check("local")
        >>> if result.success:
        ...     print(f"Connected to {result.profile_name}")
    """
    try:
        config = load_config(config_path)
        name, _ = resolve_profile(profile_name, env_prefix, config)
    except (FileNotFoundError, ValueError, ProfileNotFoundError) as e:
        return ConnectionResult(success=False, profile_name=profile_name, error=str(e))

    try:
        store = get_store(name, env_prefix, config)
    except ValueError as e:
        return ConnectionResult(success=False, profile_name=name, error=str(e))

    try:
        async with store.unit_of_work() as uow:
            collections = await uow.list_collections()
            markers = await uow.get_applied_markers()
    except (MigrateError, OSError) as e:
        return ConnectionResult(
            success=False,
            profile_name=name,
            error=f"Failed to connect to store: {e}",
        )
    finally:
        await store.close()

    write_profile_lock(name)
    return ConnectionResult(
        success=True,
        profile_name=name,
        collection_count=len(collections),
        applied_count=len(markers),
    )
