"""TOML configuration loading for collection-migrate."""

import tomllib
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from collection_migrate.config.models import MigrateConfig, MigrationSettings, StoreProfile

DEFAULT_CONFIG_FILE = "migrate.toml"


def load_config(config_path: Path | str | None = None) -> MigrateConfig:
    """Load store configuration from a TOML file.

    Args:
        config_path: Path to migrate.toml (default: ``./migrate.toml``)

    Returns:
        MigrateConfig with all profiles and migration settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_FILE
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Migration config not found: {config_path}\n"
            f"Copy migrate.toml.example to migrate.toml and configure your profiles."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path.name}: {e}") from e

    try:
        # Parse profiles
        profiles = {}
        for name, profile_data in data.get("profiles", {}).items():
            profiles[name] = StoreProfile(**profile_data)

        return MigrateConfig(
            profiles=profiles,
            migrations=MigrationSettings(**data.get("migrations", {})),
        )
    except PydanticValidationError as e:
        raise ValueError(f"Invalid config in {config_path.name}: {e}") from e
