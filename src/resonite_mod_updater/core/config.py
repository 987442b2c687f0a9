"""
Updater configuration.

The engine receives a resolved UpdaterConfig; it never reads or writes
a settings file. Values come from the environment and are overridden by
explicit arguments (usually CLI options).
"""

import os
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

from resonite_mod_updater.core.exceptions import ConfigurationError

RESONITE_MOD_LOADER_SOURCE = "https://github.com/resonite-modding-group/ResoniteModLoader"

_ENV_VARS = {
    "mods_folder": "RMU_MODS_FOLDER",
    "dry_run": "RMU_DRY_RUN",
    "library_source": "RMU_LIBRARY_SOURCE",
    "api_url": "RMU_API_URL",
    "web_url": "RMU_WEB_URL",
    "timeout_seconds": "RMU_TIMEOUT",
}
_TOKEN_ENV_VARS = ("RMU_TOKEN", "GITHUB_TOKEN")


def default_mods_folder() -> Path:
    """Return the Steam install location of the Resonite mods folder."""
    if sys.platform == "win32":
        program_files = os.environ.get("PROGRAMFILES(X86)", r"C:\Program Files (x86)")
        return Path(program_files) / "Steam" / "steamapps" / "common" / "Resonite" / "rml_mods"
    return Path.home() / ".steam" / "steam" / "steamapps" / "common" / "Resonite" / "rml_mods"


class UpdaterConfig(BaseModel):
    """Configuration bundle for one update run."""

    mods_folder: Path | None = None
    token: str | None = None
    dry_run: bool = False
    library_source: str = RESONITE_MOD_LOADER_SOURCE
    api_url: str = "https://api.github.com"
    web_url: str = "https://github.com"
    timeout_seconds: float = 60
    max_retries: int = 3
    retry_delay_seconds: float = 60

    @field_validator("token", mode="before")
    @classmethod
    def _blank_token_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("api_url", "web_url", "library_source")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def has_token(self) -> bool:
        """Return True if an API credential is configured."""
        return self.token is not None

    def masked_token(self) -> str | None:
        """Return the token in a form safe for display."""
        return "********" if self.token else None

    def require_mods_folder(self) -> Path:
        """
        Return the configured mods folder.

        Raises:
            ConfigurationError: If it is unset or not a directory
        """
        if self.mods_folder is None:
            raise ConfigurationError(
                "Mods folder path is not configured",
                env_var=_ENV_VARS["mods_folder"],
                config_key="mods_folder",
            )
        if not self.mods_folder.is_dir():
            raise ConfigurationError(
                f"Mods folder does not exist: {self.mods_folder}",
                config_key="mods_folder",
                details={"mods_folder": str(self.mods_folder)},
            )
        return self.mods_folder


def load_config(**overrides: Any) -> UpdaterConfig:
    """
    Load configuration from environment, then apply overrides.

    Environment variables:
    - RMU_MODS_FOLDER: Path to the rml_mods folder
    - RMU_TOKEN / GITHUB_TOKEN: GitHub token, enables the release API
    - RMU_DRY_RUN: Check for updates without installing them
    - RMU_LIBRARY_SOURCE: Repository to update ResoniteModLoader from
    - RMU_API_URL / RMU_WEB_URL: GitHub endpoints
    - RMU_TIMEOUT: HTTP timeout in seconds

    Overrides set to None are ignored so unset CLI options fall through.

    Raises:
        ConfigurationError: If a value fails validation
    """
    values: dict[str, Any] = {"mods_folder": default_mods_folder()}
    for key, env_var in _ENV_VARS.items():
        raw = os.getenv(env_var)
        if raw:
            values[key] = raw

    for env_var in _TOKEN_ENV_VARS:
        raw = os.getenv(env_var)
        if raw:
            values["token"] = raw
            break

    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return UpdaterConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e.error_count()} error(s)",
            details={"errors": [err["loc"][0] for err in e.errors() if err.get("loc")]},
        ) from e
