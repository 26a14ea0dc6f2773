from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from file_lister.config import DEFAULT_EXCLUDES, ExclusionSet
from file_lister.exceptions import ConfigFileError

ENV_PREFIX = "FILE_LISTER_"
ENV_KEYS = ("exclude", "prompt", "log_file")


class Settings(BaseModel):
    """Configuration settings for the file_lister module."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    directory: Path = Field(..., description="Directory to process.")
    prompt: str = Field(default="", description="Prompt appended at the end of the output.")
    exclude: str = Field(
        default="",
        description="Comma-separated list of directories/patterns to exclude (supports glob patterns).",
    )
    output: Path | None = Field(default=None, description="Output file; stdout when unset.")
    no_tree: bool = Field(default=False, description="Do not render the file tree section.")
    default_excludes: bool = Field(
        default=False,
        description="Also exclude common VCS and tool directories.",
    )
    config: Path | None = Field(default=None, description="YAML configuration file.")
    log_file: str = Field(default="", description="Log file path.")
    quiet: bool = Field(default=False, description="Only log errors.")

    @field_validator("exclude", mode="before")
    @classmethod
    def _join_exclude(cls, value: Any) -> Any:  # noqa: ANN401
        if isinstance(value, (list, tuple)):
            return ",".join(str(v) for v in value)
        return "" if value is None else value

    def exclusion_set(self) -> ExclusionSet:
        """Build the validated exclusion set for this run.

        Raises:
            MalformedExclusionPatternError: if one of the patterns is invalid.

        Returns:
            ExclusionSet: the user patterns, plus `DEFAULT_EXCLUDES` when requested.
        """
        extra = DEFAULT_EXCLUDES if self.default_excludes else ()
        return ExclusionSet.parse(self.exclude, extra=extra)


def load_config_file(path: Path) -> dict[str, Any]:
    """Load a YAML configuration file.

    Keys are the `Settings` field names; dashes are accepted in place of
    underscores (`log-file`).

    Args:
        path (Path): the YAML file to read.

    Raises:
        ConfigFileError: if the file cannot be read or parsed, or is not a mapping.

    Returns:
        dict[str, Any]: the configuration values.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(path=path, reason=str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigFileError(path=path, reason="top-level value must be a mapping")
    known = set(Settings.model_fields)
    values: dict[str, Any] = {}
    for key, value in data.items():
        name = str(key).replace("-", "_")
        if name not in known:
            raise ConfigFileError(path=path, reason=f"unknown key {key!r}")
        values[name] = value
    return values


def env_defaults(env_file: str | Path | None = None) -> dict[str, Any]:
    """Read `FILE_LISTER_*` defaults from a `.env` file.

    Args:
        env_file: the `.env` file to read; the nearest one from the current
            directory when None.

    Returns:
        dict[str, Any]: settings values keyed by field name.
    """
    path = str(env_file) if env_file else find_dotenv(usecwd=True)
    if not path:
        return {}
    raw = dotenv_values(path)
    values: dict[str, Any] = {}
    for key in ENV_KEYS:
        value = raw.get(f"{ENV_PREFIX}{key.upper()}")
        if value:
            values[key] = value
    return values


def resolve_settings(
    cli_values: dict[str, Any],
    *,
    env_file: str | Path | None = None,
) -> Settings:
    """Merge configuration sources into a `Settings` instance.

    Precedence is CLI > YAML config file > `.env` defaults > model defaults.
    CLI values left to `None` are treated as not given.

    Args:
        cli_values (dict[str, Any]): parsed command line values.
        env_file: optional `.env` file, see `env_defaults`.

    Raises:
        ConfigFileError: if the configuration file is invalid.

    Returns:
        Settings: the merged settings.
    """
    given = {k: v for k, v in cli_values.items() if v is not None}
    merged: dict[str, Any] = env_defaults(env_file)
    config = given.get("config")
    if config:
        merged.update(load_config_file(Path(config)))
    merged.update(given)
    return Settings(**merged)
