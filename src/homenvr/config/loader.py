"""YAML configuration loading, validation and secret lookup."""

from __future__ import annotations

import logging
import os
import stat
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from homenvr.models.config import Config

logger = logging.getLogger(__name__)

# Group/other permission bits; camera passwords may be referenced from here.
_GROUP_OTHER_BITS = 0o077


class ConfigErrorCode(str, Enum):
    """Stable config error codes for the CLI and the API."""

    FILE_NOT_FOUND = "CONFIG_FILE_NOT_FOUND"
    YAML_INVALID = "CONFIG_YAML_INVALID"
    EMPTY_FILE = "CONFIG_EMPTY_FILE"
    ROOT_NOT_MAPPING = "CONFIG_ROOT_NOT_MAPPING"
    VALIDATION_FAILED = "CONFIG_VALIDATION_FAILED"
    ENV_VAR_MISSING = "CONFIG_ENV_VAR_MISSING"
    UNKNOWN = "CONFIG_UNKNOWN"


class ConfigError(Exception):
    """The configuration could not be loaded or is invalid."""

    def __init__(
        self,
        message: str,
        *,
        code: ConfigErrorCode = ConfigErrorCode.UNKNOWN,
        path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.path = path
        self.__cause__ = cause


def load_config(path: Path) -> Config:
    """Read `path` as YAML and validate it into a Config.

    Raises:
        ConfigError: missing file, bad YAML, empty file, non-mapping root,
            or a validation failure (see `ConfigError.code`)
    """
    raw = _read_yaml(path)
    if not isinstance(raw, dict):
        raise ConfigError(
            f"{path}: top level must be a mapping, not {type(raw).__name__}",
            code=ConfigErrorCode.ROOT_NOT_MAPPING,
            path=path,
        )
    return _validate(raw, path)


def load_config_from_dict(data: dict[str, Any]) -> Config:
    """Validate an already-parsed config (tests, API payloads)."""
    return _validate(data, None)


def _read_yaml(path: Path) -> Any:
    try:
        text = path.read_text()
    except FileNotFoundError as exc:
        raise ConfigError(
            f"Config file not found: {path}",
            code=ConfigErrorCode.FILE_NOT_FOUND,
            path=path,
            cause=exc,
        ) from exc
    _check_permissions(path)

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"Invalid YAML in {path}: {exc}",
            code=ConfigErrorCode.YAML_INVALID,
            path=path,
            cause=exc,
        ) from exc
    if raw is None:
        raise ConfigError(
            f"Config file is empty: {path}", code=ConfigErrorCode.EMPTY_FILE, path=path
        )
    return raw


def _validate(data: dict[str, Any], path: Path | None) -> Config:
    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(
            format_validation_error(exc, path),
            code=ConfigErrorCode.VALIDATION_FAILED,
            path=path,
            cause=exc,
        ) from exc


def format_validation_error(exc: ValidationError, path: Path | None = None) -> str:
    """One `section -> field: message` line per pydantic error."""
    where = f" ({path})" if path else ""
    lines = [f"Config validation failed{where}:"]
    for err in exc.errors():
        location = " -> ".join(str(part) for part in err["loc"]) or "<root>"
        lines.append(f"  {location}: {err['msg']}")
    return "\n".join(lines)


def resolve_env_var(env_var_name: str, required: bool = True) -> str | None:
    """Value of an environment variable; secrets never live in the YAML.

    Raises:
        ConfigError: If required and not set
    """
    value = os.environ.get(env_var_name)
    if value is None and required:
        raise ConfigError(
            f"Required environment variable not set: {env_var_name}",
            code=ConfigErrorCode.ENV_VAR_MISSING,
        )
    return value


def resolve_state_store_dsn(config: Config) -> str:
    """DSN for the inventory database. A set `dsn_env` wins over an inline `dsn`."""
    store = config.state_store
    from_env = resolve_env_var(store.dsn_env, required=store.dsn is None) if store.dsn_env else None
    dsn = from_env or store.dsn
    if not dsn:
        raise ConfigError(
            "state_store has no usable DSN",
            code=ConfigErrorCode.ENV_VAR_MISSING,
        )
    return dsn


def _check_permissions(path: Path) -> None:
    if os.name != "posix":
        return
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError:
        return
    if mode & _GROUP_OTHER_BITS:
        logger.warning(
            "Config file %s is readable by other users (mode %04o); use 0600",
            path,
            mode,
        )
