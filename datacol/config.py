"""TOML-based client settings.

Loads <root>/config.toml, merges it over the built-in defaults and
applies environment overrides. The root directory defaults to
~/.datacol and can be moved with DATACOL_HOME.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, TypeAlias

from .constants import (
    CONFIG_FILE_NAME,
    CREDENTIAL_FILE_NAME,
    DEFAULT_CONTROLLER_PORT,
    KUBECONFIG_FILE_NAME,
    ROOT_DIR_NAME,
)
from .exceptions import ConfigurationError

RawConfig: TypeAlias = dict[str, Any]

_ENV_OVERRIDES: dict[str, str] = {
    "DATACOL_PROVIDER": "provider",
    "DATACOL_KUBECTL": "kubectl",
    "DATACOL_GCLOUD": "gcloud",
    "DATACOL_CONTROLLER_PORT": "controller_port",
    "DATACOL_LOG_FILE": "log_file",
    "STACK": "stack",
}


def default_root() -> Path:
    if home := os.environ.get("DATACOL_HOME"):
        return Path(home).expanduser()
    return Path.home() / ROOT_DIR_NAME


@dataclass(frozen=True, slots=True)
class ConfigPaths:
    """Filesystem layout under the root directory."""

    root: Path

    def stack_dir(self, name: str) -> Path:
        return self.root / name

    def credential_path(self, name: str) -> Path:
        return self.stack_dir(name) / CREDENTIAL_FILE_NAME

    def kubeconfig_path(self, name: str) -> Path:
        return self.stack_dir(name) / KUBECONFIG_FILE_NAME


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved client settings.

    Args:
        root: Root directory for the state store and per-stack files.
        provider: Provider backend name. Default: gcp.
        kubectl: Cluster-exec binary used by the exec bridge.
        gcloud: gcloud binary used by the GCP backend.
        controller_port: Port of the stack controller's RPC endpoint.
        stack: Active stack override (otherwise the last initialized stack).
        log_level: Console log level when logging is enabled.
        log_file: Optional log file path.
    """

    root: Path
    provider: str = "gcp"
    kubectl: str = "kubectl"
    gcloud: str = "gcloud"
    controller_port: int = DEFAULT_CONTROLLER_PORT
    stack: str | None = None
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def paths(self) -> ConfigPaths:
        return ConfigPaths(self.root)


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid settings file {path}: {e}") from e


def _env_config(environ: Mapping[str, str]) -> RawConfig:
    return {key: environ[var] for var, key in _ENV_OVERRIDES.items() if environ.get(var)}


def _build_settings(root: Path, raw: RawConfig) -> Settings:
    known = {f.name for f in fields(Settings)} - {"root"}
    unknown = set(raw) - known
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")

    values = dict(raw)
    if "controller_port" in values:
        try:
            values["controller_port"] = int(values["controller_port"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"controller_port must be an integer, got {values['controller_port']!r}"
            ) from e
    return Settings(root=root, **values)


def load_settings(
    *,
    root: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from <root>/config.toml and the environment.

    Environment variables win over the file, which wins over defaults.
    """
    environ = os.environ if environ is None else environ
    root = root or default_root()

    file_cfg = _read_toml(root / CONFIG_FILE_NAME)
    merged = _deep_merge(file_cfg, _env_config(environ))
    return _build_settings(root, merged)
