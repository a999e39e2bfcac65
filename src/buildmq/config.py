"""
Configuration management for buildmq.

Settings are merged from, lowest priority first:
1. Built-in defaults
2. The project file (.buildmq/config.yaml)
3. Environment variables
4. CLI flags (applied by the command handlers)

Environment Variables:
    BUILDMQ_CONFIG: Path to config file (default: .buildmq/config.yaml)
    BUILDMQ_ROOT_URL: Root URL of the build host (used for queue item URLs)
    BUILDMQ_JOB_PREFIX: Only notify for jobs whose name starts with this prefix
    BUILDMQ_FAILURE_CAUSES: Look up failure causes for finished runs (1 or true)
    BUILDMQ_MAX_WORKERS: Fan-out parallelism
    BUILDMQ_LOG_LEVEL: Logging level name (e.g. DEBUG, INFO)
    BUILDMQ_DRY_RUN: Global dry-run mode (1 or true)
"""

import copy
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

import yaml

from buildmq.errors import ConfigurationError


# =============================================================================
# Default Configuration
# =============================================================================

DEFAULT_CONFIG = {
    # Root URL of the build host, e.g. https://ci.example.com/
    "root_url": "",

    # Values applied to destinations that omit them
    "broker": {
        "defaults": {
            "port": 5672,
            "virtual_host": "/",
            "use_tls": False,
            "timeout_seconds": 10.0,
        },
    },

    # Broker destinations (list of records, see buildmq.destinations)
    "destinations": [],

    # Lifecycle event settings
    "events": {
        "job_prefix": "",
        "failure_causes": False,
    },

    # Fan-out settings
    "dispatch": {
        "max_workers": 1,
    },

    "logging": {
        "level": "WARNING",
    },

    "ui": {
        "mode": "plain",
    },
}


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes")


# Environment variables mapped to (config path, converter)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "BUILDMQ_ROOT_URL": ("root_url", str),
    "BUILDMQ_JOB_PREFIX": ("events.job_prefix", str),
    "BUILDMQ_FAILURE_CAUSES": ("events.failure_causes", _env_flag),
    "BUILDMQ_MAX_WORKERS": ("dispatch.max_workers", int),
    "BUILDMQ_LOG_LEVEL": ("logging.level", str.upper),
    "BUILDMQ_DRY_RUN": ("dry_run", _env_flag),
}

CONFIG_PATH_ENV = "BUILDMQ_CONFIG"
CONFIG_RELATIVE_PATH = Path(".buildmq") / "config.yaml"


# =============================================================================
# Configuration Class
# =============================================================================

class Config:
    """
    Layered buildmq settings.

    Layers, later ones winning: built-in defaults, the project YAML file,
    then `BUILDMQ_*` environment variables. CLI flags are applied by the
    command handlers on top of what this returns.

    Attributes:
        config_path: Path of the YAML file (it may not exist)
        project_root: Directory holding `.buildmq/`

    Example:
        >>> config = Config()
        >>> config.get("broker.defaults.port")
        5672
    """

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        project_root: Optional[Union[str, Path]] = None,
    ):
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.config_path = self._resolve_path(config_path)
        self._config = self._load_config()

    def _resolve_path(self, explicit: Optional[Union[str, Path]]) -> Path:
        if explicit:
            return Path(explicit)
        from_env = os.environ.get(CONFIG_PATH_ENV)
        if from_env:
            return Path(from_env)
        return self.project_root / CONFIG_RELATIVE_PATH

    def _read_file(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Config file {self.config_path} is not valid YAML: {exc}")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file {self.config_path} must contain a mapping at the top level."
            )
        return data

    def _load_config(self) -> Dict[str, Any]:
        merged = _deep_merge(DEFAULT_CONFIG, self._read_file())
        for env_var, (key, convert) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_var)
            if raw is None:
                continue
            try:
                _set_nested(merged, key, convert(raw))
            except ValueError:
                raise ConfigurationError(f"Invalid value for {env_var}: {raw!r}")
        return merged

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a value by dot-separated key path.

        Example:
            >>> config.get("events.job_prefix")
            ''
            >>> config.get("nonexistent", "fallback")
            'fallback'
        """
        return _get_nested(self._config, key, default)

    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write the merged settings as YAML and return the path written."""
        target = Path(path) if path else self.config_path
        _write_yaml(target, self._config)
        return target

    def __repr__(self) -> str:
        return f"Config(config_path={self.config_path}, project_root={self.project_root})"


# =============================================================================
# Module-level convenience functions
# =============================================================================

# Used by the CLI only; library code receives Config explicitly.
_cli_config: Optional[Config] = None


def get_config(
    config_path: Optional[Union[str, Path]] = None,
    project_root: Optional[Union[str, Path]] = None,
    reload: bool = False,
) -> Config:
    """Return the CLI's Config, building it on first use or when `reload` is set."""
    global _cli_config

    if reload or _cli_config is None:
        _cli_config = Config(config_path=config_path, project_root=project_root)
    return _cli_config


def init_config(
    project_root: Optional[Union[str, Path]] = None,
    overwrite: bool = False,
    **sections: Any,
) -> Path:
    """
    Write a starter `.buildmq/config.yaml`.

    Keyword arguments replace top-level keys of the defaults; mapping values
    are merged into the matching default section instead.

    Raises:
        FileExistsError: If the file exists and `overwrite` is false.

    Example:
        >>> init_config(root_url="https://ci.example.com/")
        PosixPath('.buildmq/config.yaml')
    """
    root = Path(project_root) if project_root else Path.cwd()
    target = root / CONFIG_RELATIVE_PATH

    if target.exists() and not overwrite:
        raise FileExistsError(f"Config file already exists: {target}.")

    data = _deep_copy(DEFAULT_CONFIG)
    for key, value in sections.items():
        current = data.get(key)
        data[key] = _deep_merge(current, value) if isinstance(current, dict) and isinstance(value, dict) else value

    _write_yaml(target, data)
    return target


# =============================================================================
# Helper Functions
# =============================================================================

def _write_yaml(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def _deep_copy(d: Dict[str, Any]) -> Dict[str, Any]:
    return copy.deepcopy(d)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge `override` into a copy of `base`; nested dicts merge, lists are replaced."""
    result = _deep_copy(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _get_nested(d: Dict[str, Any], key: str, default: Any = None) -> Any:
    node: Any = d
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def _set_nested(d: Dict[str, Any], key: str, value: Any) -> None:
    *parents, leaf = key.split(".")
    node = d
    for part in parents:
        if not isinstance(node.get(part), dict):
            node[part] = {}
        node = node[part]
    node[leaf] = value
