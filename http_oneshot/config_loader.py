"""Config Loader - Reads client settings from YAML.

String values may reference environment variables as ``${NAME}``; they are
expanded before validation, so numeric settings can come from the
environment too.

Example config:
    connect_timeout: 0.5
    request_timeout: 10
    headers:
      Authorization: Bearer ${API_TOKEN}
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from http_oneshot.executor import Executor
from http_oneshot.failures import OneshotError
from http_oneshot.models import ClientConfig
from http_oneshot.timeouts import TimeoutController

_ENV_REF = re.compile(r"\$\{(?P<name>[^}]+)\}")


class ConfigError(OneshotError):
    """Raised when a config file cannot be read or is invalid."""


def load_client_config(path: Path) -> ClientConfig:
    """Read a YAML client config file. An empty file yields the defaults.

    Raises:
        ConfigError: If the file is missing, is not a YAML mapping, references
            an unset variable, or fails validation.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ConfigError(
            f"{path}: expected a mapping at the top level, got {type(document).__name__}"
        )

    try:
        return ClientConfig.model_validate(expand_env_refs(document))
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure in {path}: {e}") from e


def build_executor(config: ClientConfig) -> Executor:
    """Create an Executor with its own TimeoutController seeded from config."""
    timeouts = TimeoutController(
        connect_timeout=config.connect_timeout,
        default_request_timeout=config.request_timeout,
    )
    return Executor(timeouts=timeouts, headers=config.headers)


def expand_env_refs(node: Any) -> Any:
    """Expand ${NAME} in every string of a parsed YAML document."""
    if isinstance(node, dict):
        return {key: expand_env_refs(value) for key, value in node.items()}
    if isinstance(node, list):
        return [expand_env_refs(item) for item in node]
    if isinstance(node, str):
        return _ENV_REF.sub(_env_value, node)
    return node


def _env_value(match: re.Match) -> str:
    name = match.group("name")
    try:
        return os.environ[name]
    except KeyError:
        raise ConfigError(f"Environment variable '{name}' is not set") from None
