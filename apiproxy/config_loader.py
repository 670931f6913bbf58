"""YAML configuration for the client, forwarding defaults and the forwarder app.

``${VAR}`` and ``$VAR`` in string values are filled from a ``.env`` file next
to the config (or ``env_path``), then from the process environment.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import dotenv_values

logger = logging.getLogger("apiproxy")

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Relative paths are taken from the project root."""
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _read_env_file(env_file: Path) -> dict[str, str]:
    if not env_file.exists():
        return {}
    logger.info("Loading environment variables from %s", env_file)
    return {key: value for key, value in dotenv_values(env_file).items() if value is not None}


def load_config(
    path: str | None = None,
    env_path: str | None = None,
    substitute_env: bool = True,
) -> dict:
    """Load the config mapping.

    ``path`` defaults to ``APIPROXY_CONFIG`` or ``configs/config_default.yaml``.
    A missing file or a document that is not a mapping raises RuntimeError.
    """
    config_path = resolve_config_path(path or os.getenv("APIPROXY_CONFIG", DEFAULT_CONFIG_PATH))
    logger.info("Loading configuration from %s", config_path)
    if not config_path.exists():
        raise RuntimeError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise RuntimeError(f"Config file must contain a mapping: {config_path}")

    if not substitute_env:
        return data
    env_file = resolve_config_path(env_path) if env_path else config_path.with_name(".env")
    return _substitute_env_vars(data, _read_env_file(env_file))


def _substitute_env_vars(obj: Any, env_values: Mapping[str, str] | None = None) -> Any:
    """Fill placeholders recursively; unset variables stay literal."""
    env_values = env_values or {}

    def lookup(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = env_values.get(name, os.getenv(name))
        if value is None:
            logger.warning("Environment variable '%s' is not set; keeping the placeholder", name)
            return match.group(0)
        return value

    if isinstance(obj, dict):
        return {key: _substitute_env_vars(value, env_values) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if isinstance(obj, str):
        return _ENV_PATTERN.sub(lookup, obj)
    return obj
