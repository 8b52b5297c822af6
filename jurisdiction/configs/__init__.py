# jurisdiction/configs/__init__.py
"""
Loads ``.env`` (secrets) and ``config.yaml`` (tunables) once at import time.

Exposes two module-level dicts: ``env`` and ``configs``. ``${KEY}``
placeholders inside config.yaml are resolved against env first, then against
the yaml itself.
"""
import logging
import os
import re
from pathlib import Path
from typing import Union

import yaml
from dotenv import dotenv_values

logger = logging.getLogger(__name__)

ENV_KEYS = [
    "APP_NAME",
    "DEBUG",
    "SECRET_KEY",
    "JWT_ALGORITHM",
    "MONGO_URI",
    "MONGO_DB",
    "MONGO_USE_TRANSACTIONS",
]


def get_ancestor_dir(start_path: Union[str, Path], steps: int) -> Path:
    if not isinstance(steps, int) or steps < 0:
        raise ValueError("Steps must be a non-negative integer.")

    path = Path(start_path).resolve()
    if path.is_file():
        path = path.parent

    for _ in range(steps):
        original_path = path
        path = path.parent
        if path == original_path:
            raise ValueError(
                f"Cannot go up {steps} levels from '{start_path}'. "
                "Traversal went beyond the filesystem root."
            )
    return path


def _load_yaml_file(filepath: str) -> dict:
    if not os.path.exists(filepath):
        logger.warning(f"Config file not found at '{filepath}'")
        return {}
    try:
        with open(filepath, "r") as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"Error loading YAML file '{filepath}': {e}")
        return {}


def _load_env(filedir: Union[str, Path]) -> dict:
    """
    Reads ``.env`` from ``filedir`` or ``$ENV_FILE_DIR``; falls back to the
    process environment for the known keys.
    """
    candidates = [Path(filedir) / ".env"]
    if os.environ.get("ENV_FILE_DIR"):
        candidates.append(Path(os.environ["ENV_FILE_DIR"]) / ".env")
    for filepath in candidates:
        if filepath.exists():
            values = dict(dotenv_values(filepath))
            for key in ENV_KEYS:
                if os.environ.get(key) is not None:
                    values[key] = os.environ[key]
            return values
    return {key: os.environ.get(key) for key in ENV_KEYS}


def _resolve_placeholders(data, replacements: dict):
    """Recursively replaces ``${key}`` strings in nested dicts and lists."""
    if isinstance(data, dict):
        return {k: _resolve_placeholders(v, replacements) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_placeholders(item, replacements) for item in data]
    elif isinstance(data, str):
        for match in re.findall(r"\$\{(\w+)\}", data):
            value = replacements.get(match)
            if value is None:
                continue
            if data == f"${{{match}}}":
                return value
            data = data.replace(f"${{{match}}}", f"{value}")
        return data
    return data


def as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


REPO_ROOT = get_ancestor_dir(__file__, 2)
CONFIGS_DIR = os.path.dirname(os.path.abspath(__file__))

env = _load_env(REPO_ROOT)
_raw_configs = _load_yaml_file(os.path.join(CONFIGS_DIR, "config.yaml"))
configs = _resolve_placeholders(
    _raw_configs,
    {
        **(_raw_configs.get("defaults") or {}),
        **{k: v for k, v in env.items() if v is not None},
    },
)
