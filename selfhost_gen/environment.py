"""Build the immutable environment snapshot used for interpolation."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = Path(".env")

# Variables the shipped topology reads, with their literal defaults ("" unless stated).
RECOGNIZED_VARIABLES = {
    "INSTANCE_NAME": "",
    "INSTANCE_SECRET": "",
    "CONVEX_RELEASE_VERSION_DEV": "",
    "ACTIONS_USER_TIMEOUT_SECS": "",
    "URL_BASE": "",
    "SITE_URL_BASE": "",
    "DATABASE_URL": "",
    "DISABLE_BEACON": "",
    "REDACT_LOGS_TO_CLIENT": "",
    "RUST_LOG": "info",
    "RUST_BACKTRACE": "",
    "DASHBOARD_PORT": "6791",
}


def snapshot(values: Optional[Mapping[str, Optional[str]]] = None) -> Mapping[str, str]:
    """Freeze a mapping into a read-only snapshot, dropping valueless keys."""
    cleaned = {str(key): str(value) for key, value in (values or {}).items() if value is not None}
    return MappingProxyType(cleaned)


def load_environment(
    env_file: Optional[Path] = None,
    use_process_env: bool = True,
) -> Mapping[str, str]:
    """Merge a dotenv file with the process environment (process wins).

    Without ``env_file`` a ``.env`` in the working directory is read when
    present; an explicitly requested file that does not exist is an error.
    """
    merged = {}
    if env_file is not None:
        if not env_file.exists():
            raise FileNotFoundError(f"Env file not found: {env_file}")
        target: Optional[Path] = env_file
    elif DEFAULT_ENV_FILE.exists():
        target = DEFAULT_ENV_FILE
    else:
        logger.debug("No .env file found; using process environment only")
        target = None

    if target is not None:
        logger.info("Loading env file: %s", target)
        merged.update({key: value for key, value in dotenv_values(target).items() if value is not None})

    if use_process_env:
        merged.update(os.environ)
    return snapshot(merged)
