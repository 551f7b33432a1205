"""Start-up configuration: environment file and logging."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigLocation(Enum):
    """Where the configuration files live."""

    DOCKER = "docker"
    NOT_DOCKER = "not_docker"

    def __str__(self) -> str:
        return self.value


def config_location() -> ConfigLocation:
    """Read ``CONFIG_LOCATION`` from the environment (default ``not_docker``)."""
    raw = os.environ.get("CONFIG_LOCATION", ConfigLocation.NOT_DOCKER.value)
    try:
        return ConfigLocation(raw)
    except ValueError:
        raise ValueError(f"CONFIG_LOCATION: invalid value {raw!r}") from None


def _configure_logging() -> None:
    name = os.environ.get("LOG_LEVEL", "ERROR").upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        level = logging.ERROR
    logging.basicConfig(level=level)


def init(package_name: str) -> str:
    """Load the ``.env`` file, set up logging and return the path tried."""
    location = config_location()
    print(f"[init] config_location: {location}")

    if location is ConfigLocation.DOCKER:
        dot_env_path = ".env"
    else:
        dot_env_path = f"{package_name}/.env"

    if Path(dot_env_path).is_file():
        load_dotenv(dot_env_path, override=False)
        print("[init] .env found")
    else:
        print("[init] .env not found")

    env_file_version = os.environ.get("ENV_FILE_VERSION", ".env not loaded")
    print(f"[init] dot_env_path: {dot_env_path}; env_file_version: {env_file_version}")

    _configure_logging()
    logger.info("[init] .env file: %s", dot_env_path)

    print("[init] done")
    return dot_env_path