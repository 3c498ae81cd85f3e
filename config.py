import logging
import os
from pathlib import Path

import json5

LOGGER = logging.getLogger(__name__)

CONFIG_PATH = Path(os.environ.get("CONFIG_PATH", "/app/config.jsonc"))
ENV_PREFIX = "HTRACK_"


def _load_config(path: Path):
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json5.load(fh)
    except (OSError, ValueError):
        LOGGER.exception("Failed to load configuration from %s", path)
        return {}
    if not isinstance(data, dict):
        LOGGER.warning("Ignoring %s: top level is not an object", path)
        return {}
    LOGGER.info("Loaded configuration from %s", path)
    return data


def _resolve_config():
    candidates = [CONFIG_PATH, Path.cwd() / "config.jsonc"]
    for candidate in candidates:
        cfg = _load_config(candidate)
        if cfg:
            return cfg
    LOGGER.debug("No configuration file found; using command line and environment only")
    return {}

CONFIG = _resolve_config()


def get_env(name: str, default=None):
    return os.environ.get(name, default)


def get_setting(name: str, default=None, env=None, file_config=None):
    """Look an option up in the environment, then in the config file.

    ``name`` is the option word (``host``, ``bufsize``...). The environment
    key is ``HTRACK_<NAME>``; the config file key is the bare word.
    """
    env = os.environ if env is None else env
    file_config = CONFIG if file_config is None else file_config
    value = env.get(ENV_PREFIX + name.upper())
    if value not in (None, ""):
        return value
    return file_config.get(name, default)


def setup_logging():
    raw = get_env("LOG_LEVEL", "INFO").upper()
    if raw not in ("DEBUG", "INFO", "WARN", "ERROR"):
        raw = "INFO"
    logging.basicConfig(
        level=getattr(logging, raw),
        format="[%(asctime)s] [%(levelname)s] %(message)s"
    )


setup_logging()
