from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .units import Units

logger = logging.getLogger(__name__)

# Public module-level handles; populated by init_config()
CONFIG: dict[str, Any] = {}
CONFIG_SOURCE: Path | None = None

DEFAULTS: dict[str, Any] = {
    "mqtt_host": "localhost",
    "mqtt_port": 1883,
    "mqtt_username": "",
    "mqtt_password": "",
    "mqtt_topic": "carwings",
    "mqtt_client_id": "carwings",
    "mqtt_keepalive": 30,
    "mqtt_auto_reconnect": True,
    "units": "km",
    "log_level": "INFO",
    "account_factory": "",
}

# Environment overrides applied last; value is the config key
ENV_OVERRIDES = {
    "MQTT_HOST": "mqtt_host",
    "MQTT_PORT": "mqtt_port",
    "MQTT_USERNAME": "mqtt_username",
    "MQTT_PASSWORD": "mqtt_password",
    "MQTT_BASE": "mqtt_topic",
    "MQTT_CLIENT_ID": "mqtt_client_id",
    "MQTT_KEEPALIVE": "mqtt_keepalive",
    "CARWINGS_UNITS": "units",
    "LOG_LEVEL": "log_level",
    "ACCOUNT_FACTORY": "account_factory",
}


def _candidate_paths() -> list[Path]:
    """Ordered YAML config locations (env override, HA add-on, then local)."""
    env_path = os.environ.get("CONFIG_PATH")
    paths: list[Path] = []
    if env_path:
        paths.append(Path(env_path))
    paths.extend(
        [
            Path("/data/config.yaml"),  # HA add-on standard
            Path("/config/config.yaml"),
            Path(__file__).parent / "config.yaml",
        ]
    )
    return paths


def _options_path() -> Path:
    return Path(os.environ.get("OPTIONS_PATH", "/data/options.json"))


def _load_options_json(path: Path | None = None) -> tuple[dict[str, Any], Path | None]:
    """
    Load Home Assistant add-on options (JSON). Returns (data, source_path).
    """
    path = path or _options_path()
    if not path.exists():
        logger.debug("[CONFIG] options.json not found: %s", path)
        return {}, None
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        logger.warning("[CONFIG] Failed to parse options.json %s: %s", path, exc)
        return {}, None
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("[CONFIG] Failed to read options.json %s: %s", path, exc)
        return {}, None
    if not isinstance(data, dict):
        logger.warning("[CONFIG] options.json root not a mapping: %s", path)
        return {}, None
    logger.info("[CONFIG] Loaded options from: %s", path)
    return data, path


def _load_yaml_cfg(
    paths: list[Path] | None = None,
) -> tuple[dict[str, Any], Path | None]:
    """
    Load YAML config from the first valid candidate path.
    Returns (data, source_path). Empty dict if none valid.
    """
    candidates = paths or _candidate_paths()
    for pth in candidates:
        if not pth.exists():
            logger.debug("[CONFIG] Path not found: %s", pth)
            continue
        try:
            with pth.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            logger.warning("[CONFIG] Failed to parse YAML %s: %s", pth, exc)
            continue
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("[CONFIG] Failed to read YAML %s: %s", pth, exc)
            continue
        if not isinstance(data, dict):
            logger.warning("[CONFIG] YAML root not a mapping: %s", pth)
            continue
        logger.info("[CONFIG] Loaded YAML config from: %s", pth)
        return data, pth
    return {}, None


def _env_overrides() -> dict[str, Any]:
    out: dict[str, Any] = {}
    for env_key, cfg_key in ENV_OVERRIDES.items():
        val = os.environ.get(env_key)
        if val is not None and val != "":
            out[cfg_key] = val
    return out


def init_config() -> tuple[dict[str, Any], Path | None]:
    """Populate module-level CONFIG & CONFIG_SOURCE and return them.

    Precedence, lowest first: DEFAULTS, YAML, options.json, environment.
    """
    global CONFIG_SOURCE
    opts, opts_src = _load_options_json()
    yml, yml_src = _load_yaml_cfg()

    merged: dict[str, Any] = dict(DEFAULTS)
    merged.update(yml)
    merged.update(opts)
    merged.update(_env_overrides())

    if not (opts or yml):
        logger.warning("[CONFIG] No options.json or YAML found; using defaults.")

    CONFIG.clear()
    CONFIG.update(merged)
    CONFIG_SOURCE = opts_src or yml_src
    logger.debug("[CONFIG] Active source: %s", CONFIG_SOURCE)
    return CONFIG, CONFIG_SOURCE


def load_config(force: bool = False) -> tuple[dict[str, Any], Path | None]:
    """
    Produce the effective configuration, cached after the first call.
    Returns (config_dict, primary_source_path).
    """
    if CONFIG and not force:
        return CONFIG, CONFIG_SOURCE
    return init_config()


def _truthy(val: Any) -> bool:
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def topic_prefix(cfg: dict[str, Any]) -> str:
    """Normalised base topic; wildcards are rejected."""
    raw = str(cfg.get("mqtt_topic") or DEFAULTS["mqtt_topic"]).strip().strip("/")
    if not raw:
        raise ConfigError("mqtt_topic must not be empty")
    if "#" in raw or "+" in raw:
        raise ConfigError(f"wildcard in mqtt_topic {raw!r} is unsafe for pub/sub")
    return raw


def units(cfg: dict[str, Any]) -> Units:
    try:
        return Units.parse(cfg.get("units") or DEFAULTS["units"])
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def int_option(cfg: dict[str, Any], key: str) -> int:
    raw = cfg.get(key, DEFAULTS.get(key))
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


def bool_option(cfg: dict[str, Any], key: str) -> bool:
    return _truthy(cfg.get(key, DEFAULTS.get(key)))


__all__ = [
    "CONFIG",
    "CONFIG_SOURCE",
    "DEFAULTS",
    "ENV_OVERRIDES",
    "bool_option",
    "init_config",
    "int_option",
    "load_config",
    "topic_prefix",
    "units",
]
