"""
bridge.py

Top-level orchestration: derive connection parameters from configuration,
register the command subscriptions, connect, and park the calling thread
until the process is told to stop.
"""

from __future__ import annotations

import os
import secrets
import threading
from collections.abc import Callable
from typing import Any

from . import addon_config
from .bus_session import BusSession, ConnectionParameters
from .core_types import RemoteAccount
from .dispatcher import CommandDispatcher
from .errors import ConnectionFailed
from .logging_setup import logger

EXIT_OK = 0
EXIT_CONNECT_FAILED = 1


def unique_client_id(base: str) -> str:
    """Client id that differs on every process start: ``{base}-{pid}-{hex}``."""
    return f"{base}-{os.getpid()}-{secrets.token_hex(3)}"


def build_connection_parameters(cfg: dict[str, Any]) -> ConnectionParameters:
    """Connection parameters from config; empty credentials count as unset."""
    username = str(cfg.get("mqtt_username") or "") or None
    password = str(cfg.get("mqtt_password") or "") or None
    if username is None:
        # A password without a user is meaningless to the broker
        password = None
    base_id = str(cfg.get("mqtt_client_id") or addon_config.DEFAULTS["mqtt_client_id"])
    return ConnectionParameters(
        host=str(cfg.get("mqtt_host") or addon_config.DEFAULTS["mqtt_host"]),
        port=addon_config.int_option(cfg, "mqtt_port"),
        username=username,
        password=password,
        client_id=unique_client_id(base_id),
        keepalive=addon_config.int_option(cfg, "mqtt_keepalive"),
        auto_reconnect=addon_config.bool_option(cfg, "mqtt_auto_reconnect"),
    )


def run_bridge(
    account: RemoteAccount,
    cfg: dict[str, Any],
    session_factory: Callable[[ConnectionParameters], BusSession] | None = None,
    stop_event: threading.Event | None = None,
) -> int:
    """Run the bridge until ``stop_event`` is set.

    Returns EXIT_CONNECT_FAILED when the initial connection fails, EXIT_OK
    once stopped. Without a stop event the call blocks forever.
    """
    params = build_connection_parameters(cfg)
    prefix = addon_config.topic_prefix(cfg)
    session = (session_factory or BusSession)(params)
    dispatcher = CommandDispatcher(
        session, account, prefix, units=addon_config.units(cfg)
    )
    for topic, handler in dispatcher.subscriptions():
        session.subscribe(topic, handler)

    try:
        session.connect()
    except ConnectionFailed as exc:
        logger.error({"event": "mqtt_connect_fatal", "url": params.url, "error": str(exc)})
        return EXIT_CONNECT_FAILED

    logger.info(
        {
            "event": "bridge_started",
            "url": params.url,
            "client_id": params.client_id,
            "topics": session.topics,
        }
    )
    stop = stop_event or threading.Event()
    stop.wait()
    logger.info({"event": "bridge_stopping"})
    session.close()
    return EXIT_OK


__all__ = [
    "EXIT_CONNECT_FAILED",
    "EXIT_OK",
    "build_connection_parameters",
    "run_bridge",
    "unique_client_id",
]
