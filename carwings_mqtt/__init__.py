"""Bridge a Nissan Carwings telemetry account to an MQTT broker."""

from __future__ import annotations

from .bridge import run_bridge
from .bus_session import BusSession, ConnectionParameters
from .core_types import BatteryStatus, DailyStatistics, PublishedFact, RemoteAccount
from .dispatcher import Command, CommandDispatcher
from .errors import ConfigError, ConnectionFailed, RemoteCallFailed
from .units import Units, format_distance

__version__ = "0.1.0"

__all__ = [
    "BatteryStatus",
    "BusSession",
    "Command",
    "CommandDispatcher",
    "ConfigError",
    "ConnectionFailed",
    "ConnectionParameters",
    "DailyStatistics",
    "PublishedFact",
    "RemoteAccount",
    "RemoteCallFailed",
    "Units",
    "format_distance",
    "run_bridge",
]
