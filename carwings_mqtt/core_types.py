"""Snapshot types, enums and Protocols shared across carwings_mqtt.

Snapshots are immutable and produced fresh by each remote fetch. The
Protocols describe the minimal surfaces of the external collaborators
(remote account, MQTT client) that the bridge relies on.
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, NamedTuple, Protocol, runtime_checkable

# Handler signature used by BusSession subscriptions: (topic, payload)
MessageHandler = Callable[[str, str], None]


class PluginState(enum.Enum):
    NOT_CONNECTED = "not connected"
    CONNECTED = "connected"
    QC_CONNECTED = "QC connected"
    INVALID = "unknown"

    def __str__(self) -> str:
        return self.value


class ChargingStatus(enum.Enum):
    NOT_CHARGING = "not charging"
    NORMAL_CHARGING = "charging"
    RAPIDLY_CHARGING = "rapidly charging"
    INVALID = "unknown"

    def __str__(self) -> str:
        return self.value


# Zero value for timestamps; rendered as 0001-01-01T00:00:00
EPOCH_ZERO = datetime(1, 1, 1)


@dataclass(frozen=True)
class TimeToFull:
    level1: timedelta = timedelta(0)
    level2: timedelta = timedelta(0)
    level2_at_6kw: timedelta = timedelta(0)


@dataclass(frozen=True)
class BatteryStatus:
    """Battery state as reported by the remote account.

    Cruising ranges are raw distances in miles; the Unit Formatter converts
    them for display.
    """

    timestamp: datetime = EPOCH_ZERO
    state_of_charge: int = 0
    remaining: int = 0
    capacity: int = 0
    cruising_range_ac_off: float = 0
    cruising_range_ac_on: float = 0
    remaining_wh: str | int = ""
    plugin_state: PluginState = PluginState.NOT_CONNECTED
    charging_status: ChargingStatus = ChargingStatus.NOT_CHARGING
    time_to_full: TimeToFull = field(default_factory=TimeToFull)

    @classmethod
    def empty(cls) -> BatteryStatus:
        return cls()


@dataclass(frozen=True)
class DailyStatistics:
    target_date: datetime = EPOCH_ZERO
    efficiency: float = 0.0
    efficiency_level: int = 0
    efficiency_scale: str = ""
    power_consumed_motor_level: int = 0
    power_consumed_aux_level: int = 0
    power_regeneration_level: int = 0
    power_consumed_motor: float = 0.0
    power_consumed_aux: float = 0.0
    power_regeneration: float = 0.0

    @classmethod
    def empty(cls) -> DailyStatistics:
        return cls()


class PublishedFact(NamedTuple):
    topic: str
    value: str
    retained: bool


# ---------------------------
# Minimal external client surfaces
# ---------------------------
@runtime_checkable
class RemoteAccount(Protocol):
    """Remote telemetry account. Failures are signalled by raising."""

    def update_status(self) -> Any:
        """Ask the vehicle to refresh its battery status."""

    def battery_status(self) -> BatteryStatus:
        """Return the most recent battery status snapshot."""

    def daily_statistics(self, day: date) -> DailyStatistics:
        """Return the energy statistics for ``day``."""


@runtime_checkable
class Publisher(Protocol):
    """Anything the dispatcher can publish through (BusSession in production)."""

    def publish(self, topic: str, value: str, retained: bool = ...) -> Any:
        """Publish a string value to a topic."""

    def publish_fact(self, fact: PublishedFact) -> Any:
        """Publish one decomposed fact with its own retain flag."""


__all__ = [
    "EPOCH_ZERO",
    "BatteryStatus",
    "ChargingStatus",
    "DailyStatistics",
    "MessageHandler",
    "PluginState",
    "PublishedFact",
    "Publisher",
    "RemoteAccount",
    "TimeToFull",
]
