"""
dispatcher.py

Command handling for the two trigger topics. A trigger runs the remote
fetch, publishes the decomposed snapshot and then acknowledges with "0" on
the command topic. Remote failures are logged and publishing continues with
whatever snapshot is available.
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from datetime import date
from typing import Any

from .core_types import (
    BatteryStatus,
    DailyStatistics,
    MessageHandler,
    PublishedFact,
    Publisher,
    RemoteAccount,
)
from .decompose import battery_facts, daily_facts
from .errors import RemoteCallFailed
from .logging_setup import (
    bridge_logger as logger,
    log_command_received,
    log_facts_published,
    log_remote_call_failed,
)
from .units import Units

TRIGGER_PAYLOAD = "1"
DONE_PAYLOAD = "0"


class Command(enum.Enum):
    TRIGGER = "trigger"
    OTHER = "other"

    @classmethod
    def decode(cls, payload: str | bytes) -> Command:
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8", errors="replace")
        return cls.TRIGGER if payload == TRIGGER_PAYLOAD else cls.OTHER


def battery_command_topic(prefix: str) -> str:
    return f"{prefix}/battery/update"


def daily_command_topic(prefix: str) -> str:
    return f"{prefix}/daily"


class CommandDispatcher:
    """Handlers for the battery and daily command topics.

    Holds no mutable state: every delivery runs its own fetch/publish
    sequence, so triggers that arrive during a fetch start overlapping
    fetches against the same account.
    """

    def __init__(
        self,
        session: Publisher,
        account: RemoteAccount,
        prefix: str,
        units: Units | str = Units.KM,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.account = account
        self.prefix = prefix
        self.units = Units.parse(units)
        self.today = today
        self.battery_topic = battery_command_topic(prefix)
        self.daily_topic = daily_command_topic(prefix)

    def subscriptions(self) -> list[tuple[str, MessageHandler]]:
        return [
            (self.battery_topic, self.handle_battery),
            (self.daily_topic, self.handle_daily),
        ]

    # ---- Handlers ----

    def handle_battery(self, topic: str, payload: str) -> bool:
        """Returns True when the payload was a trigger and facts were published."""
        command = Command.decode(payload)
        log_command_received(command.value, topic, payload)
        if command is not Command.TRIGGER:
            return False

        self._call(topic, "update_status", self.account.update_status)
        status, _ = self._call(topic, "battery_status", self.account.battery_status)
        if status is None:
            status = BatteryStatus.empty()

        self._publish_all(battery_facts(self.prefix, status, self.units))
        self._done(self.battery_topic)
        return True

    def handle_daily(self, topic: str, payload: str) -> bool:
        command = Command.decode(payload)
        log_command_received(command.value, topic, payload)
        if command is not Command.TRIGGER:
            return False

        day = self.today()
        stats, _ = self._call(
            topic, "daily_statistics", lambda: self.account.daily_statistics(day)
        )
        if stats is None:
            stats = DailyStatistics.empty()

        self._publish_all(daily_facts(self.prefix, stats))
        self._done(self.daily_topic)
        return True

    # ---- Internals ----

    def _call(
        self, topic: str, name: str, fn: Callable[[], Any]
    ) -> tuple[Any, RemoteCallFailed | None]:
        """Run one remote call; a failure is reported and returned, not raised."""
        try:
            return fn(), None
        except Exception as exc:
            err = RemoteCallFailed(name, exc)
            log_remote_call_failed(name, topic, err)
            return None, err

    def _publish_all(self, facts: list[PublishedFact]) -> None:
        for fact in facts:
            self.session.publish_fact(fact)
        if facts:
            log_facts_published(facts[0].topic.rsplit("/", 1)[0], len(facts))

    def _done(self, command_topic: str) -> None:
        self.session.publish(command_topic, DONE_PAYLOAD, False)
        logger.debug({"event": "command_done", "topic": command_topic})


__all__ = [
    "DONE_PAYLOAD",
    "TRIGGER_PAYLOAD",
    "Command",
    "CommandDispatcher",
    "battery_command_topic",
    "daily_command_topic",
]
