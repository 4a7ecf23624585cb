import re
from datetime import datetime, timedelta

from carwings_mqtt.core_types import (
    BatteryStatus,
    ChargingStatus,
    DailyStatistics,
    PluginState,
    TimeToFull,
)


class FakeMessage:
    def __init__(self, topic, payload, qos=0, retain=False):
        self.topic = topic
        self.payload = payload if isinstance(payload, bytes) else str(payload).encode()
        self.qos = qos
        self.retain = retain


class FakePublish:
    rc = 0

    def wait_for_publish(self, timeout=None):
        return True


class FakeMQTT:
    """paho-like client that keeps broker-side subscriptions separately.

    Broker subscriptions are dropped by `drop()` (clean session) while
    message callbacks stay registered client-side, the way paho behaves.
    """

    def __init__(self, connect_rc=0, connect_exc=None, auto_ack=True):
        self.connect_rc = connect_rc
        self.connect_exc = connect_exc
        self.auto_ack = auto_ack
        self.published = []
        self.subscribed = []
        self.broker_subscriptions = set()
        self.callbacks = {}
        self.connect_calls = []
        self.loop_started = False
        self.loop_stopped = False
        self.disconnect_calls = 0
        self.on_connect = None
        self.on_disconnect = None

    # ---- connection ----
    def connect(self, host, port=1883, keepalive=60):
        self.connect_calls.append((host, port, keepalive))
        if self.connect_exc is not None:
            raise self.connect_exc
        return 0

    def loop_start(self):
        self.loop_started = True
        if self.auto_ack:
            self.ack()

    def loop_stop(self):
        self.loop_stopped = True

    def disconnect(self):
        self.disconnect_calls += 1
        return 0

    def ack(self, rc=None):
        self.on_connect(self, None, {}, self.connect_rc if rc is None else rc, None)

    def drop(self, rc=7):
        self.broker_subscriptions.clear()
        self.on_disconnect(self, None, {}, rc, None)

    @property
    def loop_running(self):
        return self.loop_started and not self.loop_stopped

    def reconnect(self):
        """Retry the way paho's network loop does; nothing happens once it stopped."""
        if not self.loop_running:
            return False
        self.connect_calls.append(self.connect_calls[-1])
        self.on_connect(self, None, {}, 0, None)
        return True

    # ---- pub/sub ----
    def publish(self, topic, payload=None, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))
        return FakePublish()

    def subscribe(self, topic, qos=0):
        self.subscribed.append((topic, qos))
        self.broker_subscriptions.add(topic)
        return (0, len(self.subscribed))

    def message_callback_add(self, topic, handler):
        self.callbacks[topic] = handler

    def trigger(self, topic, payload):
        """Deliver a message if the broker holds a matching subscription."""
        delivered = 0
        for pat, cb in list(self.callbacks.items()):
            if pat in self.broker_subscriptions and self._topic_match(pat, topic):
                cb(self, None, FakeMessage(topic, payload))
                delivered += 1
        return delivered

    def _topic_match(self, pat, topic):
        # Convert MQTT wildcards to regex
        pat_re = re.escape(pat).replace("\\+", "[^/]+").replace("\\#", ".*")
        return re.fullmatch(pat_re, topic) is not None


class RecordingPublisher:
    def __init__(self):
        self.published = []
        self.facts = []

    def publish(self, topic, value, retained=False):
        self.published.append((topic, value, retained))

    def publish_fact(self, fact):
        self.facts.append(fact)
        self.publish(fact.topic, fact.value, fact.retained)


class FakeAccount:
    def __init__(
        self,
        battery=None,
        daily=None,
        update_exc=None,
        battery_exc=None,
        daily_exc=None,
    ):
        self.battery = battery or sample_battery()
        self.daily = daily or sample_daily()
        self.update_exc = update_exc
        self.battery_exc = battery_exc
        self.daily_exc = daily_exc
        self.calls = []

    def update_status(self):
        self.calls.append("update_status")
        if self.update_exc is not None:
            raise self.update_exc
        return "result-key"

    def battery_status(self):
        self.calls.append("battery_status")
        if self.battery_exc is not None:
            raise self.battery_exc
        return self.battery

    def daily_statistics(self, day):
        self.calls.append(("daily_statistics", day))
        if self.daily_exc is not None:
            raise self.daily_exc
        return self.daily


def sample_battery():
    return BatteryStatus(
        timestamp=datetime(2023, 3, 5, 14, 7, 9),
        state_of_charge=85,
        remaining=20,
        capacity=24,
        cruising_range_ac_off=100,
        cruising_range_ac_on=90.5,
        remaining_wh="19200",
        plugin_state=PluginState.CONNECTED,
        charging_status=ChargingStatus.NORMAL_CHARGING,
        time_to_full=TimeToFull(
            level1=timedelta(hours=8),
            level2=timedelta(hours=4, minutes=30),
            level2_at_6kw=timedelta(hours=2, minutes=15),
        ),
    )


def sample_daily():
    return DailyStatistics(
        target_date=datetime(2023, 3, 5),
        efficiency=6.5,
        efficiency_level=3,
        efficiency_scale="km/kWh",
        power_consumed_motor_level=4,
        power_consumed_aux_level=2,
        power_regeneration_level=5,
        power_consumed_motor=12.3,
        power_consumed_aux=1.25,
        power_regeneration=3,
    )


def build_account(cfg):
    """account_factory target used by the entrypoint tests."""
    return FakeAccount()


def build_not_an_account(cfg):
    return object()
