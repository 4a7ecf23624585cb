"""
bus_session.py

Owns the single MQTT connection of the bridge: connect with credentials,
paho-driven reconnect with back-off, per-topic subscriptions that are
reinstalled on every (re)connect, and fire-and-forget QoS 0 publishing.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, unquote, urlsplit

import paho.mqtt.client as mqtt

from .core_types import MessageHandler, PublishedFact
from .errors import ConnectionFailed
from .logging_setup import bus_logger as logger

CONNECT_WAIT_SECONDS = 3.0
RECONNECT_MIN_DELAY = 1
RECONNECT_MAX_DELAY = 30
QOS = 0

REASONS = {
    0: "success",
    1: "unacceptable_protocol_version",
    2: "identifier_rejected",
    3: "server_unavailable",
    4: "bad_username_or_password",
    5: "not_authorized",
}


@dataclass(frozen=True)
class ConnectionParameters:
    host: str
    port: int = 1883
    username: str | None = None
    password: str | None = None
    client_id: str = "carwings"
    keepalive: int = 30
    auto_reconnect: bool = True

    @property
    def url(self) -> str:
        """Broker URL for logs; the password is never rendered."""
        userinfo = ""
        if self.username:
            userinfo = quote(self.username, safe="")
            if self.password:
                userinfo += ":***"
            userinfo += "@"
        return f"tcp://{userinfo}{self.host}:{self.port}"

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> ConnectionParameters:
        """Parse ``tcp://[user[:password]@]host[:port]``.

        Extra keyword arguments (client_id, keepalive, auto_reconnect) are
        passed through.
        """
        parts = urlsplit(url)
        if parts.scheme not in ("tcp", "mqtt"):
            raise ValueError(f"unsupported broker scheme in {url!r}")
        if not parts.hostname:
            raise ValueError(f"missing broker host in {url!r}")
        return cls(
            host=parts.hostname,
            port=parts.port or 1883,
            username=unquote(parts.username) if parts.username else None,
            password=unquote(parts.password) if parts.password else None,
            **kwargs,
        )


def _reason(rc: Any) -> str:
    if isinstance(rc, int):
        return REASONS.get(rc, f"unknown_{rc}")
    return str(rc)


def _is_failure(rc: Any) -> bool:
    # paho ReasonCode exposes is_failure; plain ints are failures when non-zero
    return bool(getattr(rc, "is_failure", rc != 0))


def make_client(params: ConnectionParameters) -> mqtt.Client:
    """Build a paho client configured for ``params`` (not yet connected)."""
    client = mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2,
        client_id=params.client_id,
        protocol=mqtt.MQTTv311,
        clean_session=True,
    )
    if params.username:
        client.username_pw_set(params.username, params.password or None)
    # Reconnect backoff (let paho handle retries)
    client.reconnect_delay_set(min_delay=RECONNECT_MIN_DELAY, max_delay=RECONNECT_MAX_DELAY)
    return client


def spawn_thread(fn: Callable[[], None]) -> None:
    threading.Thread(target=fn, name="carwings-handler", daemon=True).start()


class BusSession:
    """One broker connection plus the handlers bound to it.

    ``client_factory`` builds the transport client from the parameters and
    ``spawn`` runs one message delivery; tests substitute both.
    """

    def __init__(
        self,
        params: ConnectionParameters,
        client_factory: Callable[[ConnectionParameters], Any] | None = None,
        spawn: Callable[[Callable[[], None]], None] | None = None,
    ) -> None:
        self.params = params
        self._client_factory = client_factory or make_client
        self._spawn = spawn or spawn_thread
        self._handlers: dict[str, MessageHandler] = {}
        self._handshake = threading.Event()
        self._connect_error: str | None = None
        self._ever_connected = False
        self._connected = False
        self._retry_stopped = False
        self._loop_stopper: threading.Thread | None = None
        self.client: Any = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def topics(self) -> list[str]:
        return list(self._handlers)

    # ---- Subscriptions ----

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """Register ``handler(topic, payload)`` for ``topic``.

        Installed immediately when connected, and again on every reconnect.
        """
        self._handlers[topic] = handler
        if self._connected and self.client is not None:
            self._install(topic)

    def _install(self, topic: str) -> None:
        handler = self._handlers[topic]

        def _on_message(client, userdata, msg):
            payload = msg.payload
            if isinstance(payload, (bytes, bytearray)):
                payload = payload.decode("utf-8", errors="replace")
            self._spawn(lambda: self._deliver(handler, msg.topic, str(payload)))

        # message_callback_add replaces any previous callback for the topic
        self.client.message_callback_add(topic, _on_message)
        self.client.subscribe(topic, qos=QOS)
        logger.debug({"event": "mqtt_subscribed", "topic": topic, "qos": QOS})

    def _deliver(self, handler: MessageHandler, topic: str, payload: str) -> None:
        try:
            handler(topic, payload)
        except Exception:
            logger.exception({"event": "mqtt_handler_error", "topic": topic})

    # ---- Connection lifecycle ----

    def connect(self) -> BusSession:
        """Open the connection and wait for the broker's answer.

        Waits in CONNECT_WAIT_SECONDS slices until the handshake succeeds or
        fails. Raises ConnectionFailed on failure; the initial attempt is not
        retried here.
        """
        params = self.params
        self._handshake.clear()
        self._connect_error = None
        self._retry_stopped = False
        self.client = client = self._client_factory(params)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect

        logger.info(
            {
                "event": "mqtt_connect_attempt",
                "url": params.url,
                "client_id": params.client_id,
                "keepalive": params.keepalive,
                "auto_reconnect": params.auto_reconnect,
            }
        )
        try:
            client.connect(params.host, params.port, params.keepalive)
        except (OSError, ValueError) as exc:
            raise ConnectionFailed(params.url, repr(exc)) from exc
        client.loop_start()

        while not self._handshake.wait(CONNECT_WAIT_SECONDS):
            logger.info({"event": "mqtt_connect_waiting", "url": params.url})

        if self._connect_error is not None:
            client.loop_stop()
            raise ConnectionFailed(params.url, self._connect_error)
        return self

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if _is_failure(reason_code):
            logger.error(
                {"event": "mqtt_connect_failed", "rc": str(reason_code), "reason": _reason(reason_code)}
            )
            if not self._ever_connected:
                self._connect_error = _reason(reason_code)
                self._handshake.set()
            return

        if self._retry_stopped:
            client.disconnect()
            return
        reconnect = self._ever_connected
        self._connected = True
        self._ever_connected = True
        logger.info({"event": "mqtt_connected", "url": self.params.url, "reconnect": reconnect})
        # Subscriptions do not survive a transport reconnect; reinstall all
        for topic in list(self._handlers):
            self._install(topic)
        self._handshake.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        self._connected = False
        if not self._ever_connected:
            if self._connect_error is None:
                self._connect_error = f"disconnected during handshake: {_reason(reason_code)}"
            self._handshake.set()
            return
        if not _is_failure(reason_code):
            logger.info({"event": "mqtt_disconnected", "rc": str(reason_code)})
            return
        logger.warning({"event": "mqtt_connection_lost", "rc": str(reason_code)})
        if not self.params.auto_reconnect:
            self._stop_retrying(client)

    def _stop_retrying(self, client: Any) -> None:
        # loop_stop joins the network thread, so it cannot run inside its callback
        self._retry_stopped = True
        client.disconnect()
        logger.info({"event": "mqtt_reconnect_disabled", "url": self.params.url})
        self._loop_stopper = threading.Thread(
            target=client.loop_stop, name="carwings-loop-stop", daemon=True
        )
        self._loop_stopper.start()

    def close(self) -> None:
        if self.client is None:
            return
        self.client.disconnect()
        if self._loop_stopper is not None:
            self._loop_stopper.join()
        else:
            self.client.loop_stop()
        self._connected = False

    # ---- Publishing ----

    def publish(self, topic: str, value: str, retained: bool = False) -> Any:
        """QoS 0 fire-and-forget publish; delivery is not awaited."""
        if self.client is None:
            raise RuntimeError("publish before connect")
        return self.client.publish(topic, value, qos=QOS, retain=retained)

    def publish_fact(self, fact: PublishedFact) -> Any:
        return self.publish(fact.topic, fact.value, fact.retained)


def connect(
    params: ConnectionParameters,
    subscriptions: Iterable[tuple[str, MessageHandler]] = (),
    **kwargs: Any,
) -> BusSession:
    """Build a session, register ``subscriptions`` and connect it."""
    session = BusSession(params, **kwargs)
    for topic, handler in subscriptions:
        session.subscribe(topic, handler)
    return session.connect()


__all__ = [
    "CONNECT_WAIT_SECONDS",
    "QOS",
    "BusSession",
    "ConnectionParameters",
    "connect",
    "make_client",
    "spawn_thread",
]
