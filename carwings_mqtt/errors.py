"""Exception types raised by the bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for bridge errors."""


class ConfigError(BridgeError):
    """Configuration is missing or invalid."""


class ConnectionFailed(BridgeError):
    """The initial broker handshake failed."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"can't connect to mqtt-server {url}: {reason}")
        self.url = url
        self.reason = reason


class RemoteCallFailed(BridgeError):
    """A call against the remote telemetry account failed."""

    def __init__(self, call: str, cause: BaseException) -> None:
        super().__init__(f"{call} failed: {cause}")
        self.call = call
        self.cause = cause


__all__ = [
    "BridgeError",
    "ConfigError",
    "ConnectionFailed",
    "RemoteCallFailed",
]
