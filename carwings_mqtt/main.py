"""Main entrypoint for the carwings MQTT bridge.

Loads configuration, builds the remote account from the configured factory,
runs the bridge until SIGTERM/SIGINT and keeps an optional health heartbeat.
"""

import atexit
import contextlib
import importlib
import os
import signal
import sys
import tempfile
import threading
import time
from pathlib import Path
from typing import Any

from .addon_config import load_config
from .bridge import run_bridge
from .core_types import RemoteAccount
from .errors import ConfigError
from .logging_setup import _flush_all_log_handlers, logger, setup_logging

EXIT_CONFIG_ERROR = 2


# --- Robust health heartbeat (atomic writes + fsync) ---
def _env_truthy(val: str) -> bool:
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _write_atomic(path: str, content: str) -> None:
    p = Path(path)
    tmp = p.with_suffix(p.suffix + ".tmp") if p.suffix else Path(str(p) + ".tmp")
    try:
        with tmp.open("w") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        tmp.replace(p)
    except OSError as e:
        msg = "atomic write failed"
        raise OSError(msg) from e


def _start_heartbeat(path: str, interval: int) -> threading.Thread:
    interval = max(interval, 2)  # lower bound

    def _hb() -> None:
        while True:
            try:
                _write_atomic(path, f"{time.time()}\n")
            except OSError as e:
                logger.debug("heartbeat write failed: %s", e)
            time.sleep(interval)

    t = threading.Thread(target=_hb, name="carwings-heartbeat", daemon=True)
    t.start()
    return t


HB_PATH_MAIN = str(Path(tempfile.gettempdir()) / "carwings_heartbeat_main")


def _maybe_start_heartbeat() -> None:
    if not _env_truthy(os.environ.get("ENABLE_HEALTH_CHECKS", "0")):
        return
    interval = int(os.environ.get("HEARTBEAT_INTERVAL_SEC", "5"))
    logger.info("health check enabled: %s interval=%ss", HB_PATH_MAIN, interval)
    _start_heartbeat(HB_PATH_MAIN, interval)


def load_account(cfg: dict[str, Any]) -> RemoteAccount:
    """Build the remote account from ``account_factory`` ("module:callable").

    The callable receives the effective configuration mapping.
    """
    target = str(cfg.get("account_factory") or "").strip()
    if ":" not in target:
        raise ConfigError(
            f"account_factory must look like 'package.module:callable', got {target!r}"
        )
    module_name, _, attr = target.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"cannot import account factory module {module_name!r}") from exc
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ConfigError(f"{target!r} is not a callable")
    account = factory(cfg)
    if not isinstance(account, RemoteAccount):
        raise ConfigError(f"{target!r} did not return a remote account")
    return account


def main() -> int:
    """Start the bridge and wait for termination signals."""
    cfg, src = load_config()
    setup_logging(cfg.get("log_level"))
    logger.info({"event": "carwings_mqtt_start", "pid": os.getpid(), "config": str(src)})
    try:
        account = load_account(cfg)
    except ConfigError as exc:
        logger.error({"event": "config_error", "error": str(exc)})
        return EXIT_CONFIG_ERROR

    _maybe_start_heartbeat()
    stop_evt = threading.Event()

    def _on_signal(signum: int, _frame: object) -> None:
        logger.info("signal_received signum=%s", signum)
        stop_evt.set()

    signal.signal(signal.SIGTERM, _on_signal)
    signal.signal(signal.SIGINT, _on_signal)
    try:
        return run_bridge(account, cfg, stop_event=stop_evt)
    except ConfigError as exc:
        logger.error({"event": "config_error", "error": str(exc)})
        return EXIT_CONFIG_ERROR


@atexit.register
def _hb_exit() -> None:
    if _env_truthy(os.environ.get("ENABLE_HEALTH_CHECKS", "0")):
        with contextlib.suppress(OSError):
            _write_atomic(HB_PATH_MAIN, f"{time.time()}\n")


def run() -> None:
    try:
        code = main()
    except Exception:
        logger.exception("fatal error in main")
        code = 1
    _flush_all_log_handlers()
    sys.exit(code)


if __name__ == "__main__":
    run()
