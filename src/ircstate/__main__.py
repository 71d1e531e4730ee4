"""ircstate entrypoint. Loads config and keeps one synced connection per network."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from ircstate import __version__
from ircstate.adapters import AdapterBase, IRCAdapter
from ircstate.config import Config, cfg, load_config_with_env
from ircstate.core.errors import ConfigurationError
from ircstate.gateway import Bus
from ircstate.gateway.bus import ChannelListPublished, MessageAdded, NetworkStateChanged
from ircstate.state import StateStore

# pydle loggers routed through loguru
_INTERCEPTED_LIBRARIES = ["pydle", "pydle.client", "pydle.connection", "pydle.features.ircv3.cap"]


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        msg = record.getMessage().replace("{", "{{").replace("}", "}}")
        logger.patch(
            lambda r: r.update(name=record.name, function=record.funcName, line=record.lineno),
        ).opt(exception=record.exc_info).log(level, msg)


def _intercept_logging(level: str) -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for lib in _INTERCEPTED_LIBRARIES:
        lib_logger = logging.getLogger(lib)
        lib_logger.handlers = [InterceptHandler()]
        lib_logger.propagate = False
        lib_logger.setLevel(level)


def _safe_message_filter(record: Any) -> bool:
    """Escape angle brackets so IRC text never parses as loguru color tags."""
    if isinstance(record.get("message"), str):
        record["message"] = record["message"].replace("<", "\\<")
    return True


def setup_logging(verbose: bool = False) -> None:
    """Configure loguru with one stderr sink.
    Level: verbose=True or LOG_LEVEL=DEBUG enables DEBUG; otherwise INFO."""
    level = "INFO"
    if verbose:
        level = "DEBUG"
    else:
        env_level = (os.environ.get("LOG_LEVEL") or "").upper()
        if env_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
            level = env_level

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}",
        filter=_safe_message_filter,
    )
    _intercept_logging(level)


class ConsoleTarget:
    """Bus target that writes buffer lines and state changes to the log."""

    def accept_event(self, source: str, evt: object) -> bool:
        return isinstance(evt, (MessageAdded, NetworkStateChanged, ChannelListPublished))

    def push_event(self, source: str, evt: object) -> None:
        if isinstance(evt, MessageAdded):
            msg = evt.message
            who = f"<{msg.nick}> " if msg.nick else ""
            logger.info("[{}:{}] {}{}", evt.network_id, evt.buffer, who, msg.message)
        elif isinstance(evt, NetworkStateChanged):
            logger.info("Network {} is {}{}", evt.network_id, evt.state, f" ({evt.error})" if evt.error else "")
        elif isinstance(evt, ChannelListPublished):
            logger.info("Network {} channel list: {} channels", evt.network_id, evt.count)


def reload_config(config_path: Path) -> Config:
    """Load config from path and update global cfg."""
    data = load_config_with_env(config_path)
    cfg.reload(data)
    return cfg


def main() -> None:
    """Main entrypoint."""
    parser = argparse.ArgumentParser(description="ircstate: IRC client state synchronization")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    if not args.config.exists():
        logger.error("Config file not found: {}", args.config)
        sys.exit(1)

    try:
        config = reload_config(args.config)
    except ConfigurationError as exc:
        logger.error("Invalid config {}: {}", args.config, exc)
        sys.exit(1)
    logger.info("Config loaded from {} ({} networks)", args.config, len(config.networks))

    # SIGHUP reload; engines read settings on every connect
    def on_sighup(*a: object, **kw: object) -> None:
        try:
            reload_config(args.config)
        except ConfigurationError as exc:
            logger.error("Config reload rejected: {}", exc)
            return
        logger.info("Config reloaded (SIGHUP)")

    signal.signal(signal.SIGHUP, on_sighup)

    bus = Bus()
    bus.register(ConsoleTarget())
    store = StateStore(bus)

    asyncio.run(_run(store, config))


async def _run(store: StateStore, config: Config) -> None:
    """Start one adapter per network and wait."""
    adapters: list[AdapterBase] = [IRCAdapter(store, net, config) for net in config.networks]
    if not adapters:
        logger.warning("No networks configured; nothing to do")
        return
    for adapter in adapters:
        await adapter.start()

    try:
        while True:
            await asyncio.sleep(60)
    except asyncio.CancelledError:
        logger.info("Shutting down")
        for adapter in adapters:
            await adapter.stop()


if __name__ == "__main__":
    main()
