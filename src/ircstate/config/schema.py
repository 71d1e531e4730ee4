"""Config schema and accessor."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Protocol

from loguru import logger

from ircstate.core.errors import ConfigurationError

# Env keys that override config (centralized; loaded once per reload)
_ENV_OVERRIDE_KEYS = (
    "IRCSTATE_SHOW_RAW",
    "IRCSTATE_BNC_ACTIVE",
)


def _load_env_overrides() -> dict[str, str]:
    """Load env overrides once per reload."""
    return {k: os.environ.get(k, "") for k in _ENV_OVERRIDE_KEYS}


def _parse_bool_env(val: str) -> bool | None:
    """Parse env string to bool; None if not a recognized bool."""
    v = val.lower()
    if v in ("1", "true", "yes"):
        return True
    if v in ("0", "false", "no"):
        return False
    return None


@dataclass(frozen=True)
class BouncerSettings:
    """Global bouncer (bnc) connection settings."""

    active: bool = False
    server: str = ""
    port: int = 6697
    tls: bool = True
    username: str = ""
    password: str = ""


@dataclass(frozen=True)
class NickServCredentials:
    account: str
    password: str


@dataclass
class NetworkConfig:
    """Per-network connection settings (one entry of `networks:`)."""

    name: str
    nick: str
    server: str = ""
    port: int = 6667
    tls: bool = False
    password: str = ""
    username: str = ""
    gecos: str = ""
    encoding: str = "utf8"
    bncname: str = ""
    auto_commands: str = ""
    show_raw: bool = False
    nickserv: NickServCredentials | None = None
    channels: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NetworkConfig:
        """Build from a raw config mapping; missing keys fall back to defaults."""
        nickserv = None
        ns = data.get("nickserv")
        if isinstance(ns, dict) and ns.get("account") and ns.get("password"):
            nickserv = NickServCredentials(account=str(ns["account"]), password=str(ns["password"]))

        auto_commands = data.get("auto_commands") or ""
        if isinstance(auto_commands, list):
            auto_commands = "\n".join(str(c) for c in auto_commands)

        channels = data.get("channels")
        return cls(
            name=str(data.get("name", "")),
            nick=str(data.get("nick", "")),
            server=str(data.get("server", "")),
            port=int(data.get("port", 6667)),
            tls=bool(data.get("tls", False)),
            password=str(data.get("password") or ""),
            username=str(data.get("username") or ""),
            gecos=str(data.get("gecos") or ""),
            encoding=str(data.get("encoding") or "utf8"),
            bncname=str(data.get("bncname") or ""),
            auto_commands=str(auto_commands),
            show_raw=bool(data.get("show_raw", False)),
            nickserv=nickserv,
            channels=[str(c) for c in channels] if isinstance(channels, list) else [],
        )


class SettingsProvider(Protocol):
    """Settings the sync engine reads. Injected, never looked up globally."""

    @property
    def show_raw(self) -> bool: ...

    @property
    def bnc(self) -> BouncerSettings: ...

    @property
    def block_pms(self) -> bool: ...

    @property
    def notice_active_buffer(self) -> bool: ...

    @property
    def nick_retry_limit(self) -> int: ...

    @property
    def history_count(self) -> int: ...

    @property
    def ctcp_version(self) -> str: ...

    @property
    def mode_request_ttl(self) -> float: ...


class Config:
    """Config accessor with attribute-style access for nested keys."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data = data or {}
        self._env: dict[str, str] = _load_env_overrides()

    def reload(self, data: dict[str, Any], *, validate: bool = True) -> None:
        """Replace config data (e.g. on SIGHUP reload). Invalid data is
        rejected and the previous config stays in effect."""
        previous = (self._data, self._env)
        self._data = data or {}
        self._env = _load_env_overrides()
        if validate:
            try:
                self.validate()
            except ConfigurationError:
                self._data, self._env = previous
                raise
        logger.debug("Config reloaded: {} networks", len(self.networks))

    def validate(self) -> None:
        """Validate config structure; raise ConfigurationError on failure."""
        networks = self._data.get("networks")
        if networks is not None and not isinstance(networks, list):
            raise ConfigurationError(
                "networks must be a list",
                code="invalid_networks",
                details={"type": type(networks).__name__},
            )
        for i, item in enumerate(networks or []):
            if not isinstance(item, dict):
                raise ConfigurationError(
                    f"networks[{i}] must be a dict",
                    code="invalid_network_item",
                    details={"index": i},
                )
            for key in ("name", "nick"):
                if not item.get(key):
                    raise ConfigurationError(
                        f"networks[{i}] missing {key}",
                        code=f"missing_{key}",
                        details={"index": i},
                    )
        bnc = self.bnc
        if bnc.active and not (bnc.server and bnc.username):
            raise ConfigurationError(
                "bnc.active requires bnc.server and bnc.username",
                code="incomplete_bnc",
            )

    @property
    def raw(self) -> dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Get value by dot-separated path."""
        parts = key.split(".")
        obj: Any = self._data
        for part in parts:
            if isinstance(obj, dict) and part in obj:
                obj = obj[part]
            else:
                return default
        return obj

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    @property
    def networks(self) -> list[NetworkConfig]:
        """Configured networks, skipping malformed entries."""
        raw = self._data.get("networks")
        if not isinstance(raw, list):
            return []
        return [NetworkConfig.from_dict(item) for item in raw if isinstance(item, dict)]

    @property
    def show_raw(self) -> bool:
        parsed = _parse_bool_env(self._env.get("IRCSTATE_SHOW_RAW", ""))
        if parsed is not None:
            return parsed
        return bool(self._data.get("showRaw", False))

    @property
    def bnc(self) -> BouncerSettings:
        raw = self.get("bnc", {})
        if not isinstance(raw, dict):
            raw = {}
        active = bool(raw.get("active", False))
        parsed = _parse_bool_env(self._env.get("IRCSTATE_BNC_ACTIVE", ""))
        if parsed is not None:
            active = parsed
        return BouncerSettings(
            active=active,
            server=str(raw.get("server", "")),
            port=int(raw.get("port", 6697)),
            tls=bool(raw.get("tls", True)),
            username=str(raw.get("username", "")),
            password=str(raw.get("password", "")),
        )

    @property
    def block_pms(self) -> bool:
        return bool(self.get("buffers.block_pms", False))

    @property
    def notice_active_buffer(self) -> bool:
        return bool(self._data.get("noticeActiveBuffer", True))

    @property
    def nick_retry_limit(self) -> int:
        return int(self._data.get("nick_retry_limit", 10))

    @property
    def history_count(self) -> int:
        return int(self._data.get("history_count", 50))

    @property
    def ctcp_version(self) -> str:
        return str(self._data.get("ctcp_version", "ircstate"))

    @property
    def mode_request_ttl(self) -> float:
        return float(self._data.get("mode_request_ttl", 30))

    @property
    def throttle_limit(self) -> int:
        """Outbound IRC lines per second (token bucket limit)."""
        return int(self._data.get("throttle_limit", 10))


cfg: Config = Config({})
