"""Connection settings and TOML-based host configuration.

Loads ~/.sshlink/defaults.toml (global) and sshlink.toml (project),
merges them, and resolves named hosts into ConnectConfig instances.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeAlias

from sshlink.constants import (
    BACKOFF_TABLE,
    CONNECT_TIMEOUT,
    DEFAULT_PORT,
    KEEPALIVE_INTERVAL,
)

RawConfig: TypeAlias = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".sshlink" / "defaults.toml"
PROJECT_CONFIG_NAME = "sshlink.toml"


@dataclass(frozen=True, slots=True)
class ConnectConfig:
    """Immutable settings for one SSH connection.

    Attributes:
        host: Hostname or IP address of the managed host.
        username: Remote login user.
        private_key_path: Path to the private key, read at connect time.
        port: SSH port.
        passphrase: Passphrase for an encrypted private key.
        keepalive_interval: Seconds between keepalive probes, 0 disables them.
    """

    host: str
    username: str
    private_key_path: str
    port: int = DEFAULT_PORT
    passphrase: str | None = None
    keepalive_interval: float = KEEPALIVE_INTERVAL

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host is required")
        if not self.username:
            raise ValueError("username is required")
        if not self.private_key_path:
            raise ValueError("private_key_path is required")
        if not 0 < self.port < 65536:
            raise ValueError(f"port out of range: {self.port}")

    @property
    def key_path(self) -> Path:
        return Path(self.private_key_path).expanduser()

    @property
    def target(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class ManagerSettings:
    """Tunables for the connection manager."""

    connect_timeout: float = CONNECT_TIMEOUT
    backoff: tuple[float, ...] = BACKOFF_TABLE

    def __post_init__(self) -> None:
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")
        if not self.backoff:
            raise ValueError("backoff table must not be empty")
        if any(d < 0 for d in self.backoff):
            raise ValueError("backoff delays must be non-negative")


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        return tomllib.load(f)


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("manager", {})
    merged.setdefault("hosts", {})
    return merged


def resolve_host(
    name: str,
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> ConnectConfig:
    config = load_config(project_dir=project_dir, global_path=global_path)

    hosts = config["hosts"]
    if name not in hosts:
        raise KeyError(f"Host '{name}' not found. Available: {', '.join(hosts) or 'none'}")

    return ConnectConfig(**hosts[name])


def resolve_settings(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> ManagerSettings:
    raw = dict(load_config(project_dir=project_dir, global_path=global_path)["manager"])
    if "backoff" in raw:
        raw["backoff"] = tuple(float(d) for d in raw["backoff"])
    return ManagerSettings(**raw)
