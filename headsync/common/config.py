"""
Syncer configuration.

One SyncerConfig describes one independent syncer instance: which node to
poll, which store/table to fill and how often. Several instances can be
loaded from a JSON config file and run side by side.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from headsync.common.errors import ConfigError


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_INTERVAL = 12.0          # seconds, one mainnet slot
DEFAULT_REQUEST_TIMEOUT = 10.0   # seconds
DEFAULT_POOL_SIZE = 4
DEFAULT_TABLE = "entries"
DEFAULT_RPC_URL = "http://127.0.0.1:8545"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# camelCase keys accepted in config files
_JSON_ALIASES = {
    "rpcUrl": "rpc_url",
    "dbPath": "db_path",
    "startHeight": "start_height",
    "requestTimeout": "request_timeout",
    "poolSize": "pool_size",
}


@dataclass
class SyncerConfig:
    name: str = "node"
    rpc_url: str = DEFAULT_RPC_URL
    db_path: str = ":memory:"
    table: str = DEFAULT_TABLE
    interval: float = DEFAULT_INTERVAL
    start_height: Optional[int] = None  # one-time cold start override
    confirmations: int = 0
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    pool_size: int = DEFAULT_POOL_SIZE

    def validate(self) -> SyncerConfig:
        """Raise ConfigError if any field is out of range. Returns self."""
        if not self.name:
            raise ConfigError("syncer name must not be empty")
        if not self.rpc_url:
            raise ConfigError(f"{self.name}: rpc_url must not be empty")
        if not _IDENTIFIER.match(self.table):
            raise ConfigError(f"{self.name}: invalid table name {self.table!r}")
        if not math.isfinite(self.interval) or self.interval <= 0:
            raise ConfigError(f"{self.name}: interval must be a finite number > 0, got {self.interval}")
        if self.start_height is not None and self.start_height < 0:
            raise ConfigError(f"{self.name}: start height must be >= 0, got {self.start_height}")
        if self.confirmations < 0:
            raise ConfigError(f"{self.name}: confirmations must be >= 0, got {self.confirmations}")
        if not math.isfinite(self.request_timeout) or self.request_timeout <= 0:
            raise ConfigError(f"{self.name}: request timeout must be > 0, got {self.request_timeout}")
        if self.pool_size < 1:
            raise ConfigError(f"{self.name}: pool size must be >= 1, got {self.pool_size}")
        return self

    @classmethod
    def from_json(cls, data: dict) -> SyncerConfig:
        """Parse one syncer object from a config file (camelCase or snake_case keys)."""
        if not isinstance(data, dict):
            raise ConfigError(f"syncer config must be an object, got {type(data).__name__}")
        known = set(cls.__dataclass_fields__)
        kwargs = {}
        for key, value in data.items():
            field_name = _JSON_ALIASES.get(key, key)
            if field_name not in known:
                raise ConfigError(f"unknown syncer config key: {key}")
            kwargs[field_name] = value
        try:
            config = cls(**kwargs)
            if config.start_height is not None:
                config.start_height = int(config.start_height)
            config.interval = float(config.interval)
            config.request_timeout = float(config.request_timeout)
            config.confirmations = int(config.confirmations)
            config.pool_size = int(config.pool_size)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid syncer config: {e}") from e
        return config.validate()


def load_config_file(path: str | Path) -> list[SyncerConfig]:
    """Load one or more syncer configs from a JSON file.

    The file holds either a single syncer object or {"syncers": [...]}.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"config file not found: {config_path}")
    try:
        with open(config_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in {config_path}: {e}") from e

    if isinstance(data, dict) and "syncers" in data:
        items = data["syncers"]
        if not isinstance(items, list) or not items:
            raise ConfigError("'syncers' must be a non-empty list")
    else:
        items = [data]

    configs = [SyncerConfig.from_json(item) for item in items]
    seen: set[str] = set()
    for config in configs:
        if config.name in seen:
            raise ConfigError(f"duplicate syncer name: {config.name}")
        seen.add(config.name)
    return configs
