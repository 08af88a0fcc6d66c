"""
Ghost Bridge TOML Configuration Loader

Program identities, execution budgets and keeper settings are loaded from
config.toml at startup; environment variables override TOML values.

Environment variable mapping:
    [programs] oracle        -> GHOST_ORACLE_PROGRAM_ID
    [programs] settlement    -> GHOST_SETTLEMENT_PROGRAM_ID
    [execution] ready_window_slots -> GHOST_READY_WINDOW_SLOTS
    [keeper] poll_interval   -> GHOST_KEEPER_POLL_INTERVAL
    ...

Keeper private keys MUST come from env vars (GHOST_KEEPER_SEAL_KEY), never TOML.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from eth_utils import decode_hex

from ..constants import (
    DEFAULT_CRANK_PROGRAM_ID,
    DEFAULT_DELEGATION_PROGRAM_ID,
    DEFAULT_ENGINE_PROGRAM_ID,
    DEFAULT_ORACLE_PROGRAM_ID,
    DEFAULT_SETTLEMENT_PROGRAM_ID,
    GHOST_CONFIG_PATH,
    GHOST_NETWORK_NAME,
    IDENTITY_LENGTH,
    KEEPER_MAX_FAILURES_PER_ORDER,
    KEEPER_POLL_INTERVAL,
    READY_WINDOW_SLOTS,
    REDELEGATE_COMPUTE_UNITS,
    SETTLEMENT_COMPUTE_UNITS,
)
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _identity(value: Any, name: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        try:
            raw = decode_hex(str(value))
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"{name} is not valid hex: {value!r}") from e
    if len(raw) != IDENTITY_LENGTH:
        raise ConfigurationError(f"{name} must be {IDENTITY_LENGTH} bytes, got {len(raw)}")
    return raw


# ---------------------------------------------------------------------------
# Subsection dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ProgramIdsConfig:
    """[programs] section: identities of the engine and its collaborators."""
    engine: bytes = field(default_factory=lambda: _identity(DEFAULT_ENGINE_PROGRAM_ID, "engine"))
    crank: bytes = field(default_factory=lambda: _identity(DEFAULT_CRANK_PROGRAM_ID, "crank"))
    oracle: bytes = field(default_factory=lambda: _identity(DEFAULT_ORACLE_PROGRAM_ID, "oracle"))
    settlement: bytes = field(default_factory=lambda: _identity(DEFAULT_SETTLEMENT_PROGRAM_ID, "settlement"))
    delegation: bytes = field(default_factory=lambda: _identity(DEFAULT_DELEGATION_PROGRAM_ID, "delegation"))

    _ENV = {
        "engine": "GHOST_ENGINE_PROGRAM_ID",
        "crank": "GHOST_CRANK_PROGRAM_ID",
        "oracle": "GHOST_ORACLE_PROGRAM_ID",
        "settlement": "GHOST_SETTLEMENT_PROGRAM_ID",
        "delegation": "GHOST_DELEGATION_PROGRAM_ID",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgramIdsConfig":
        cfg = cls()
        for name in cls._ENV:
            if name in data:
                setattr(cfg, name, _identity(data[name], name))
        return cfg

    def apply_env(self) -> None:
        for name, env_var in self._ENV.items():
            if v := os.environ.get(env_var):
                setattr(self, name, _identity(v, env_var))


@dataclass
class ExecutionConfig:
    """[execution] section: sub-call budgets and the ready window."""
    settlement_compute_units: int = SETTLEMENT_COMPUTE_UNITS
    redelegate_compute_units: int = REDELEGATE_COMPUTE_UNITS
    ready_window_slots: int = READY_WINDOW_SLOTS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionConfig":
        return cls(
            settlement_compute_units=int(data.get("settlement_compute_units", SETTLEMENT_COMPUTE_UNITS)),
            redelegate_compute_units=int(data.get("redelegate_compute_units", REDELEGATE_COMPUTE_UNITS)),
            ready_window_slots=int(data.get("ready_window_slots", READY_WINDOW_SLOTS)),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("GHOST_SETTLEMENT_COMPUTE_UNITS"):
            self.settlement_compute_units = int(v)
        if v := os.environ.get("GHOST_REDELEGATE_COMPUTE_UNITS"):
            self.redelegate_compute_units = int(v)
        if v := os.environ.get("GHOST_READY_WINDOW_SLOTS"):
            self.ready_window_slots = int(v)


@dataclass
class KeeperConfig:
    """[keeper] section."""
    poll_interval: float = KEEPER_POLL_INTERVAL
    max_failures_per_order: int = KEEPER_MAX_FAILURES_PER_ORDER
    redelegate_after: bool = False
    seal_private_key: Optional[bytes] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeeperConfig":
        return cls(
            poll_interval=float(data.get("poll_interval", KEEPER_POLL_INTERVAL)),
            max_failures_per_order=int(data.get("max_failures_per_order", KEEPER_MAX_FAILURES_PER_ORDER)),
            redelegate_after=bool(data.get("redelegate_after", False)),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("GHOST_KEEPER_POLL_INTERVAL"):
            self.poll_interval = float(v)
        if v := os.environ.get("GHOST_KEEPER_SEAL_KEY"):
            self.seal_private_key = _identity(v, "GHOST_KEEPER_SEAL_KEY")


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

@dataclass
class EngineConfig:
    network_name: str = str(GHOST_NETWORK_NAME)
    programs: ProgramIdsConfig = field(default_factory=ProgramIdsConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    keeper: KeeperConfig = field(default_factory=KeeperConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create EngineConfig from a parsed TOML dict."""
        return cls(
            network_name=data.get("network_name", str(GHOST_NETWORK_NAME)),
            programs=ProgramIdsConfig.from_dict(data.get("programs", {})),
            execution=ExecutionConfig.from_dict(data.get("execution", {})),
            keeper=KeeperConfig.from_dict(data.get("keeper", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "EngineConfig":
        """
        Load configuration from a TOML file.

        A missing file yields defaults (with env overrides).
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s - using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomli.load(f)
        except tomli.TOMLDecodeError as e:
            raise ConfigurationError(f"{config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        if v := os.environ.get("GHOST_NETWORK_NAME"):
            self.network_name = v
        self.programs.apply_env()
        self.execution.apply_env()
        self.keeper.apply_env()

    def validate(self) -> bool:
        """
        Raises:
            ConfigurationError: on invalid values.
        """
        if self.execution.settlement_compute_units <= 0:
            raise ConfigurationError("settlement_compute_units must be positive")
        if self.execution.redelegate_compute_units <= 0:
            raise ConfigurationError("redelegate_compute_units must be positive")
        if self.execution.ready_window_slots <= 0:
            raise ConfigurationError("ready_window_slots must be positive")
        if self.keeper.poll_interval <= 0:
            raise ConfigurationError("keeper poll_interval must be positive")
        if self.programs.engine == self.programs.crank:
            raise ConfigurationError("engine and crank programs must differ")
        return True


def load_config(path: Optional[str] = None) -> EngineConfig:
    """
    Load engine configuration.

    Resolution order:
        1. Explicit *path* argument
        2. GHOST_CONFIG env var
        3. GHOST_CONFIG_PATH from .env (default ./config.toml)
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("GHOST_CONFIG", str(GHOST_CONFIG_PATH))

    cfg = EngineConfig.from_file(path)
    cfg.validate()
    return cfg
