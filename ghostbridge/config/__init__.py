"""
Ghost Bridge Configuration

Loads config.toml at startup. Environment variables override TOML values.
"""

from .loader import (
    EngineConfig,
    ProgramIdsConfig,
    ExecutionConfig,
    KeeperConfig,
    load_config,
)

__all__ = [
    "EngineConfig",
    "ProgramIdsConfig",
    "ExecutionConfig",
    "KeeperConfig",
    "load_config",
]
