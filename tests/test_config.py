"""
Test suite for the TOML configuration loader

Covers:
  - Defaults, dict and file loading
  - Environment overrides (including the keeper seal key)
  - Validation and malformed input
"""

import os

import pytest
from eth_utils import decode_hex

from ghostbridge.config import EngineConfig, KeeperConfig, load_config
from ghostbridge.constants import (
    DEFAULT_ENGINE_PROGRAM_ID,
    KEEPER_MAX_FAILURES_PER_ORDER,
    READY_WINDOW_SLOTS,
    SETTLEMENT_COMPUTE_UNITS,
)
from ghostbridge.exceptions import ConfigurationError

ORACLE_HEX = "0x" + "ab" * 32
SEAL_KEY_HEX = "0x" + "01" * 32

CONFIG_TOML = f"""
network_name = "ghost-devnet"

[programs]
oracle = "{ORACLE_HEX}"

[execution]
ready_window_slots = 150
settlement_compute_units = 300000
redelegate_compute_units = 60000

[keeper]
poll_interval = 0.5
max_failures_per_order = 3
redelegate_after = true
seal_private_key = "{SEAL_KEY_HEX}"
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("GHOST_"):
            monkeypatch.delenv(name)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(CONFIG_TOML)
    return path


class TestDefaults:

    def test_defaults(self):
        cfg = EngineConfig()
        assert cfg.programs.engine == decode_hex(DEFAULT_ENGINE_PROGRAM_ID)
        assert len(cfg.programs.crank) == 32
        assert cfg.execution.ready_window_slots == READY_WINDOW_SLOTS
        assert cfg.execution.settlement_compute_units == SETTLEMENT_COMPUTE_UNITS
        assert cfg.keeper.max_failures_per_order == KEEPER_MAX_FAILURES_PER_ORDER
        assert cfg.keeper.seal_private_key is None
        assert cfg.validate()

    def test_program_ids_distinct(self):
        programs = EngineConfig().programs
        ids = [programs.engine, programs.crank, programs.oracle, programs.settlement, programs.delegation]
        assert len(set(ids)) == len(ids)


class TestLoading:

    def test_from_file(self, config_file):
        cfg = EngineConfig.from_file(str(config_file))
        assert cfg.network_name == "ghost-devnet"
        assert cfg.programs.oracle == bytes([0xAB]) * 32
        assert cfg.programs.engine == decode_hex(DEFAULT_ENGINE_PROGRAM_ID)
        assert cfg.execution.ready_window_slots == 150
        assert cfg.execution.settlement_compute_units == 300_000
        assert cfg.execution.redelegate_compute_units == 60_000
        assert cfg.keeper.poll_interval == 0.5
        assert cfg.keeper.max_failures_per_order == 3
        assert cfg.keeper.redelegate_after is True

    def test_seal_key_never_read_from_file(self, config_file):
        assert EngineConfig.from_file(str(config_file)).keeper.seal_private_key is None

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = EngineConfig.from_file(str(tmp_path / "absent.toml"))
        assert cfg.execution.ready_window_slots == READY_WINDOW_SLOTS

    def test_bad_toml(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[execution\nready_window_slots = ")
        with pytest.raises(ConfigurationError):
            EngineConfig.from_file(str(path))

    def test_bad_hex(self):
        with pytest.raises(ConfigurationError, match="not valid hex"):
            EngineConfig.from_dict({"programs": {"oracle": "0xzz"}})

    def test_wrong_identity_length(self):
        with pytest.raises(ConfigurationError, match="32 bytes"):
            EngineConfig.from_dict({"programs": {"oracle": "0x" + "ab" * 20}})

    def test_load_config_from_env_path(self, config_file, monkeypatch):
        monkeypatch.setenv("GHOST_CONFIG", str(config_file))
        assert load_config().network_name == "ghost-devnet"

    def test_load_config_validates(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[execution]\nready_window_slots = 0\n")
        with pytest.raises(ConfigurationError, match="ready_window_slots"):
            load_config(str(path))


class TestEnvOverrides:

    def test_env_beats_file(self, config_file, monkeypatch):
        monkeypatch.setenv("GHOST_READY_WINDOW_SLOTS", "40")
        monkeypatch.setenv("GHOST_NETWORK_NAME", "ghost-mainnet")
        cfg = EngineConfig.from_file(str(config_file))
        assert cfg.execution.ready_window_slots == 40
        assert cfg.network_name == "ghost-mainnet"

    def test_redelegate_budget_from_env(self, monkeypatch):
        monkeypatch.setenv("GHOST_REDELEGATE_COMPUTE_UNITS", "75000")
        cfg = EngineConfig()
        cfg.apply_env()
        assert cfg.execution.redelegate_compute_units == 75_000

    def test_seal_key_from_env(self, monkeypatch):
        monkeypatch.setenv("GHOST_KEEPER_SEAL_KEY", SEAL_KEY_HEX)
        keeper = KeeperConfig()
        keeper.apply_env()
        assert keeper.seal_private_key == bytes([1]) * 32

    def test_program_id_from_env(self, monkeypatch):
        monkeypatch.setenv("GHOST_SETTLEMENT_PROGRAM_ID", ORACLE_HEX)
        cfg = EngineConfig()
        cfg.apply_env()
        assert cfg.programs.settlement == bytes([0xAB]) * 32

    def test_bad_env_identity(self, monkeypatch):
        monkeypatch.setenv("GHOST_CRANK_PROGRAM_ID", "nothex")
        cfg = EngineConfig()
        with pytest.raises(ConfigurationError):
            cfg.apply_env()


class TestValidate:

    def test_non_positive_budget(self):
        cfg = EngineConfig()
        cfg.execution.settlement_compute_units = 0
        with pytest.raises(ConfigurationError, match="settlement_compute_units"):
            cfg.validate()

    def test_poll_interval(self):
        cfg = EngineConfig()
        cfg.keeper.poll_interval = 0
        with pytest.raises(ConfigurationError):
            cfg.validate()

    def test_engine_and_crank_must_differ(self):
        cfg = EngineConfig()
        cfg.programs.crank = cfg.programs.engine
        with pytest.raises(ConfigurationError, match="differ"):
            cfg.validate()
