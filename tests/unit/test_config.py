"""
Unit tests for chain configuration.
"""

import json

import pytest
from pydantic import ValidationError

from utxo_ledger.core.codec import U128_MAX
from utxo_ledger.core.config import (
    ENV_DATA_DIR,
    ENV_LOG_LEVEL,
    GenesisOutput,
    LedgerConfig,
    load_config,
)
from utxo_ledger.core.state import TransactionOutput


ALICE = "0x" + "01" * 32
BOB = "0x" + "02" * 32


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(ENV_LOG_LEVEL, raising=False)
    monkeypatch.delenv(ENV_DATA_DIR, raising=False)


class TestGenesisOutput:

    def test_to_output(self):
        g = GenesisOutput(value=100, pubkey=ALICE)
        assert g.to_output() == TransactionOutput(value=100, pubkey=b"\x01" * 32)

    def test_pubkey_normalized(self):
        assert GenesisOutput(value=1, pubkey="AB" * 32).pubkey == "0x" + "ab" * 32

    @pytest.mark.parametrize("value", [0, -5, U128_MAX + 1])
    def test_value_out_of_range(self, value):
        with pytest.raises(ValidationError):
            GenesisOutput(value=value, pubkey=ALICE)

    @pytest.mark.parametrize("pubkey", ["0x01", "zz" * 32, ""])
    def test_bad_pubkey(self, pubkey):
        with pytest.raises(ValidationError):
            GenesisOutput(value=1, pubkey=pubkey)


class TestLedgerConfig:

    def test_defaults(self):
        config = LedgerConfig()
        assert config.genesis == []
        assert config.authorities == []
        assert config.log_level == "INFO"
        assert config.data_dir is None

    def test_authority_keys(self):
        config = LedgerConfig(authorities=[ALICE, BOB])
        assert config.authority_keys() == [b"\x01" * 32, b"\x02" * 32]

    def test_bad_authority(self):
        with pytest.raises(ValidationError):
            LedgerConfig(authorities=["0x1234"])

    def test_log_level_uppercased(self):
        assert LedgerConfig(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError):
            LedgerConfig(log_level="chatty")


class TestLoadConfig:

    def test_defaults_without_file(self, tmp_path):
        config = load_config(env_file=str(tmp_path / "missing.env"))
        assert config == LedgerConfig()

    def test_json_file(self, tmp_path):
        path = tmp_path / "chain.json"
        path.write_text(json.dumps({
            "genesis": [{"value": 100, "pubkey": ALICE}],
            "authorities": [BOB],
        }))

        config = load_config(str(path), env_file=str(tmp_path / "missing.env"))

        assert config.genesis_outputs() == [TransactionOutput(value=100, pubkey=b"\x01" * 32)]
        assert config.authority_keys() == [b"\x02" * 32]

    def test_environment_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "chain.json"
        path.write_text(json.dumps({"log_level": "INFO"}))
        monkeypatch.setenv(ENV_LOG_LEVEL, "warning")
        monkeypatch.setenv(ENV_DATA_DIR, str(tmp_path / "data"))

        config = load_config(str(path), env_file=str(tmp_path / "missing.env"))

        assert config.log_level == "WARNING"
        assert config.data_dir == tmp_path / "data"

    def test_dotenv_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(f"{ENV_LOG_LEVEL}=ERROR\n")

        config = load_config(env_file=str(env_file))

        assert config.log_level == "ERROR"
