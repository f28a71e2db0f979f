"""
Chain configuration for the UTXO ledger.

Defines the genesis allocation, the authority set used by the local runtime,
and operational settings. Loaded from a JSON file; a handful of operational
settings can be overridden from the environment (or a .env file):

    UTXO_LEDGER_LOG_LEVEL   e.g. DEBUG
    UTXO_LEDGER_DATA_DIR    directory for the SQLite state
"""

import json
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from utxo_ledger.core.codec import U64_MAX, U128_MAX
from utxo_ledger.core.state.transaction import TransactionOutput
from utxo_ledger.crypto import PUBLIC_KEY_SIZE, hex_to_bytes


ENV_LOG_LEVEL = "UTXO_LEDGER_LOG_LEVEL"
ENV_DATA_DIR = "UTXO_LEDGER_DATA_DIR"


def _parse_pubkey(value: str) -> str:
    try:
        raw = hex_to_bytes(value)
    except ValueError as e:
        raise ValueError(f"not a hex string: {value!r}") from e
    if len(raw) != PUBLIC_KEY_SIZE:
        raise ValueError(f"public key must be {PUBLIC_KEY_SIZE} bytes, got {len(raw)}")
    return "0x" + raw.hex()


class GenesisOutput(BaseModel):
    """One genesis allocation."""

    value: int = Field(ge=1, le=U128_MAX)
    pubkey: str

    @field_validator("pubkey")
    @classmethod
    def check_pubkey(cls, v: str) -> str:
        return _parse_pubkey(v)

    def to_output(self) -> TransactionOutput:
        return TransactionOutput(value=self.value, pubkey=hex_to_bytes(self.pubkey))


class LedgerConfig(BaseModel):
    """Chain-wide configuration parameters"""

    # Genesis
    genesis: List[GenesisOutput] = Field(default_factory=list)

    # Authority set for the local runtime
    authorities: List[str] = Field(default_factory=list)

    # Pool validity
    longevity: int = Field(default=U64_MAX, ge=1, le=U64_MAX)

    # Operational
    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    data_dir: Optional[Path] = None

    @field_validator("authorities")
    @classmethod
    def check_authorities(cls, v: List[str]) -> List[str]:
        return [_parse_pubkey(key) for key in v]

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return level

    def genesis_outputs(self) -> List[TransactionOutput]:
        return [g.to_output() for g in self.genesis]

    def authority_keys(self) -> List[bytes]:
        return [hex_to_bytes(key) for key in self.authorities]


def load_config(config_path: Optional[str] = None, env_file: Optional[str] = None) -> LedgerConfig:
    """
    Load configuration from file or use defaults.

    Args:
        config_path: Optional path to a JSON config file
        env_file: Optional .env file; by default one is searched for
            from the working directory upwards

    Returns:
        LedgerConfig instance
    """
    load_dotenv(env_file)

    data = {}
    if config_path:
        data = json.loads(Path(config_path).read_text(encoding="utf-8"))

    if os.environ.get(ENV_LOG_LEVEL):
        data["log_level"] = os.environ[ENV_LOG_LEVEL]
    if os.environ.get(ENV_DATA_DIR):
        data["data_dir"] = os.environ[ENV_DATA_DIR]

    return LedgerConfig.model_validate(data)
