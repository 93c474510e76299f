"""Pool configuration loaded from environment variables and ``.env``."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from zkpool.core.merkle_tree import MERKLE_TREE_HEIGHT
from zkpool.utils.hash import NATIVE_MINT


class PoolSettings(BaseSettings):
    """Settings for proving and relaying; every field maps to PRIVACY_POOL_<NAME>."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PRIVACY_POOL_",
        case_sensitive=False,
        extra="ignore",
    )

    # Pool program and accounts (testnet deployment)
    program_id: str = "9A6fck3xNW2C6vwwqM4i1f4GeYpieuB7XKpF1YFduT6h"
    tree_account: str = "4EGnTF2XfKDTBAszzoqQLe4zbmiURkWtkYQGnj99GiJf"
    global_config: str = "7RUeHfhA6L7BUrmt9ZK7SJ9rmTMkD8qjjJgHRrUEGMq9"
    pool_vault: str = "7nAKNHQwTeaybrnX6y3c3fLDL3qzQ3A6FGwMwH1LPc8q"
    fee_recipient: str = "FcuLoWBhZ8bNQRsSgGhH5NCJJbqK5uhHMZR6V21kyTgS"

    # Relay
    rpc_url: str = "https://api.testnet.solana.com"
    relayer_keypair_path: Path = Field(default_factory=lambda: Path.home() / ".config" / "solana" / "id.json")
    compute_unit_limit: int = Field(default=1_400_000, gt=0)

    # Circuit
    merkle_tree_height: int = Field(default=MERKLE_TREE_HEIGHT, ge=1, le=64)
    mint_address: int = NATIVE_MINT
    circuit_wasm_path: Path = Path("circuits/transaction_js/transaction.wasm")
    circuit_zkey_path: Path = Path("circuits/transaction_final.zkey")
    snarkjs_command: str = "snarkjs"


_settings: Optional[PoolSettings] = None


def get_settings() -> PoolSettings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = PoolSettings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next ``get_settings`` reloads them."""
    global _settings
    _settings = None
