"""Runtime configuration for the orchestrator."""

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional

import base58
import yaml
from dotenv import load_dotenv
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .errors import ConfigError

SQUADS_V4_PROGRAM = "SQDS4ep65T869zMMBKyuUq6aD6EgTu8psMjkvj52pCf"
MAINNET_RPC = "https://api.mainnet-beta.solana.com"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def get_rpc_endpoint(env=None) -> str:
    """Get RPC endpoint from environment or use default."""
    env = os.environ if env is None else env
    if rpc_url := env.get("SOLANA_RPC_URL"):
        return rpc_url
    if api_key := env.get("HELIUS_API_KEY"):
        if env.get("NETWORK") == "devnet":
            return f"https://devnet.helius-rpc.com/?api-key={api_key}"
        return f"https://mainnet.helius-rpc.com/?api-key={api_key}"
    return MAINNET_RPC


def mask_api_key(url: str) -> str:
    """Mask API key in URL for display."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url


@dataclass(frozen=True)
class Settings:
    rpc_url: str = MAINNET_RPC
    program_id: str = SQUADS_V4_PROGRAM
    commitment: str = "confirmed"
    max_propose_attempts: int = 3
    retry_wait_min: float = 0.5
    retry_wait_max: float = 4.0
    http_timeout: float = 30
    http_retries: int = 0
    confirm: bool = True
    confirm_timeout: float = 60
    poll_interval: float = 1.0
    fee_payer_secret: Optional[str] = None
    agent_secret: Optional[str] = None

    @property
    def program_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.program_id)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, env=None) -> "Settings":
        """Build settings from the environment, loading a .env file first."""
        if env is None:
            load_dotenv(env_file)
            env = os.environ

        def _get(name, default, cast=str):
            raw = env.get(name)
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {name}: {raw!r}") from e

        return cls(
            rpc_url=get_rpc_endpoint(env),
            program_id=_get("SQUADS_PROGRAM_ID", SQUADS_V4_PROGRAM),
            commitment=_get("SOLANA_COMMITMENT", "confirmed"),
            max_propose_attempts=_get("SQUADS_MAX_PROPOSE_ATTEMPTS", 3, int),
            http_timeout=_get("SQUADS_HTTP_TIMEOUT", 30.0, float),
            http_retries=_get("SQUADS_HTTP_RETRIES", 0, int),
            confirm_timeout=_get("SQUADS_CONFIRM_TIMEOUT", 60.0, float),
            fee_payer_secret=_get("FEE_PAYER_SECRET_KEY", None),
            agent_secret=_get("AGENT_SECRET_KEY", None),
        )

    def with_overrides(self, **overrides) -> "Settings":
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)


def load_config(config_path: str, base: Optional[Settings] = None) -> Settings:
    """Overlay a YAML config file on top of `base` (or the environment)."""
    base = base or Settings.from_env()
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading config file {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return base.with_overrides(**data)


def load_keypair(raw: Optional[str], name: str = "keypair") -> Keypair:
    """
    Load a keypair from a base58 secret, a JSON byte array, or a path to a
    JSON keypair file (the solana-keygen format).
    """
    if not raw:
        raise ConfigError(f"{name} is not configured")
    raw = raw.strip()
    if not raw.startswith("[") and Path(raw).is_file():
        raw = Path(raw).read_text().strip()
    try:
        if raw.startswith("["):
            return Keypair.from_bytes(bytes(json.loads(raw)))
        return Keypair.from_bytes(base58.b58decode(raw))
    except ValueError as e:
        raise ConfigError(f"Invalid {name}: {e}") from e
