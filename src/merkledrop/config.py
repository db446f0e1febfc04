"""Configuration — environment settings and per-epoch distribution configs.

Environment settings come from the process environment, optionally
seeded from a ``.env`` file. A distribution config is a JSON document
describing one epoch's payout:

    {
      "epochId": 1,
      "asset": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
      "assetSymbol": "USDC",
      "decimals": 6,
      "totalYield": "1000000000",
      "strategy": "equal",
      "customWeights": {"alice": 2, "bob": 1},
      "startTime": 1767225600,
      "endTime": 0
    }
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from merkledrop.crypto.leaf import normalize_identity

USDC_MAINNET = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
SEPOLIA_CHAIN_ID = 11155111
STRATEGIES = ("equal", "custom", "proportional")


class ConfigError(ValueError):
    """Raised for missing or malformed configuration."""


@dataclass(frozen=True)
class Settings:
    """Process-wide settings read from the environment."""
    data_dir: Path = Path("data")
    asset_address: str = USDC_MAINNET
    asset_symbol: str = "USDC"
    asset_decimals: int = 6
    allocation_strategy: str = "equal"
    rpc_url: Optional[str] = None
    private_key: Optional[str] = None
    distributor_address: Optional[str] = None
    chain_id: int = SEPOLIA_CHAIN_ID

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        """Load settings, letting ``env_file`` fill unset variables."""
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        strategy = os.getenv("ALLOCATION_STRATEGY", "equal")
        if strategy not in STRATEGIES:
            raise ConfigError(f"ALLOCATION_STRATEGY must be one of {STRATEGIES}, got {strategy!r}")
        try:
            decimals = int(os.getenv("ASSET_DECIMALS", "6"))
            chain_id = int(os.getenv("CHAIN_ID", str(SEPOLIA_CHAIN_ID)))
        except ValueError as exc:
            raise ConfigError(f"Invalid integer setting: {exc}") from exc

        distributor = os.getenv("DISTRIBUTOR_ADDRESS") or None
        return cls(
            data_dir=Path(os.getenv("MERKLEDROP_DATA_DIR", "data")),
            asset_address=_address("ASSET_ADDRESS", os.getenv("ASSET_ADDRESS", USDC_MAINNET)),
            asset_symbol=os.getenv("ASSET_SYMBOL", "USDC"),
            asset_decimals=decimals,
            allocation_strategy=strategy,
            rpc_url=os.getenv("ETH_RPC_URL") or None,
            private_key=os.getenv("PRIVATE_KEY") or None,
            distributor_address=_address("DISTRIBUTOR_ADDRESS", distributor) if distributor else None,
            chain_id=chain_id,
        )

    def require_chain(self) -> None:
        """Fail unless everything needed to send a transaction is set."""
        missing = [
            name for name, value in (
                ("ETH_RPC_URL", self.rpc_url),
                ("PRIVATE_KEY", self.private_key),
                ("DISTRIBUTOR_ADDRESS", self.distributor_address),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing settings: {', '.join(missing)}")


@dataclass(frozen=True)
class DistributionConfig:
    """One epoch's payout parameters."""
    epoch_id: int
    asset: str
    asset_symbol: str
    decimals: int
    total_yield: int
    strategy: str = "equal"
    custom_weights: Dict[str, Decimal] = field(default_factory=dict)
    start_time: int = 0
    end_time: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DistributionConfig":
        try:
            strategy = data.get("strategy", "equal")
            if strategy not in STRATEGIES:
                raise ConfigError(f"strategy must be one of {STRATEGIES}, got {strategy!r}")
            weights = {
                str(label): Decimal(str(weight))
                for label, weight in (data.get("customWeights") or {}).items()
            }
            if strategy == "custom" and not weights:
                raise ConfigError("custom strategy requires customWeights")
            config = cls(
                epoch_id=int(data["epochId"]),
                asset=_address("asset", data["asset"]),
                asset_symbol=str(data.get("assetSymbol", "")),
                decimals=int(data.get("decimals", 18)),
                total_yield=int(str(data["totalYield"])),
                strategy=strategy,
                custom_weights=weights,
                start_time=int(data.get("startTime", 0)),
                end_time=int(data.get("endTime", 0)),
            )
        except ConfigError:
            raise
        except KeyError as exc:
            raise ConfigError(f"Missing distribution config field: {exc.args[0]}") from exc
        except (TypeError, ValueError, InvalidOperation) as exc:
            raise ConfigError(f"Invalid distribution config: {exc}") from exc

        if config.total_yield <= 0:
            raise ConfigError("totalYield must be positive")
        if config.end_time != 0 and config.end_time <= config.start_time:
            raise ConfigError("endTime must be 0 or after startTime")
        return config

    @classmethod
    def from_file(cls, path: Path) -> "DistributionConfig":
        if not path.exists():
            raise ConfigError(f"Distribution config not found: {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Distribution config is not valid JSON: {exc}") from exc
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "epochId": self.epoch_id,
            "asset": self.asset,
            "assetSymbol": self.asset_symbol,
            "decimals": self.decimals,
            "totalYield": str(self.total_yield),
            "strategy": self.strategy,
            "startTime": self.start_time,
            "endTime": self.end_time,
        }
        if self.custom_weights:
            data["customWeights"] = {k: str(v) for k, v in self.custom_weights.items()}
        return data


def _address(name: str, value: str) -> str:
    try:
        return normalize_identity(value)
    except ValueError as exc:
        raise ConfigError(f"{name}: {exc}") from exc
