"""Tests for settings and distribution configs."""

import json
from decimal import Decimal

import pytest

from merkledrop.config import (
    SEPOLIA_CHAIN_ID,
    USDC_MAINNET,
    ConfigError,
    DistributionConfig,
    Settings,
)

USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"

ENV_VARS = (
    "ASSET_ADDRESS", "ASSET_SYMBOL", "ASSET_DECIMALS", "ALLOCATION_STRATEGY",
    "ETH_RPC_URL", "PRIVATE_KEY", "DISTRIBUTOR_ADDRESS", "CHAIN_ID", "MERKLEDROP_DATA_DIR",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    return tmp_path / "absent.env"


def _config_dict(**overrides) -> dict:
    data = {
        "epochId": 1,
        "asset": USDC,
        "assetSymbol": "USDC",
        "decimals": 6,
        "totalYield": "1000000000",
        "strategy": "equal",
        "startTime": 1767225600,
        "endTime": 0,
    }
    data.update(overrides)
    return data


class TestSettings:
    def test_defaults(self, clean_env) -> None:
        settings = Settings.from_env(clean_env)
        assert settings.asset_address == USDC_MAINNET
        assert settings.asset_decimals == 6
        assert settings.chain_id == SEPOLIA_CHAIN_ID
        assert settings.rpc_url is None

    def test_environment_overrides(self, clean_env, monkeypatch) -> None:
        monkeypatch.setenv("ASSET_DECIMALS", "18")
        monkeypatch.setenv("ALLOCATION_STRATEGY", "proportional")
        settings = Settings.from_env(clean_env)
        assert settings.asset_decimals == 18
        assert settings.allocation_strategy == "proportional"

    def test_env_file(self, clean_env, tmp_path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("ASSET_SYMBOL=DAI\nASSET_DECIMALS=18\n", encoding="utf-8")
        settings = Settings.from_env(env_file)
        assert settings.asset_symbol == "DAI"
        assert settings.asset_decimals == 18

    def test_bad_strategy(self, clean_env, monkeypatch) -> None:
        monkeypatch.setenv("ALLOCATION_STRATEGY", "random")
        with pytest.raises(ConfigError):
            Settings.from_env(clean_env)

    def test_bad_asset_address(self, clean_env, monkeypatch) -> None:
        monkeypatch.setenv("ASSET_ADDRESS", "0x1234")
        with pytest.raises(ConfigError, match="ASSET_ADDRESS"):
            Settings.from_env(clean_env)

    def test_require_chain_lists_missing(self, clean_env, monkeypatch) -> None:
        monkeypatch.setenv("ETH_RPC_URL", "http://localhost:8545")
        settings = Settings.from_env(clean_env)
        with pytest.raises(ConfigError) as exc_info:
            settings.require_chain()
        assert "PRIVATE_KEY" in str(exc_info.value)
        assert "ETH_RPC_URL" not in str(exc_info.value)


class TestDistributionConfig:
    def test_from_dict(self) -> None:
        config = DistributionConfig.from_dict(_config_dict())
        assert config.epoch_id == 1
        assert config.asset == USDC.lower()
        assert config.total_yield == 1_000_000_000

    def test_round_trip(self) -> None:
        config = DistributionConfig.from_dict(
            _config_dict(strategy="custom", customWeights={"alice": 2, "bob": "0.5"})
        )
        assert config.custom_weights == {"alice": Decimal("2"), "bob": Decimal("0.5")}
        assert DistributionConfig.from_dict(config.to_dict()) == config

    def test_missing_field(self) -> None:
        data = _config_dict()
        del data["epochId"]
        with pytest.raises(ConfigError, match="epochId"):
            DistributionConfig.from_dict(data)

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ConfigError):
            DistributionConfig.from_dict(_config_dict(strategy="lottery"))

    def test_custom_requires_weights(self) -> None:
        with pytest.raises(ConfigError):
            DistributionConfig.from_dict(_config_dict(strategy="custom"))

    def test_non_positive_yield(self) -> None:
        with pytest.raises(ConfigError):
            DistributionConfig.from_dict(_config_dict(totalYield="0"))

    def test_bad_window(self) -> None:
        with pytest.raises(ConfigError):
            DistributionConfig.from_dict(_config_dict(startTime=100, endTime=50))

    def test_from_file(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps(_config_dict()), encoding="utf-8")
        assert DistributionConfig.from_file(path).asset_symbol == "USDC"

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError):
            DistributionConfig.from_file(path)
