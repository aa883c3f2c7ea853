"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from leverage_loop.config import (
    AppConfig,
    AssetConfig,
    EngineConfig,
    PoolConfig,
    PriceOracleConfig,
    PythConfig,
    SafetyConfig,
)
from leverage_loop.simulation import SimulatedWorld, build_world
from leverage_loop.simulation.world import OWNER_ADDRESS

WAD = 10**18

ENGINE = "0x" + "e" * 40
OPERATOR = "0x" + "f" * 40
WETH = "0x" + "1" * 40
USDC = "0x" + "2" * 40


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(
        hermes_url="https://hermes.pyth.network/v2/updates/price/latest",
        feeds={"WETH": "ff61", "USDC": "eaa0"},
    )


@pytest.fixture()
def sample_app_config(sample_pyth_config: PythConfig) -> AppConfig:
    return AppConfig(
        engine=EngineConfig(address=ENGINE, operator=OPERATOR),
        pool=PoolConfig(premium_rate=9 * 10**14),
        safety=SafetyConfig(max_ltv=8 * 10**17, liquidation_threshold=85 * 10**16),
        assets={
            "WETH": AssetConfig(address=WETH, decimals=18),
            "USDC": AssetConfig(address=USDC, decimals=6),
        },
        price_oracle=PriceOracleConfig(provider="pyth", pyth=sample_pyth_config),
    )


@pytest.fixture()
def sample_prices() -> dict[str, int]:
    return {"WETH": 2000 * WAD, "USDC": WAD}


# ---------------------------------------------------------------------------
# Simulated world fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def world(sample_app_config: AppConfig, sample_prices: dict[str, int]) -> SimulatedWorld:
    return build_world(sample_app_config, sample_prices)


@pytest.fixture()
def owner() -> str:
    return OWNER_ADDRESS


@pytest.fixture()
def weth() -> str:
    return WETH


@pytest.fixture()
def usdc() -> str:
    return USDC


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    engine:
      address: "{ENGINE}"
      operator: "{OPERATOR}"
    pool:
      premium_rate: "0.0009"
    safety:
      max_ltv: "0.8"
      liquidation_threshold: "0.85"
    assets:
      WETH:
        address: "{WETH}"
        decimals: 18
      USDC:
        address: "{USDC}"
        decimals: 6
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {{WETH: "aaa", USDC: "bbb"}}
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
