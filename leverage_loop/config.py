"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .operator import is_null_address
from .validator import DEFAULT_LIQUIDATION_THRESHOLD, DEFAULT_MAX_LTV, SafetyPolicy
from .wad import WAD, to_wad

logger = logging.getLogger(__name__)

DEFAULT_PREMIUM_RATE = 9 * 10**14  # 0.09%

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    address: str = ""
    operator: str = ""


@dataclass(frozen=True)
class PoolConfig:
    premium_rate: int = DEFAULT_PREMIUM_RATE


@dataclass(frozen=True)
class SafetyConfig:
    max_ltv: int = DEFAULT_MAX_LTV
    liquidation_threshold: int = DEFAULT_LIQUIDATION_THRESHOLD
    loan_multiple: int | None = None

    def to_policy(self) -> SafetyPolicy:
        return SafetyPolicy(
            max_ltv=self.max_ltv,
            liquidation_threshold=self.liquidation_threshold,
            loan_multiple=self.loan_multiple,
        )


@dataclass(frozen=True)
class AssetConfig:
    address: str = ""
    decimals: int = 18


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class AppConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    assets: dict[str, AssetConfig] = field(default_factory=dict)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)

    def asset(self, symbol: str) -> AssetConfig:
        try:
            return self.assets[symbol]
        except KeyError as e:
            raise ValueError(f"Unknown asset '{symbol}'") from e


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _ratio(raw: dict[str, Any], key: str, default: int) -> int:
    """Read a decimal ratio ("0.8") as a WAD integer."""
    if raw.get(key) is None:
        return default
    try:
        return to_wad(raw[key])
    except ValueError as e:
        raise ValueError(f"Invalid value for '{key}': {raw[key]!r}") from e


def _build_engine(raw: dict[str, Any]) -> EngineConfig:
    return EngineConfig(
        address=str(raw.get("address", "")),
        operator=str(raw.get("operator", "")),
    )


def _build_pool(raw: dict[str, Any]) -> PoolConfig:
    return PoolConfig(premium_rate=_ratio(raw, "premium_rate", DEFAULT_PREMIUM_RATE))


def _build_safety(raw: dict[str, Any]) -> SafetyConfig:
    multiple = raw.get("loan_multiple")
    return SafetyConfig(
        max_ltv=_ratio(raw, "max_ltv", DEFAULT_MAX_LTV),
        liquidation_threshold=_ratio(
            raw, "liquidation_threshold", DEFAULT_LIQUIDATION_THRESHOLD
        ),
        loan_multiple=None if multiple is None else _ratio(raw, "loan_multiple", 0),
    )


def _build_assets(raw: dict[str, Any]) -> dict[str, AssetConfig]:
    assets: dict[str, AssetConfig] = {}
    for symbol, cfg in raw.items():
        assets[symbol] = AssetConfig(
            address=str(cfg.get("address", "")),
            decimals=int(cfg.get("decimals", 18)),
        )
    return assets


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        engine=_build_engine(raw.get("engine", {})),
        pool=_build_pool(raw.get("pool", {})),
        safety=_build_safety(raw.get("safety", {})),
        assets=_build_assets(raw.get("assets", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if is_null_address(cfg.engine.address):
        raise ValueError("Engine address must be set")
    if is_null_address(cfg.engine.operator):
        raise ValueError("Engine operator must be a non-zero address")

    if cfg.pool.premium_rate >= WAD:
        raise ValueError("Pool premium_rate must be below 1")

    safety = cfg.safety
    if not 0 < safety.max_ltv < WAD:
        raise ValueError("Safety max_ltv must be between 0 and 1 (exclusive)")
    if not safety.max_ltv <= safety.liquidation_threshold < WAD:
        raise ValueError(
            "Safety liquidation_threshold must be at least max_ltv and below 1"
        )
    if safety.loan_multiple is not None and safety.loan_multiple <= 0:
        raise ValueError("Safety loan_multiple must be positive")

    for symbol, asset in cfg.assets.items():
        if not asset.address:
            raise ValueError(f"Asset '{symbol}' has no address")
        if not 0 <= asset.decimals <= 36:
            raise ValueError(f"Asset '{symbol}' decimals must be within 0..36")

    for symbol in cfg.price_oracle.pyth.feeds:
        if symbol not in cfg.assets:
            raise ValueError(f"Price feed references unknown asset '{symbol}'")
