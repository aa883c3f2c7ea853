"""Wires an engine to in-memory collaborators seeded from config and prices."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from ..config import AppConfig
from ..operator import OperatorRecord
from ..services.engine import LeverageEngine
from ..wad import MAX_UINT256, WAD, mul_div
from .book import InMemoryAssetBook
from .pool import InMemoryLendingPool
from .venue import FixedRateVenue

POOL_ADDRESS = "0x" + "a" * 40
VENUE_ADDRESS = "0x" + "b" * 40
OWNER_ADDRESS = "0x" + "c" * 40

# Pool and venue inventory; large enough that no simulated pass runs dry.
_LIQUIDITY = 10**40


@dataclass
class SimulatedWorld:
    book: InMemoryAssetBook
    pool: InMemoryLendingPool
    venue: FixedRateVenue
    engine: LeverageEngine

    def fund(self, owner: str, asset: str, amount: int) -> None:
        """Give ``owner`` wallet funds and let the engine pull them."""
        if amount:
            self.book.mint(asset, owner, amount)
        self.book.approve(asset, owner, self.engine.address, amount)

    def open_position(
        self, owner: str, collateral_asset: str, debt_asset: str, collateral: int, debt: int
    ) -> None:
        """Seed an existing position and grant the engine what it needs to move it."""
        receipt = self.pool.receipt_asset(collateral_asset)
        if collateral:
            self.book.mint(receipt, owner, collateral)
        if debt:
            self.book.mint(self.pool.debt_asset(debt_asset), owner, debt)
        self.book.approve(receipt, owner, self.engine.address, MAX_UINT256)
        self.book.approve(
            self.pool.debt_asset(debt_asset), owner, self.engine.address, MAX_UINT256
        )

    def position(self, owner: str, collateral_asset: str, debt_asset: str) -> tuple[int, int]:
        """(collateral supplied, debt owed) in native units."""
        return (
            self.book.balance_of(self.pool.receipt_asset(collateral_asset), owner),
            self.book.balance_of(self.pool.debt_asset(debt_asset), owner),
        )


def build_world(config: AppConfig, prices: Mapping[str, int]) -> SimulatedWorld:
    """Build a pool and venue listing every configured asset at ``prices``.

    Venue rates follow the same prices, so conversions happen at oracle value.
    """
    book = InMemoryAssetBook()
    pool = InMemoryLendingPool(POOL_ADDRESS, book, config.pool.premium_rate)
    decimals = {asset.address: asset.decimals for asset in config.assets.values()}
    venue = FixedRateVenue(VENUE_ADDRESS, book, decimals)

    priced = {
        config.assets[symbol].address: price
        for symbol, price in prices.items()
        if symbol in config.assets
    }
    for address, price in priced.items():
        pool.list_reserve(
            address,
            decimals[address],
            ltv=config.safety.max_ltv,
            liquidation_threshold=config.safety.liquidation_threshold,
        )
        pool.set_price(address, price)
        book.mint(address, POOL_ADDRESS, _LIQUIDITY)
        book.mint(address, VENUE_ADDRESS, _LIQUIDITY)
    for source, source_price in priced.items():
        for target, target_price in priced.items():
            if source != target:
                venue.set_rate(source, target, mul_div(source_price, WAD, target_price))

    engine = LeverageEngine(
        address=config.engine.address,
        pool=pool,
        venue=venue,
        assets=book,
        host=book,
        operator=OperatorRecord(config.engine.operator),
    )
    return SimulatedWorld(book=book, pool=pool, venue=venue, engine=engine)
