"""In-memory lending pool — supply, borrow, repay, withdraw and short-term loans.

Positions are tracked as receipt tokens (collateral) and debt tokens held in
the shared asset book. Credit delegation is the owner's allowance on a debt
token: a third party may borrow against the owner's collateral only up to it.
Receipt tokens move freely only while their sender stays above the
liquidation threshold.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ..interfaces.receiver import LoanReceiver
from ..models import AccountData
from ..wad import MAX_UINT256, WAD, to_value, wad_div, wad_mul
from .book import InMemoryAssetBook
from .errors import HealthCheckFailed, LoanNotSettled, SimulationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reserve:
    """Listing of one asset in the pool (ratios WAD-scaled)."""

    asset: str
    decimals: int
    receipt_asset: str
    debt_asset: str
    ltv: int
    liquidation_threshold: int


class InMemoryLendingPool:
    def __init__(
        self,
        address: str,
        book: InMemoryAssetBook,
        premium_rate: int = 9 * 10**14,
    ) -> None:
        self._address = address
        self._book = book
        self._premium_rate = premium_rate
        self._reserves: dict[str, Reserve] = {}
        self._prices: dict[str, int] = {}

    @property
    def address(self) -> str:
        return self._address

    @property
    def premium_rate(self) -> int:
        return self._premium_rate

    # -- configuration --------------------------------------------------

    def list_reserve(
        self,
        asset: str,
        decimals: int,
        receipt_asset: str | None = None,
        debt_asset: str | None = None,
        ltv: int = 8 * 10**17,
        liquidation_threshold: int = 85 * 10**16,
    ) -> Reserve:
        if not 0 <= ltv <= liquidation_threshold < WAD:
            raise SimulationError(
                f"Reserve {asset}: need 0 <= ltv <= liquidation threshold < 1"
            )
        relisted = asset in self._reserves
        reserve = Reserve(
            asset=asset,
            decimals=decimals,
            receipt_asset=receipt_asset or f"receipt:{asset}",
            debt_asset=debt_asset or f"debt:{asset}",
            ltv=ltv,
            liquidation_threshold=liquidation_threshold,
        )
        self._reserves[asset] = reserve
        if not relisted:
            # Moving collateral away must not leave its holder unhealthy.
            self._book.on_transfer(reserve.receipt_asset, self._require_healthy)
        return reserve

    def set_price(self, asset: str, price: int) -> None:
        self._reserve(asset)
        self._prices[asset] = price

    def receipt_asset(self, asset: str) -> str:
        return self._reserve(asset).receipt_asset

    def debt_asset(self, asset: str) -> str:
        return self._reserve(asset).debt_asset

    def _reserve(self, asset: str) -> Reserve:
        try:
            return self._reserves[asset]
        except KeyError as e:
            raise SimulationError(f"Asset {asset} is not listed") from e

    # -- position operations --------------------------------------------

    async def supply(self, sender: str, asset: str, amount: int, on_behalf_of: str) -> None:
        reserve = self._reserve(asset)
        self._book.transfer_from(asset, self._address, sender, self._address, amount)
        self._book.mint(reserve.receipt_asset, on_behalf_of, amount)
        logger.debug("Supplied %d %s for %s", amount, asset, on_behalf_of)

    async def borrow(self, sender: str, asset: str, amount: int, on_behalf_of: str) -> None:
        reserve = self._reserve(asset)
        if sender != on_behalf_of:
            self._book.spend_allowance(reserve.debt_asset, on_behalf_of, sender, amount)
        self._book.mint(reserve.debt_asset, on_behalf_of, amount)
        self._book.transfer(asset, self._address, sender, amount)
        self._require_borrowing_power(on_behalf_of)
        logger.debug("Borrowed %d %s against %s", amount, asset, on_behalf_of)

    async def repay(self, sender: str, asset: str, amount: int, on_behalf_of: str) -> int:
        reserve = self._reserve(asset)
        paid = min(amount, self._book.balance_of(reserve.debt_asset, on_behalf_of))
        if paid:
            self._book.transfer_from(asset, self._address, sender, self._address, paid)
            self._book.burn(reserve.debt_asset, on_behalf_of, paid)
        logger.debug("Repaid %d %s for %s", paid, asset, on_behalf_of)
        return paid

    async def withdraw(self, sender: str, asset: str, amount: int, to: str) -> int:
        reserve = self._reserve(asset)
        self._book.burn(reserve.receipt_asset, sender, amount)
        self._book.transfer(asset, self._address, to, amount)
        self._require_healthy(sender)
        logger.debug("Withdrew %d %s from %s to %s", amount, asset, sender, to)
        return amount

    async def request_short_term_loan(
        self,
        initiator: str,
        receiver: LoanReceiver,
        assets: list[str],
        amounts: list[int],
        payload: bytes,
    ) -> None:
        if not assets or len(assets) != len(amounts):
            raise SimulationError("Loan assets and amounts must be non-empty and aligned")
        premiums = [wad_mul(amount, self._premium_rate) for amount in amounts]

        for asset, amount in zip(assets, amounts):
            self._reserve(asset)
            self._book.transfer(asset, self._address, receiver.address, amount)

        settled = await receiver.on_loan_fulfilled(
            caller=self._address,
            assets=list(assets),
            amounts=list(amounts),
            premiums=list(premiums),
            initiator=initiator,
            payload=payload,
        )
        if not settled:
            raise LoanNotSettled(f"Receiver {receiver.address} declined to settle")

        for asset, amount, premium in zip(assets, amounts, premiums):
            self._book.transfer_from(
                asset, self._address, receiver.address, self._address, amount + premium
            )
        logger.debug("Short-term loan to %s settled", receiver.address)

    # -- account views --------------------------------------------------

    def _values(self, owner: str) -> tuple[int, int, int, int]:
        """(collateral value, debt value, borrowing power, liquidation capacity)."""
        collateral = debt = power = capacity = 0
        for asset, reserve in self._reserves.items():
            supplied = self._book.balance_of(reserve.receipt_asset, owner)
            owed = self._book.balance_of(reserve.debt_asset, owner)
            if not supplied and not owed:
                continue
            price = self._prices.get(asset)
            if price is None:
                raise SimulationError(f"No price set for {asset}")
            value = to_value(supplied, price, reserve.decimals)
            collateral += value
            power += wad_mul(value, reserve.ltv)
            capacity += wad_mul(value, reserve.liquidation_threshold)
            debt += to_value(owed, price, reserve.decimals)
        return collateral, debt, power, capacity

    def _require_borrowing_power(self, owner: str) -> None:
        _, debt, power, _ = self._values(owner)
        if debt > power:
            raise HealthCheckFailed(f"{owner} debt value {debt} exceeds borrowing power {power}")

    def _require_healthy(self, owner: str) -> None:
        _, debt, _, capacity = self._values(owner)
        if debt > capacity:
            raise HealthCheckFailed(
                f"{owner} debt value {debt} exceeds liquidation capacity {capacity}"
            )

    async def get_account_data(self, owner: str) -> AccountData:
        collateral, debt, _, capacity = self._values(owner)
        return AccountData(
            collateral_value=collateral,
            debt_value=debt,
            ltv=wad_div(debt, collateral) if collateral else 0,
            health_factor=wad_div(capacity, debt) if debt else MAX_UINT256,
        )
