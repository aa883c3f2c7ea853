"""Lending pool protocol — the external ledger and short-term loan provider."""
from typing import Protocol

from ..models import AccountData
from .receiver import LoanReceiver


class LendingPool(Protocol):
    """Abstract interface for a collateralised lending pool."""

    @property
    def address(self) -> str: ...

    @property
    def premium_rate(self) -> int: ...

    def receipt_asset(self, asset: str) -> str: ...

    async def supply(self, sender: str, asset: str, amount: int, on_behalf_of: str) -> None: ...

    async def borrow(self, sender: str, asset: str, amount: int, on_behalf_of: str) -> None: ...

    async def repay(self, sender: str, asset: str, amount: int, on_behalf_of: str) -> int: ...

    async def withdraw(self, sender: str, asset: str, amount: int, to: str) -> int: ...

    async def request_short_term_loan(
        self,
        initiator: str,
        receiver: LoanReceiver,
        assets: list[str],
        amounts: list[int],
        payload: bytes,
    ) -> None: ...

    async def get_account_data(self, owner: str) -> AccountData: ...
