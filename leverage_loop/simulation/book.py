"""In-memory asset book with snapshot/rollback transactions."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from .errors import InsufficientAllowance, InsufficientBalance

logger = logging.getLogger(__name__)


class InMemoryAssetBook:
    """Balances and allowances for every asset, plus an all-or-nothing scope.

    Every piece of simulated pool state (receipt and debt tokens, credit
    delegation) is held here, so rolling the book back rolls back the world.
    """

    def __init__(self) -> None:
        self._balances: dict[tuple[str, str], int] = {}
        self._allowances: dict[tuple[str, str, str], int] = {}
        self._transfer_checks: dict[str, list[Callable[[str], None]]] = {}
        self._lock = asyncio.Lock()

    # -- queries --------------------------------------------------------

    def balance_of(self, asset: str, holder: str) -> int:
        return self._balances.get((asset, holder), 0)

    def allowance(self, asset: str, owner: str, spender: str) -> int:
        return self._allowances.get((asset, owner, spender), 0)

    # -- mutations ------------------------------------------------------

    def mint(self, asset: str, to: str, amount: int) -> None:
        _require_amount(amount)
        self._balances[(asset, to)] = self.balance_of(asset, to) + amount

    def burn(self, asset: str, holder: str, amount: int) -> None:
        _require_amount(amount)
        self._debit(asset, holder, amount)

    def transfer(self, asset: str, sender: str, to: str, amount: int) -> None:
        _require_amount(amount)
        self._debit(asset, sender, amount)
        self._balances[(asset, to)] = self.balance_of(asset, to) + amount
        for check in self._transfer_checks.get(asset, ()):
            check(sender)

    def transfer_from(
        self, asset: str, spender: str, owner: str, to: str, amount: int
    ) -> None:
        if spender != owner:
            self.spend_allowance(asset, owner, spender, amount)
        self.transfer(asset, owner, to, amount)

    def on_transfer(self, asset: str, check: Callable[[str], None]) -> None:
        """Run ``check(sender)`` after every transfer of ``asset``.

        A check that raises leaves the transfer applied; callers rely on
        :meth:`atomic` to undo it.
        """
        self._transfer_checks.setdefault(asset, []).append(check)

    def approve(self, asset: str, owner: str, spender: str, amount: int) -> None:
        _require_amount(amount)
        self._allowances[(asset, owner, spender)] = amount

    def spend_allowance(self, asset: str, owner: str, spender: str, amount: int) -> None:
        _require_amount(amount)
        allowed = self.allowance(asset, owner, spender)
        if allowed < amount:
            raise InsufficientAllowance(
                f"{spender} may move {allowed} of {owner}'s {asset}, needs {amount}"
            )
        self._allowances[(asset, owner, spender)] = allowed - amount

    def _debit(self, asset: str, holder: str, amount: int) -> None:
        held = self.balance_of(asset, holder)
        if held < amount:
            raise InsufficientBalance(f"{holder} holds {held} {asset}, needs {amount}")
        self._balances[(asset, holder)] = held - amount

    # -- transactions ---------------------------------------------------

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        """Run the body all-or-nothing; scopes never interleave."""
        async with self._lock:
            balances = dict(self._balances)
            allowances = dict(self._allowances)
            try:
                yield
            except BaseException:
                self._balances = balances
                self._allowances = allowances
                logger.debug("Asset book rolled back")
                raise


def _require_amount(amount: int) -> None:
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")
