"""Asset book protocol — token custody and transactional scope."""
from contextlib import AbstractAsyncContextManager
from typing import Protocol


class AssetBook(Protocol):
    """Balances and allowances of every asset, keyed by holder address."""

    def balance_of(self, asset: str, holder: str) -> int: ...

    def allowance(self, asset: str, owner: str, spender: str) -> int: ...

    def transfer(self, asset: str, sender: str, to: str, amount: int) -> None: ...

    def transfer_from(
        self, asset: str, spender: str, owner: str, to: str, amount: int
    ) -> None: ...

    def approve(self, asset: str, owner: str, spender: str, amount: int) -> None: ...


class TransactionalHost(Protocol):
    """All-or-nothing execution scope.

    ``atomic()`` snapshots state on entry and restores it if the body raises;
    the exception is re-raised. Scopes are serialised, never interleaved.
    """

    def atomic(self) -> AbstractAsyncContextManager[None]: ...
