"""Loan receiver protocol — callback target of a short-term loan."""
from typing import Protocol


class LoanReceiver(Protocol):
    """Abstract interface for a contract that receives a short-term loan."""

    @property
    def address(self) -> str: ...

    async def on_loan_fulfilled(
        self,
        caller: str,
        assets: list[str],
        amounts: list[int],
        premiums: list[int],
        initiator: str,
        payload: bytes,
    ) -> bool: ...
