"""Conversion venue protocol — swaps one asset into another."""
from typing import Protocol


class ConversionVenue(Protocol):
    """Abstract interface for an asset conversion venue.

    ``instruction`` is opaque to the caller; the venue pulls its input from
    ``sender`` under an existing allowance and pays the output to ``sender``.
    """

    @property
    def address(self) -> str: ...

    async def execute(self, sender: str, instruction: bytes) -> bool: ...
