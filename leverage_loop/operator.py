"""Operator record — the single address allowed to run recovery operations."""
from __future__ import annotations

import logging

from .errors import InvalidAddress, Unauthorized

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


def is_null_address(address: str | None) -> bool:
    return not address or not address.strip() or address.lower() == ZERO_ADDRESS


class OperatorRecord:
    """Holds the operator address; mutated only through :meth:`transfer`."""

    def __init__(self, operator: str) -> None:
        if is_null_address(operator):
            raise InvalidAddress("Operator address cannot be empty or zero")
        self._operator = operator

    @property
    def operator(self) -> str:
        return self._operator

    def require(self, sender: str) -> None:
        """Raise Unauthorized unless ``sender`` is the operator."""
        if sender != self._operator:
            raise Unauthorized(f"{sender} is not the operator")

    def transfer(self, sender: str, new_operator: str) -> None:
        self.require(sender)
        if is_null_address(new_operator):
            raise InvalidAddress("New operator address cannot be empty or zero")
        logger.info("Operator changed from %s to %s", self._operator, new_operator)
        self._operator = new_operator
