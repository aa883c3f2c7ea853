"""Fixed-rate conversion venue — swaps at configured rates from its own inventory."""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping

from ..wad import WAD, mul_div
from .book import InMemoryAssetBook

logger = logging.getLogger(__name__)


class FixedRateVenue:
    """Converts assets at ``rate`` whole output units per whole input unit (WAD).

    The venue pays out of its own balance in the asset book, so tests seed it
    with inventory. Setting ``failing`` makes every conversion report failure.
    """

    def __init__(
        self, address: str, book: InMemoryAssetBook, decimals: Mapping[str, int]
    ) -> None:
        self._address = address
        self._book = book
        self._decimals = dict(decimals)
        self._rates: dict[tuple[str, str], int] = {}
        self.failing = False

    @property
    def address(self) -> str:
        return self._address

    def set_rate(self, from_asset: str, to_asset: str, rate: int) -> None:
        self._rates[(from_asset, to_asset)] = rate

    def quote(self, from_asset: str, to_asset: str, amount_in: int) -> int:
        rate = self._rates[(from_asset, to_asset)]
        return mul_div(
            amount_in * rate,
            10 ** self._decimals[to_asset],
            WAD * 10 ** self._decimals[from_asset],
        )

    @staticmethod
    def build_instruction(
        from_asset: str, to_asset: str, amount_in: int, min_out: int = 0
    ) -> bytes:
        return json.dumps(
            {
                "from": from_asset,
                "to": to_asset,
                "amount_in": str(amount_in),
                "min_out": str(min_out),
            }
        ).encode()

    async def execute(self, sender: str, instruction: bytes) -> bool:
        if self.failing:
            logger.warning("Venue %s is failing; rejecting conversion", self._address)
            return False
        try:
            order = json.loads(instruction.decode())
            from_asset, to_asset = order["from"], order["to"]
            amount_in, min_out = int(order["amount_in"]), int(order["min_out"])
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed conversion instruction: %s", e)
            return False

        if (from_asset, to_asset) not in self._rates:
            logger.warning("No rate for %s -> %s", from_asset, to_asset)
            return False
        amount_out = self.quote(from_asset, to_asset, amount_in)
        if amount_out < min_out:
            logger.warning("Conversion output %d below minimum %d", amount_out, min_out)
            return False

        self._book.transfer_from(from_asset, self._address, sender, self._address, amount_in)
        self._book.transfer(to_asset, self._address, sender, amount_out)
        logger.debug(
            "Converted %d %s into %d %s for %s",
            amount_in, from_asset, amount_out, to_asset, sender,
        )
        return True
