"""Protocol interfaces for the leverage engine's collaborators."""
from .asset_book import AssetBook, TransactionalHost
from .lending_pool import LendingPool
from .price_oracle import PriceOracle
from .receiver import LoanReceiver
from .venue import ConversionVenue

__all__ = [
    "AssetBook",
    "ConversionVenue",
    "LendingPool",
    "LoanReceiver",
    "PriceOracle",
    "TransactionalHost",
]
