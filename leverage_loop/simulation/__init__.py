"""In-memory lending pool, conversion venue and asset book for dry runs."""
from .book import InMemoryAssetBook
from .errors import (
    HealthCheckFailed,
    InsufficientAllowance,
    InsufficientBalance,
    LoanNotSettled,
    SimulationError,
)
from .pool import InMemoryLendingPool, Reserve
from .venue import FixedRateVenue
from .world import SimulatedWorld, build_world

__all__ = [
    "FixedRateVenue",
    "HealthCheckFailed",
    "InMemoryAssetBook",
    "InMemoryLendingPool",
    "InsufficientAllowance",
    "InsufficientBalance",
    "LoanNotSettled",
    "Reserve",
    "SimulatedWorld",
    "SimulationError",
    "build_world",
]
