"""Service modules"""
from .engine import EngineState, LeverageEngine
from .planner import (
    DeleveragePlan,
    LeveragePlan,
    MaxLeveragePlan,
    Planner,
    PositionBalances,
)

__all__ = [
    "DeleveragePlan",
    "EngineState",
    "LeverageEngine",
    "LeveragePlan",
    "MaxLeveragePlan",
    "Planner",
    "PositionBalances",
]
