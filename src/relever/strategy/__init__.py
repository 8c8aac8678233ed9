"""Leverage-tracking strategy: sizing, cycle orchestration and trade records."""

from .calculator import (
    AccountSnapshot,
    Action,
    Decision,
    decide,
    evaluate,
    round4,
    target_position,
)
from .orchestrator import CycleState, RebalanceOrchestrator
from .records import Executed, Failed, Held, Simulated, TradeRecord

__all__ = [
    "AccountSnapshot",
    "Action",
    "CycleState",
    "Decision",
    "Executed",
    "Failed",
    "Held",
    "RebalanceOrchestrator",
    "Simulated",
    "TradeRecord",
    "decide",
    "evaluate",
    "round4",
    "target_position",
]
