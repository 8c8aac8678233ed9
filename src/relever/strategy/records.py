"""Trade records handed to journal/notification collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union

from ..errors import ErrorKind
from .calculator import AccountSnapshot, Action, Decision


@dataclass(frozen=True)
class Held:
    """Delta within threshold; nothing was sent."""


@dataclass(frozen=True)
class Executed:
    order_id: str
    size: float


@dataclass(frozen=True)
class Simulated:
    """Dry-run: the order that would have been placed."""

    size: float


@dataclass(frozen=True)
class Failed:
    error: str
    kind: ErrorKind
    order_size: Optional[float] = None


OrderOutcome = Union[Held, Executed, Simulated, Failed]

_EMPTY_SNAPSHOT = AccountSnapshot(equity=0.0, price=0.0, position=0.0)
_EMPTY_DECISION = Decision(target=0.0, delta=0.0, action=Action.HOLD)


@dataclass(frozen=True)
class TradeRecord:
    timestamp: datetime
    instrument: str
    snapshot: AccountSnapshot
    decision: Decision
    outcome: OrderOutcome

    @classmethod
    def failure(
        cls,
        timestamp: datetime,
        instrument: str,
        error: str,
        kind: ErrorKind,
    ) -> "TradeRecord":
        """Record for an attempt that never reached a decision (zeroed fields)."""
        return cls(
            timestamp=timestamp,
            instrument=instrument,
            snapshot=_EMPTY_SNAPSHOT,
            decision=_EMPTY_DECISION,
            outcome=Failed(error=error, kind=kind),
        )

    @property
    def success(self) -> bool:
        return not isinstance(self.outcome, Failed)

    @property
    def error(self) -> Optional[str]:
        if isinstance(self.outcome, Failed):
            return self.outcome.error
        return None

    @property
    def order_id(self) -> Optional[str]:
        if isinstance(self.outcome, Executed):
            return self.outcome.order_id
        return None

    @property
    def order_size(self) -> Optional[float]:
        if isinstance(self.outcome, (Executed, Simulated)):
            return self.outcome.size
        if isinstance(self.outcome, Failed):
            return self.outcome.order_size
        return None

    @property
    def dry_run(self) -> bool:
        return isinstance(self.outcome, Simulated)

    @property
    def action(self) -> Action:
        return self.decision.action

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "instrument": self.instrument,
            "price": self.snapshot.price,
            "equity": self.snapshot.equity,
            "current_position": self.snapshot.position,
            "target_position": self.decision.target,
            "delta": self.decision.delta,
            "action": self.decision.action.value,
            "order_size": self.order_size,
            "order_id": self.order_id,
            "success": self.success,
            "error": self.error,
            "dry_run": self.dry_run,
        }


def format_record(record: TradeRecord, symbol: str) -> str:
    """Multi-line console rendering of a record."""
    status = "OK" if record.success else "FAILED"
    if record.action is Action.HOLD:
        action = "HOLD"
    else:
        action = f"{record.action.value.upper()} {record.order_size or 0:.4f} {symbol}"
        if record.dry_run:
            action += " (dry-run)"

    lines = [
        f"Trade record {status} @ {record.timestamp.isoformat()}",
        f"  {symbol} price: ${record.snapshot.price:,.2f}",
        f"  Account equity: ${record.snapshot.equity:,.2f}",
        f"  Current position: {record.snapshot.position:.4f} {symbol}",
        f"  Target position: {record.decision.target:.4f} {symbol}",
        f"  Delta: {record.decision.delta:+.4f} {symbol}",
        f"  Action: {action}",
    ]
    if record.order_id:
        lines.append(f"  Order ID: {record.order_id}")
    if record.error:
        lines.append(f"  Error: {record.error}")
    return "\n".join(lines)


__all__ = [
    "Executed",
    "Failed",
    "Held",
    "OrderOutcome",
    "Simulated",
    "TradeRecord",
    "format_record",
]
