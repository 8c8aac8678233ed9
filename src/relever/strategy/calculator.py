"""
Position sizing for the leverage-tracking strategy.

Target position (base units) = equity (USDT) x leverage / price (USDT).

Every quantity leaving this module is rounded to 4 decimals, half away from
zero. Rounding is done in ``decimal`` on the shortest repr of each float so
that ``delta`` is exactly ``target - current`` at 4-decimal precision and two
identical inputs always produce identical outputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from ..errors import CalculationError

_QUANTUM = Decimal("0.0001")


class Action(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


@dataclass(frozen=True)
class AccountSnapshot:
    """Equity, price and current position captured for one rebalance attempt."""

    equity: float
    price: float
    position: float


@dataclass(frozen=True)
class Decision:
    target: float
    delta: float
    action: Action

    @property
    def order_size(self) -> float:
        return abs(self.delta)


def _to_decimal(value: float) -> Decimal:
    return Decimal(repr(float(value)))


def _quantize(value: Decimal) -> float:
    # ROUND_HALF_UP in decimal rounds ties away from zero for both signs.
    return float(value.quantize(_QUANTUM, rounding=ROUND_HALF_UP))


def round4(value: float) -> float:
    return _quantize(_to_decimal(value))


def target_position(equity: float, price: float, leverage: float) -> float:
    """Return the position size that puts ``leverage`` x ``equity`` of notional at ``price``."""
    if price <= 0:
        raise CalculationError(f"price must be positive, got {price}")
    return round4(equity * leverage / price)


def decide(current: float, target: float, threshold: float) -> Decision:
    """
    Compare ``current`` against ``target`` and pick the order direction.

    ``hold`` when the rounded delta is zero or smaller than ``threshold`` in
    magnitude, otherwise the sign of the delta picks ``buy`` or ``sell``.
    """
    delta = _quantize(_to_decimal(target) - _to_decimal(current))
    if delta == 0 or abs(delta) < threshold:
        action = Action.HOLD
    elif delta > 0:
        action = Action.BUY
    else:
        action = Action.SELL
    return Decision(target=target, delta=delta, action=action)


def evaluate(snapshot: AccountSnapshot, leverage: float, threshold: float) -> Decision:
    target = target_position(snapshot.equity, snapshot.price, leverage)
    return decide(snapshot.position, target, threshold)


__all__ = [
    "AccountSnapshot",
    "Action",
    "Decision",
    "decide",
    "evaluate",
    "round4",
    "target_position",
]
