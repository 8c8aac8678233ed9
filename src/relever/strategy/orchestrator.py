"""
One rebalance cycle: fetch -> decide -> execute/hold -> record.

The orchestrator only produces ``TradeRecord`` values. Persisting and
notifying them is the caller's job (see ``relever.sinks``).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Protocol, TypeVar

from ..config import TradingConfig
from ..errors import RelevError
from ..result import Result
from .calculator import AccountSnapshot, Action, Decision, evaluate
from .records import Executed, Failed, Held, OrderOutcome, Simulated, TradeRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExchangeClient(Protocol):
    async def get_equity(self) -> Result[float]:
        ...

    async def get_price(self, instrument: str) -> Result[float]:
        ...

    async def get_position(self, instrument: str) -> Result[float]:
        ...

    async def place_order(self, instrument: str, side: str, size: float) -> Result[str]:
        ...


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DECIDING = "deciding"
    EXECUTING = "executing"
    HOLDING = "holding"
    RECORDING = "recording"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def _unwrap(call: Awaitable[Result[T]]) -> T:
    return (await call).unwrap()


class RebalanceOrchestrator:
    """Runs rebalance cycles against a single instrument."""

    def __init__(
        self,
        client: ExchangeClient,
        settings: TradingConfig,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.client = client
        self.settings = settings
        self._clock = clock
        self._state = CycleState.IDLE
        # Serializes scheduled and manual invocations. Created on first run so
        # it belongs to the loop that runs the cycles.
        self._lock: Optional[asyncio.Lock] = None

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._lock is not None and self._lock.locked()

    def _set_state(self, state: CycleState) -> None:
        logger.debug("Rebalance cycle %s -> %s", self._state.value, state.value)
        self._state = state

    async def run(self) -> TradeRecord:
        """Run one full cycle and return its record. At most one order is placed."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        elif self._lock.locked():
            logger.info("Rebalance already in progress; waiting for it to finish")
        async with self._lock:
            try:
                return await self._run_cycle()
            finally:
                self._set_state(CycleState.IDLE)

    async def _run_cycle(self) -> TradeRecord:
        timestamp = self._clock()
        instrument = self.settings.instrument

        try:
            self._set_state(CycleState.FETCHING)
            snapshot = await self.fetch_snapshot()
            self._set_state(CycleState.DECIDING)
            decision = evaluate(snapshot, self.settings.leverage, self.settings.min_adjustment)
        except RelevError as exc:
            logger.error("Rebalance aborted for %s: %s", instrument, exc)
            self._set_state(CycleState.RECORDING)
            return TradeRecord.failure(timestamp, instrument, str(exc), exc.kind)

        logger.info(
            "%s equity=%.2f price=%.4f position=%.4f target=%.4f delta=%+.4f action=%s",
            instrument,
            snapshot.equity,
            snapshot.price,
            snapshot.position,
            decision.target,
            decision.delta,
            decision.action.value,
        )
        outcome = await self._execute(decision)

        self._set_state(CycleState.RECORDING)
        return TradeRecord(
            timestamp=timestamp,
            instrument=instrument,
            snapshot=snapshot,
            decision=decision,
            outcome=outcome,
        )

    async def fetch_snapshot(self) -> AccountSnapshot:
        """
        Fetch equity, price and position concurrently.

        The first failure cancels the remaining requests and is raised; no
        value is ever guessed.
        """
        instrument = self.settings.instrument
        tasks: Dict[str, asyncio.Task[float]] = {
            "equity": asyncio.create_task(_unwrap(self.client.get_equity()), name="relever-equity"),
            "price": asyncio.create_task(_unwrap(self.client.get_price(instrument)), name="relever-price"),
            "position": asyncio.create_task(
                _unwrap(self.client.get_position(instrument)), name="relever-position"
            ),
        }
        try:
            done, pending = await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task in tasks.values():
            if task in done and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]

        return AccountSnapshot(
            equity=tasks["equity"].result(),
            price=tasks["price"].result(),
            position=tasks["position"].result(),
        )

    async def _execute(self, decision: Decision) -> OrderOutcome:
        if decision.action is Action.HOLD:
            self._set_state(CycleState.HOLDING)
            return Held()

        self._set_state(CycleState.EXECUTING)
        size = decision.order_size
        instrument = self.settings.instrument

        if self.settings.dry_run:
            logger.info("[DRY-RUN] Would %s %.4f %s", decision.action.value, size, instrument)
            return Simulated(size=size)

        result = await self.client.place_order(instrument, decision.action.value, size)
        if result.is_ok:
            return Executed(order_id=result.value, size=size)

        logger.error("Order %s %.4f %s failed: %s", decision.action.value, size, instrument, result.error)
        return Failed(error=str(result.error), kind=result.kind, order_size=size)


__all__ = ["CycleState", "ExchangeClient", "RebalanceOrchestrator"]
