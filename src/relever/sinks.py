"""Fan-out of trade records to journal/notification collaborators."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from .strategy.orchestrator import RebalanceOrchestrator
from .strategy.records import TradeRecord

logger = logging.getLogger(__name__)


class RecordSink(Protocol):
    async def publish(self, record: TradeRecord) -> None:
        ...


async def publish_record(record: TradeRecord, sinks: Iterable[RecordSink]) -> None:
    """
    Hand ``record`` to every sink.

    A failing sink is logged and skipped; it never changes the record, so an
    order that already went through stays a successful trade.
    """
    for sink in sinks:
        try:
            await sink.publish(record)
        except Exception as exc:
            logger.error("Record sink %s failed: %s", type(sink).__name__, exc, exc_info=exc)


async def rebalance_and_publish(
    orchestrator: RebalanceOrchestrator,
    sinks: Iterable[RecordSink],
) -> TradeRecord:
    record = await orchestrator.run()
    if record.success:
        logger.info("Rebalance completed: %s", record.action.value)
    else:
        logger.error("Rebalance failed: %s", record.error)
    await publish_record(record, sinks)
    return record


__all__ = ["RecordSink", "publish_record", "rebalance_and_publish"]
