"""JSON trade journal: one file per UTC day holding an array of trade records."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .strategy.records import TradeRecord, format_record

logger = logging.getLogger(__name__)


@dataclass
class DailySummary:
    date: str
    total_trades: int = 0
    successful_trades: int = 0
    failed_trades: int = 0
    total_bought: float = 0.0
    total_sold: float = 0.0
    average_equity: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TradeJournal:
    """Append-only JSON journal under ``log_dir``."""

    def __init__(self, log_dir: str = "logs", *, symbol: str = "") -> None:
        self.log_dir = Path(log_dir)
        self.symbol = symbol

    def path_for(self, day: date) -> Path:
        return self.log_dir / f"trades-{day.isoformat()}.json"

    def load(self, day: Optional[date] = None) -> List[Dict[str, Any]]:
        path = self.path_for(day or datetime.now(timezone.utc).date())
        if not path.exists():
            return []
        text = path.read_text().strip()
        if not text:
            return []
        payload = json.loads(text)
        if not isinstance(payload, list):
            logger.warning("Journal %s does not hold a list; ignoring its contents", path)
            return []
        return payload

    def append(self, record: TradeRecord) -> Path:
        day = record.timestamp.astimezone(timezone.utc).date()
        path = self.path_for(day)
        entries = self.load(day)
        entries.append(record.as_dict())
        self.log_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(entries, indent=2))
        return path

    async def publish(self, record: TradeRecord) -> None:
        path = await asyncio.to_thread(self.append, record)
        logger.info("%s\n  (journaled to %s)", format_record(record, self.symbol or record.instrument), path)

    def daily_summary(self, day: Optional[date] = None) -> DailySummary:
        day = day or datetime.now(timezone.utc).date()
        entries = self.load(day)
        summary = DailySummary(date=day.isoformat(), total_trades=len(entries))
        total_equity = 0.0
        for entry in entries:
            if entry.get("success"):
                summary.successful_trades += 1
                size = entry.get("order_size") or 0.0
                # Dry-run sizes were never traded.
                if size and not entry.get("dry_run"):
                    if entry.get("action") == "buy":
                        summary.total_bought += size
                    elif entry.get("action") == "sell":
                        summary.total_sold += size
            else:
                summary.failed_trades += 1
            total_equity += entry.get("equity") or 0.0

        if entries:
            summary.average_equity = total_equity / len(entries)
        return summary


__all__ = ["DailySummary", "TradeJournal"]
