from __future__ import annotations

"""cost.py — учёт стоимости исполнения (на экземпляр, без глобальных счётчиков).

Ставки: ориентир по прайсу провайдера, не истина: base за запрос + perKB за трафик
+ надбавка за гео-таргетинг.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .results import CostBreakdown
from .tiers import ExecutionTier, parse_tier

DEFAULT_RATES: dict[ExecutionTier, dict[str, float]] = {
    ExecutionTier.HTTP: {"base": 0.001, "per_kb": 0.00001},
    ExecutionTier.BROWSER_LIGHT: {"base": 0.01, "per_kb": 0.00005},
    ExecutionTier.BROWSER_ADVANCED: {"base": 0.025, "per_kb": 0.0001},
}

DEFAULT_GEO_PREMIUMS: dict[str, float] = {
    "us": 0.0,
    "uk": 0.002,
    "de": 0.002,
    "jp": 0.005,
    "default": 0.005,
}


def geo_premium(geo: Optional[str], premiums: Optional[dict[str, float]] = None) -> float:
    table = premiums if premiums is not None else DEFAULT_GEO_PREMIUMS
    g = (geo or "us").strip().lower()
    if g in table:
        return float(table[g])
    return float(table.get("default", 0.0))


@dataclass
class CostRecord:
    tier: ExecutionTier
    cost: CostBreakdown
    timestamp: float
    details: dict[str, Any] = field(default_factory=dict)


class CostTracker:
    def __init__(
        self,
        *,
        rates: Optional[dict[ExecutionTier, dict[str, float]]] = None,
        geo_premiums: Optional[dict[str, float]] = None,
        clock: Callable[[], float] = time.time,
        max_records: Optional[int] = None,
    ) -> None:
        self.rates = dict(rates or DEFAULT_RATES)
        self.geo_premiums = dict(geo_premiums or DEFAULT_GEO_PREMIUMS)
        self._clock = clock
        # max_records: summary()/export() тогда считаются по последним N записям
        self.records: deque[CostRecord] = deque(maxlen=max_records)

    def calculate(self, tier: "ExecutionTier | str", *, bytes_transferred: int = 0, geo: Optional[str] = None) -> CostBreakdown:
        t = parse_tier(tier)
        rate = self.rates.get(t) or self.rates[ExecutionTier.HTTP]
        data_cost = (max(0, int(bytes_transferred)) / 1024.0) * float(rate.get("per_kb", 0.0))
        return CostBreakdown(
            base_cost=float(rate.get("base", 0.0)),
            data_cost=data_cost,
            geo_premium=geo_premium(geo, self.geo_premiums),
        )

    def record(self, tier: "ExecutionTier | str", *, bytes_transferred: int = 0, geo: Optional[str] = None, **details: Any) -> CostBreakdown:
        t = parse_tier(tier)
        cost = self.calculate(t, bytes_transferred=bytes_transferred, geo=geo)
        det = dict(details)
        det.update({"bytes_transferred": bytes_transferred, "geo": geo})
        self.records.append(CostRecord(tier=t, cost=cost, timestamp=self._clock(), details=det))
        return cost

    def summary(self) -> dict[str, Any]:
        by_tier: dict[str, float] = {}
        total = 0.0
        for r in self.records:
            by_tier[r.tier.value] = by_tier.get(r.tier.value, 0.0) + r.cost.total_cost
            total += r.cost.total_cost
        n = len(self.records)
        return {
            "total": total,
            "by_tier": by_tier,
            "record_count": n,
            "average_cost": (total / n) if n else 0.0,
        }

    def export(self) -> list[dict[str, Any]]:
        return [
            {
                "tier": r.tier.value,
                "timestamp": r.timestamp,
                "cost": r.cost.to_dict(),
                "details": dict(r.details),
            }
            for r in self.records
        ]

    def reset(self) -> None:
        self.records.clear()
