from __future__ import annotations

"""tiers.py — уровни исполнения (дёшево -> дорого).

Порядок в TIER_ORDER задаёт направление эскалации: только вверх, без возврата вниз.
"""

from enum import Enum
from typing import Optional, Sequence

from .errors import UnknownTierError


class ExecutionTier(str, Enum):
    HTTP = "http"
    BROWSER_LIGHT = "browser-light"
    BROWSER_ADVANCED = "browser-advanced"

    def __str__(self) -> str:
        return self.value


TIER_ORDER: tuple[ExecutionTier, ...] = (
    ExecutionTier.HTTP,
    ExecutionTier.BROWSER_LIGHT,
    ExecutionTier.BROWSER_ADVANCED,
)


def parse_tier(value: "str | ExecutionTier") -> ExecutionTier:
    if isinstance(value, ExecutionTier):
        return value
    s = str(value or "").strip().lower().replace("_", "-")
    for t in ExecutionTier:
        if t.value == s:
            return t
    raise UnknownTierError(f"unknown execution tier: {value!r}")


def tier_rank(tier: ExecutionTier, order: Sequence[ExecutionTier] = TIER_ORDER) -> int:
    try:
        return list(order).index(tier)
    except ValueError:
        raise UnknownTierError(f"tier {tier} is not in {list(order)}") from None


def next_tier(tier: ExecutionTier, order: Sequence[ExecutionTier] = TIER_ORDER) -> Optional[ExecutionTier]:
    idx = tier_rank(tier, order)
    if idx + 1 < len(order):
        return order[idx + 1]
    return None


def highest_tier(order: Sequence[ExecutionTier] = TIER_ORDER) -> ExecutionTier:
    return order[-1]
