from __future__ import annotations

"""results.py — what one execution attempt returns.

ExecutionResult is created per attempt and never mutated afterwards; the escalation
handler derives the final result with `dataclasses.replace`.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from .tiers import ExecutionTier


@dataclass(frozen=True)
class CostBreakdown:
    base_cost: float = 0.0
    data_cost: float = 0.0
    geo_premium: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.base_cost + self.data_cost + self.geo_premium

    def to_dict(self) -> dict[str, float]:
        d = asdict(self)
        d["total_cost"] = self.total_cost
        return d


@dataclass(frozen=True)
class AntiBotEvent:
    type: str  # challenge|captcha|fingerprint|rate-limit
    timestamp: float
    resolved: bool = False


@dataclass(frozen=True)
class ExecutionResult:
    url: str
    success: bool
    status_code: int
    execution_tier: ExecutionTier
    content: str = ""
    duration_ms: int = 0
    escalation_needed: bool = False
    escalation_reason: Optional[str] = None
    error: Optional[str] = None
    cost: Optional[CostBreakdown] = None
    geo: Optional[str] = None
    final_url: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)
    retry_count: int = 0
    proxy_used: bool = False
    extracted_data: Optional[dict[str, Any]] = None
    anti_bot_events: tuple[AntiBotEvent, ...] = ()
    geo_verified: Optional[bool] = None
    screenshot_path: Optional[str] = None
    escalation_count: int = 0
    dynamic_content: Optional[dict[str, Any]] = None

    @property
    def content_length(self) -> int:
        return len(self.content or "")

    def to_dict(self, *, with_content: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {
            "url": self.url,
            "success": self.success,
            "status_code": self.status_code,
            "execution_tier": self.execution_tier.value,
            "escalation_needed": self.escalation_needed,
            "escalation_reason": self.escalation_reason,
            "escalation_count": self.escalation_count,
            "error": self.error,
            "cost": self.cost.total_cost if self.cost else 0.0,
            "duration_ms": self.duration_ms,
            "content_length": self.content_length,
            "retry_count": self.retry_count,
            "geo": self.geo,
        }
        if self.extracted_data is not None:
            out["extracted_data"] = self.extracted_data
        if self.dynamic_content is not None:
            out["dynamic_content"] = dict(self.dynamic_content)
        if self.anti_bot_events:
            out["anti_bot_events"] = [asdict(e) for e in self.anti_bot_events]
        if with_content:
            out["content"] = self.content
        return out
