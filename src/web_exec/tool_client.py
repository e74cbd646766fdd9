from __future__ import annotations

"""
tool_client.py — "инструменты для агента": web_search / web_scrape / web_navigate.

Сам вызов уходит в транспорт (callable(tool, payload) -> dict). По умолчанию это
HttpToolTransport: POST JSON на API провайдера с Bearer-токеном.

Клиент отвечает за то, что вокруг вызова:
- выбор уровня по URL (если auto_escalate и уровень не задан явно);
- стоимость вызова;
- история вызовов и суммарная стоимость (на экземпляр; reset() всё обнуляет);
- callbacks on_tool_start / on_tool_complete / on_tool_error.

Ошибки транспорта не глотаются: callback on_tool_error и дальше наверх.
"""

import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

import requests

from .config import ProviderCredentials
from .cost import DEFAULT_RATES
from .diag import DiagMixin
from .tiers import ExecutionTier, parse_tier

DEFAULT_API_BASE = "https://api.brightdata.com/mcp"

COMPLEX_URL_PATTERNS: tuple[str, ...] = ("squarespace", "wix", "shopify")
MODERATE_URL_PATTERNS: tuple[str, ...] = ("magento", "adobe", "salesforce")

SEARCH_COST_PER_PAGE = 0.005
SCRAPE_GEO_PREMIUM = 0.002
NAVIGATE_BASE_COST = 0.025
NAVIGATE_STEP_COST = 0.005
NAVIGATE_GEO_PREMIUM = 0.005

ToolTransport = Callable[[str, dict[str, Any]], dict[str, Any]]


def _non_us(geo: Optional[str]) -> bool:
    return bool(geo) and str(geo).strip().lower() != "us"


def search_cost(limit: int) -> float:
    return SEARCH_COST_PER_PAGE * math.ceil(max(0, int(limit)) / 10)


def scrape_cost(tier: ExecutionTier, geo: Optional[str] = None) -> float:
    return DEFAULT_RATES[tier]["base"] + (SCRAPE_GEO_PREMIUM if _non_us(geo) else 0.0)


def navigation_cost(steps: int, geo: Optional[str] = None) -> float:
    return NAVIGATE_BASE_COST + NAVIGATE_STEP_COST * int(steps) + (NAVIGATE_GEO_PREMIUM if _non_us(geo) else 0.0)


def tier_for_url(url: str) -> ExecutionTier:
    low = (url or "").lower()
    if any(p in low for p in COMPLEX_URL_PATTERNS):
        return ExecutionTier.BROWSER_ADVANCED
    if any(p in low for p in MODERATE_URL_PATTERNS):
        return ExecutionTier.BROWSER_LIGHT
    return ExecutionTier.HTTP


class HttpToolTransport:
    def __init__(
        self,
        credentials: ProviderCredentials,
        *,
        base_url: str = DEFAULT_API_BASE,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
    ) -> None:
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = float(timeout)

    def __call__(self, tool: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.credentials.require_token(f"tool call {tool}")
        r = self.session.post(
            f"{self.base_url}/tools/{tool}",
            json=payload,
            headers={
                "Authorization": f"Bearer {self.credentials.api_token}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
        )
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, dict):
            raise ValueError(f"tool {tool}: expected JSON object, got {type(data).__name__}")
        return data


@dataclass(frozen=True)
class SearchHit:
    title: str
    url: str
    snippet: str = ""
    position: int = 0
    environment_hint: Optional[str] = None


@dataclass
class ScrapeResult:
    url: str
    success: bool
    execution_tier: ExecutionTier
    content: str = ""
    extracted_data: Any = None
    geo: Optional[str] = None
    cost: float = 0.0
    duration_ms: int = 0


@dataclass
class NavigationResult:
    url: str
    success: bool
    steps: list[dict[str, Any]] = field(default_factory=list)
    final_url: Optional[str] = None
    extracted_data: list[Any] = field(default_factory=list)
    cost: float = 0.0
    duration_ms: int = 0


@dataclass(frozen=True)
class ToolCall:
    tool: str
    input: dict[str, Any]
    output: Any
    duration_ms: int
    cost: float
    timestamp: float


@dataclass
class ToolCallbacks:
    on_tool_start: list[Callable[[str, dict[str, Any]], None]] = field(default_factory=list)
    on_tool_complete: list[Callable[[str, dict[str, Any]], None]] = field(default_factory=list)
    on_tool_error: list[Callable[[str, Exception], None]] = field(default_factory=list)


class ToolClient(DiagMixin):
    diag_tag = "TOOL"

    def __init__(
        self,
        *,
        transport: Optional[ToolTransport] = None,
        credentials: Optional[ProviderCredentials] = None,
        auto_escalate: bool = True,
        clock: Callable[[], float] = time.time,
        diag: bool = False,
    ) -> None:
        self.transport: ToolTransport = transport or HttpToolTransport(credentials or ProviderCredentials.from_env())
        self.auto_escalate = bool(auto_escalate)
        self.callbacks = ToolCallbacks()
        self._clock = clock
        self._calls: list[ToolCall] = []
        self._total_cost = 0.0
        self.diag = bool(diag)
        self.last_diag = None

    # --------- plumbing ---------

    def _call(self, tool: str, payload: dict[str, Any]) -> tuple[dict[str, Any], int]:
        for cb in self.callbacks.on_tool_start:
            cb(tool, payload)
        t0 = self._clock()
        try:
            out = self.transport(tool, payload)
        except Exception as e:
            self._emit_diag({"tool": tool, "error": f"{type(e).__name__}: {e}"})
            for cb in self.callbacks.on_tool_error:
                cb(tool, e)
            raise
        return out, int((self._clock() - t0) * 1000)

    def _record(self, tool: str, payload: dict[str, Any], output: Any, duration_ms: int, cost: float, **info: Any) -> None:
        self._calls.append(ToolCall(tool, dict(payload), output, duration_ms, cost, self._clock()))
        self._total_cost += cost
        done = {"duration_ms": duration_ms, "cost": cost, **info}
        self._emit_diag({"tool": tool, **done})
        for cb in self.callbacks.on_tool_complete:
            cb(tool, done)

    # --------- tools ---------

    def web_search(self, query: str, *, limit: int = 10, country: Optional[str] = None) -> list[SearchHit]:
        payload: dict[str, Any] = {"query": query, "limit": int(limit)}
        if country:
            payload["country"] = country
        out, ms = self._call("web_search", payload)

        hits: list[SearchHit] = []
        for i, row in enumerate((out.get("results") or [])[: int(limit)]):
            if not isinstance(row, dict) or not row.get("url"):
                continue
            hits.append(
                SearchHit(
                    title=str(row.get("title") or ""),
                    url=str(row["url"]),
                    snippet=str(row.get("snippet") or ""),
                    position=int(row.get("position") or i + 1),
                    environment_hint=row.get("environment_hint") or row.get("environmentHint"),
                )
            )
        self._record("web_search", payload, hits, ms, search_cost(limit), results=len(hits))
        return hits

    def choose_tier(self, url: str, force_tier: "ExecutionTier | str | None" = None) -> ExecutionTier:
        if force_tier is not None:
            return parse_tier(force_tier)
        return tier_for_url(url) if self.auto_escalate else ExecutionTier.HTTP

    def web_scrape(
        self,
        url: str,
        *,
        geo: Optional[str] = None,
        force_tier: "ExecutionTier | str | None" = None,
        selectors: Optional[Sequence[str]] = None,
    ) -> ScrapeResult:
        tier = self.choose_tier(url, force_tier)
        payload: dict[str, Any] = {"url": url, "tier": tier.value}
        if geo:
            payload["geo"] = geo
        if selectors:
            payload["selectors"] = list(selectors)
        out, ms = self._call("web_scrape", payload)

        res = ScrapeResult(
            url=url,
            success=bool(out.get("success", True)),
            execution_tier=tier,
            content=str(out.get("content") or ""),
            extracted_data=out.get("extracted_data"),
            geo=geo,
            cost=scrape_cost(tier, geo),
            duration_ms=ms,
        )
        self._record("web_scrape", payload, res, ms, res.cost, tier=tier.value)
        return res

    def web_scrape_multi_geo(self, url: str, geos: Sequence[str], *, selectors: Optional[Sequence[str]] = None) -> dict[str, ScrapeResult]:
        return {g: self.web_scrape(url, geo=g, selectors=selectors) for g in geos}

    def web_navigate(self, url: str, steps: Sequence[dict[str, Any]], *, geo: Optional[str] = None) -> NavigationResult:
        payload: dict[str, Any] = {"url": url, "steps": [dict(s) for s in steps]}
        if geo:
            payload["geo"] = geo
        out, ms = self._call("web_navigate", payload)

        step_rows = [s for s in (out.get("steps") or []) if isinstance(s, dict)]
        res = NavigationResult(
            url=url,
            success=bool(out.get("success", True)),
            steps=step_rows,
            final_url=out.get("final_url") or url,
            extracted_data=[s["data"] for s in step_rows if s.get("data") is not None],
            cost=navigation_cost(len(steps), geo),
            duration_ms=ms,
        )
        self._record("web_navigate", payload, res, ms, res.cost, steps=len(steps))
        return res

    # --------- accounting ---------

    def call_history(self) -> list[ToolCall]:
        return list(self._calls)

    def total_cost(self) -> float:
        return self._total_cost

    def cost_breakdown(self) -> dict[str, float]:
        out: dict[str, float] = {}
        for c in self._calls:
            out[c.tool] = out.get(c.tool, 0.0) + c.cost
        return out

    def reset(self) -> None:
        self._calls = []
        self._total_cost = 0.0
