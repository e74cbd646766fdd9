from __future__ import annotations

"""research.py — многошаговые задачи поверх ToolClient.

Типы задач:
- competitive-research: поиск конкурентов -> обход сайтов -> цены по гео -> выводы
- price-monitoring:     urls x geos -> extracted_data
- content-aggregation:  поиск -> первые 5 страниц -> выдержки
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import requests

from .diag import DiagMixin
from .errors import ExecutionError, MissingCredentialsError
from .geo import GeoValidator
from .tiers import ExecutionTier
from .tool_client import ToolClient

ARTICLE_EXCERPT_CHARS = 500


class UnknownTaskError(ValueError):
    pass


@dataclass
class ResearchTask:
    type: str
    target: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class Phase:
    name: str
    success: bool
    duration_ms: int
    cost: float
    output: Any = None


@dataclass
class ResearchResult:
    success: bool
    task: ResearchTask
    phases: list[Phase]
    findings: dict[str, Any]
    total_cost: float
    total_duration_ms: int

    def to_dict(self) -> dict[str, Any]:
        # output фаз (SearchHit, ScrapeResult...) наружу не отдаём, только сводку
        return {
            "success": self.success,
            "type": self.task.type,
            "target": self.task.target,
            "phases": [
                {"name": p.name, "success": p.success, "duration_ms": p.duration_ms, "cost": p.cost}
                for p in self.phases
            ],
            "findings": self.findings,
            "total_cost": self.total_cost,
            "total_duration_ms": self.total_duration_ms,
        }


class ResearchAgent(DiagMixin):
    diag_tag = "TOOL"

    def __init__(self, client: ToolClient, *, clock: Callable[[], float] = time.time, diag: bool = False) -> None:
        self.client = client
        self._clock = clock
        self.geo_validator = GeoValidator()
        self.on_phase_complete: list[Callable[[Phase], None]] = []
        self.diag = bool(diag)
        self.last_diag = None

    def _phase(self, phases: list[Phase], name: str, t0: float, cost0: float, output: Any) -> Phase:
        p = Phase(
            name=name,
            success=True,
            duration_ms=int((self._clock() - t0) * 1000),
            cost=self.client.total_cost() - cost0,
            output=output,
        )
        phases.append(p)
        self._emit_diag({"phase": name, "ms": p.duration_ms, "cost": round(p.cost, 6)})
        for cb in self.on_phase_complete:
            cb(p)
        return p

    def _result(self, task: ResearchTask, phases: list[Phase], t0: float, findings: dict[str, Any]) -> ResearchResult:
        return ResearchResult(
            success=all(p.success for p in phases),
            task=task,
            phases=phases,
            findings=findings,
            total_cost=sum(p.cost for p in phases),
            total_duration_ms=int((self._clock() - t0) * 1000),
        )

    def execute_research(self, task: ResearchTask) -> ResearchResult:
        t0 = self._clock()
        phases: list[Phase] = []
        handlers = {
            "competitive-research": self._competitive_research,
            "price-monitoring": self._price_monitoring,
            "content-aggregation": self._content_aggregation,
        }
        try:
            handler = handlers.get(task.type)
            if handler is None:
                raise UnknownTaskError(f"Unknown task type: {task.type}")
            return handler(task, phases, t0)
        except MissingCredentialsError:
            raise
        except (ValueError, ExecutionError, requests.RequestException) as e:
            return ResearchResult(
                success=False,
                task=task,
                phases=phases,
                findings={"error": str(e)},
                total_cost=self.client.total_cost(),
                total_duration_ms=int((self._clock() - t0) * 1000),
            )

    # --------- flows ---------

    def _competitive_research(self, task: ResearchTask, phases: list[Phase], t0: float) -> ResearchResult:
        params = task.parameters
        geos = list(params.get("geos") or ["us"])
        limit = int(params.get("limit") or 5)

        c0 = self.client.total_cost()
        hits = self.client.web_search(f"{task.target} competitors alternatives", limit=limit)
        self._phase(phases, "search", t0, c0, hits)

        c0 = self.client.total_cost()
        competitors: list[dict[str, Any]] = []
        for hit in hits[:limit]:
            res = self.client.web_scrape(hit.url)
            competitors.append(
                {
                    "name": hit.title,
                    "url": hit.url,
                    "pricing_url": hit.url.rstrip("/") + "/pricing",
                    "complexity": hit.environment_hint,
                    "execution_tier": res.execution_tier.value,
                }
            )
        self._phase(phases, "discovery", t0, c0, competitors)

        c0 = self.client.total_cost()
        geo_data: dict[str, dict[str, Any]] = {}
        variance: dict[str, float] = {}
        for comp in competitors[:3]:
            by_geo = self.client.web_scrape_multi_geo(comp["pricing_url"], geos)
            geo_data[comp["name"]] = {g: r.extracted_data for g, r in by_geo.items()}
            cmp = self.geo_validator.compare_prices({g: r.content for g, r in by_geo.items()})
            if cmp is not None:
                variance[comp["name"]] = cmp.variance_percent
        self._phase(phases, "geographic", t0, c0, geo_data)

        findings = analyze_findings(competitors, variance)
        self._phase(phases, "analysis", t0, self.client.total_cost(), findings)
        return self._result(task, phases, t0, findings)

    def _price_monitoring(self, task: ResearchTask, phases: list[Phase], t0: float) -> ResearchResult:
        urls = list(task.parameters.get("urls") or [])
        geos = list(task.parameters.get("geos") or ["us"])

        c0 = self.client.total_cost()
        prices: dict[str, dict[str, Any]] = {}
        for url in urls:
            prices[url] = {g: self.client.web_scrape(url, geo=g).extracted_data for g in geos}
        self._phase(phases, "price-monitoring", t0, c0, prices)
        return self._result(task, phases, t0, {"prices": prices})

    def _content_aggregation(self, task: ResearchTask, phases: list[Phase], t0: float) -> ResearchResult:
        limit = int(task.parameters.get("limit") or 10)

        c0 = self.client.total_cost()
        hits = self.client.web_search(task.target, limit=limit)
        articles: list[dict[str, Any]] = []
        for hit in hits[:5]:
            res = self.client.web_scrape(hit.url)
            articles.append(
                {
                    "title": hit.title,
                    "url": hit.url,
                    "snippet": hit.snippet,
                    "content": res.content[:ARTICLE_EXCERPT_CHARS],
                }
            )
        self._phase(phases, "aggregation", t0, c0, articles)
        return self._result(task, phases, t0, {"articles": articles})


def analyze_findings(competitors: list[dict[str, Any]], price_variance: Optional[dict[str, float]] = None) -> dict[str, Any]:
    insights: list[str] = []
    advanced = sum(1 for c in competitors if c.get("execution_tier") == ExecutionTier.BROWSER_ADVANCED.value)
    if advanced > 2:
        insights.append("Multiple competitors use heavy anti-bot protection")
    else:
        insights.append("Most competitors have accessible pricing pages")

    variance = dict(price_variance or {})
    if any(v > 0 for v in variance.values()):
        insights.append("Consider regional pricing strategy to remain competitive")
    insights.append("Monitor pricing weekly to detect changes")

    return {
        "competitor_count": len(competitors),
        "geo_variance_detected": any(v > 0 for v in variance.values()),
        "price_variance_percent": variance,
        "insights": insights,
    }
