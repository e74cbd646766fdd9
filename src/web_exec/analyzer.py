from __future__ import annotations

"""
analyzer.py — пред-анализ цели: хватит ли HTTP или сразу нужен браузер.

Эвристики заданы данными (PatternRule), без if-лестницы: их можно подменить в тестах
или конфиге. Веса эмпирические и ничего не калибруют: каждый сработавший набор просто
прибавляет свой фиксированный вес к confidence, сверху обрезаем до 1.0.
Перекрывающиеся сигналы при этом считаются дважды.

Решение по уровню:
- защита (антибот) -> browser-advanced
- нужен JS / динамика -> browser-light
- иначе -> http
Не смогли даже скачать -> browser-advanced с низкой уверенностью (fail-safe вверх).
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Mapping, Optional

import requests

from .block_detect import visible_text
from .tiers import ExecutionTier

SignalName = Literal["requires_script", "has_protection", "has_dynamic_content"]
Complexity = Literal["low", "medium", "high"]

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


@dataclass(frozen=True)
class PatternRule:
    signal: SignalName
    weight: float
    patterns: tuple[str, ...]


@dataclass(frozen=True)
class HeaderRule:
    signal: SignalName
    weight: float
    header_names: tuple[str, ...] = ()   # есть такой заголовок
    tokens: tuple[str, ...] = ()         # токен где угодно в "name: value"


BODY_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        signal="requires_script",
        weight=0.15,
        patterns=(
            "react", "vue", "angular", "svelte", "next.js", "nuxt",
            "__NEXT_DATA__", "__NUXT__", "ng-app", "data-reactroot",
        ),
    ),
    PatternRule(
        signal="has_protection",
        weight=0.2,
        patterns=(
            "cloudflare", "incapsula", "perimeterx", "datadome",
            "kasada", "akamai", "cf-browser-verification",
            "challenge-platform", "_cf_chl",
        ),
    ),
    PatternRule(
        signal="has_dynamic_content",
        weight=0.1,
        patterns=(
            "infinite-scroll", "load-more", "lazy-load",
            "data-src", "data-lazy", "intersection-observer",
        ),
    ),
)

HEADER_RULES: tuple[HeaderRule, ...] = (
    HeaderRule(signal="has_protection", weight=0.2, header_names=("cf-ray", "cf-cache-status")),
    HeaderRule(signal="has_protection", weight=0.3, tokens=("incapsula", "perimeterx", "datadome")),
)


@dataclass(frozen=True)
class SpaShellRule:
    max_body_chars: int = 5000
    max_text_chars: int = 500
    weight: float = 0.3


@dataclass
class EnvironmentSignal:
    requires_script: bool = False
    has_protection: bool = False
    has_dynamic_content: bool = False
    raw_score: float = 0.0
    hits: list[str] = field(default_factory=list)

    @property
    def confidence_score(self) -> float:
        return min(self.raw_score, 1.0)

    def hit(self, signal: SignalName, weight: float, why: str) -> None:
        setattr(self, signal, True)
        self.raw_score += float(weight)
        self.hits.append(why)


@dataclass
class Analysis:
    url: str
    signal: EnvironmentSignal
    complexity: Complexity
    recommended_tier: ExecutionTier
    confidence: float
    details: list[str]
    duration_ms: int = 0
    analyzed_at: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "complexity": self.complexity,
            "recommended_tier": self.recommended_tier.value,
            "confidence": self.confidence,
            "signals": {
                "requires_script": self.signal.requires_script,
                "has_protection": self.signal.has_protection,
                "has_dynamic_content": self.signal.has_dynamic_content,
            },
            "hits": list(self.signal.hits),
            "details": list(self.details),
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


def complexity_of(signal: EnvironmentSignal) -> Complexity:
    if signal.has_protection:
        return "high"
    if signal.requires_script or signal.has_dynamic_content:
        return "medium"
    return "low"


def recommend_tier(complexity: Complexity, signal: EnvironmentSignal) -> ExecutionTier:
    if complexity == "high":
        return ExecutionTier.BROWSER_ADVANCED
    if complexity == "medium":
        return ExecutionTier.BROWSER_ADVANCED if signal.has_protection else ExecutionTier.BROWSER_LIGHT
    return ExecutionTier.HTTP


def describe(signal: EnvironmentSignal) -> list[str]:
    details: list[str] = []
    if signal.requires_script:
        details.append("JavaScript rendering required")
    if signal.has_protection:
        details.append("Anti-bot protection detected")
    if signal.has_dynamic_content:
        details.append("Dynamic content loading detected")
    if not details:
        details.append("Simple static page detected")
    return details


class EnvironmentAnalyzer:
    FAILSAFE_CONFIDENCE = 0.3

    def __init__(
        self,
        *,
        body_rules: tuple[PatternRule, ...] = BODY_RULES,
        header_rules: tuple[HeaderRule, ...] = HEADER_RULES,
        spa_rule: SpaShellRule = SpaShellRule(),
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.body_rules = body_rules
        self.header_rules = header_rules
        self.spa_rule = spa_rule
        self.session = session or requests.Session()
        self.timeout = float(timeout)
        self.user_agent = user_agent
        self._clock = clock

    # --------- heuristics ---------

    def scan_headers(self, headers: Optional[Mapping[str, Any]], signal: EnvironmentSignal) -> None:
        lower = {str(k).lower(): str(v) for k, v in (headers or {}).items()}
        blob = " ".join(f"{k}: {v}" for k, v in lower.items()).lower()
        for rule in self.header_rules:
            hit = next((h for h in rule.header_names if h in lower), None)
            if hit is None:
                hit = next((t for t in rule.tokens if t in blob), None)
            if hit is not None:
                signal.hit(rule.signal, rule.weight, f"header:{hit}")

    def scan_body(self, html: str, signal: EnvironmentSignal) -> None:
        low = (html or "").lower()
        for rule in self.body_rules:
            # один набор = один вклад, даже если совпало несколько паттернов
            hit = next((p for p in rule.patterns if p.lower() in low), None)
            if hit is not None:
                signal.hit(rule.signal, rule.weight, f"body:{hit}")

        spa = self.spa_rule
        if len(html or "") < spa.max_body_chars and len(visible_text(html)) < spa.max_text_chars:
            signal.hit("requires_script", spa.weight, "spa_shell")

    def analyze_response(self, url: str, content: str, headers: Optional[Mapping[str, Any]] = None, *, duration_ms: int = 0) -> Analysis:
        signal = EnvironmentSignal()
        self.scan_headers(headers, signal)
        if isinstance(content, str):
            self.scan_body(content, signal)
        complexity = complexity_of(signal)
        return Analysis(
            url=url,
            signal=signal,
            complexity=complexity,
            recommended_tier=recommend_tier(complexity, signal),
            confidence=signal.confidence_score,
            details=describe(signal),
            duration_ms=int(duration_ms),
            analyzed_at=self._clock(),
        )

    def failsafe(self, url: str, error: str, *, duration_ms: int = 0) -> Analysis:
        return Analysis(
            url=url,
            signal=EnvironmentSignal(),
            complexity="high",
            recommended_tier=ExecutionTier.BROWSER_ADVANCED,
            confidence=self.FAILSAFE_CONFIDENCE,
            details=["Analysis failed - recommending browser execution for safety"],
            duration_ms=int(duration_ms),
            analyzed_at=self._clock(),
            error=error,
        )

    def analyze(self, url: str) -> Analysis:
        """Лёгкий GET без прокси; любой статус считается данными, а не ошибкой."""
        t0 = time.monotonic()
        try:
            resp = self.session.get(url, timeout=self.timeout, headers={"User-Agent": self.user_agent})
        except requests.RequestException as e:
            ms = int((time.monotonic() - t0) * 1000)
            return self.failsafe(url, f"{type(e).__name__}: {e}", duration_ms=ms)
        ms = int((time.monotonic() - t0) * 1000)
        return self.analyze_response(url, resp.text or "", resp.headers, duration_ms=ms)
