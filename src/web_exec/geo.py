from __future__ import annotations

"""
geo.py — проверка, что контент реально пришёл "из той страны", которую заказывали.

Индикаторы и их веса:
- TLD домена финального URL   -> 0.9
- символ валюты в тексте       -> 0.7 (каждый найденный символ отдельно)
- <html lang="...">            -> 0.85

detected_geo = гео с максимальной суммой весов.
Результат валиден, если ничего не нашли, нашли ожидаемое или уверенность < 0.5.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from .html_extract import html_lang

CURRENCY_SYMBOLS: dict[str, tuple[str, ...]] = {
    "us": ("$", "US$"),
    "uk": ("£",),
    "de": ("€",),
    "fr": ("€",),
    "jp": ("¥", "円"),
}

LANGUAGE_HINTS: dict[str, tuple[str, ...]] = {
    "us": ("en-us", "english"),
    "uk": ("en-gb", "english"),
    "de": ("de-de", "deutsch"),
    "fr": ("fr-fr", "français"),
    "jp": ("ja-jp", "日本語"),
}

TLD_GEOS: tuple[tuple[str, str], ...] = (
    (".co.uk", "uk"),
    (".de", "de"),
    (".fr", "fr"),
    (".jp", "jp"),
    (".ca", "ca"),
    (".com.au", "au"),
)

_PRICE_RE = re.compile(r"[\$£€¥]\s*([\d,]+\.?\d*)")


@dataclass(frozen=True)
class GeoIndicator:
    type: str  # domain|currency|language
    value: str
    suggested_geo: str
    confidence: float


@dataclass
class GeoValidation:
    valid: bool
    expected_geo: str
    detected_geo: Optional[str]
    confidence: float
    indicators: list[GeoIndicator] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class PriceComparison:
    lowest_geo: str
    highest_geo: str
    variance_percent: float
    prices: dict[str, float]


class GeoValidator:
    def __init__(
        self,
        *,
        currency_symbols: Optional[dict[str, tuple[str, ...]]] = None,
        language_hints: Optional[dict[str, tuple[str, ...]]] = None,
    ) -> None:
        self.currency_symbols = currency_symbols or CURRENCY_SYMBOLS
        self.language_hints = language_hints or LANGUAGE_HINTS

    def from_domain(self, url: Optional[str]) -> Optional[GeoIndicator]:
        host = (urlparse(url or "").hostname or "").lower()
        for tld, geo in TLD_GEOS:
            if host.endswith(tld):
                return GeoIndicator("domain", tld, geo, 0.9)
        return None

    def from_currency(self, html: str) -> list[GeoIndicator]:
        out: list[GeoIndicator] = []
        for geo, symbols in self.currency_symbols.items():
            for sym in symbols:
                if sym in (html or ""):
                    out.append(GeoIndicator("currency", sym, geo, 0.7))
        return out

    def from_language(self, html: str) -> Optional[GeoIndicator]:
        lang = html_lang(html or "")
        if not lang:
            return None
        for geo, hints in self.language_hints.items():
            if any(h in lang for h in hints):
                return GeoIndicator("language", lang, geo, 0.85)
        return None

    @staticmethod
    def determine_geo(indicators: list[GeoIndicator]) -> Optional[str]:
        scores: dict[str, float] = {}
        for ind in indicators:
            scores[ind.suggested_geo] = scores.get(ind.suggested_geo, 0.0) + ind.confidence
        best: Optional[str] = None
        best_score = 0.0
        for geo, score in scores.items():
            if score > best_score:
                best, best_score = geo, score
        return best

    @staticmethod
    def confidence_for(indicators: list[GeoIndicator], expected_geo: str) -> float:
        matching = [i for i in indicators if i.suggested_geo == expected_geo.lower()]
        if not matching:
            return 0.0
        avg = sum(i.confidence for i in matching) / len(matching)
        return min(avg + (len(matching) / 3.0) * 0.2, 1.0)

    def validate(self, html: str, final_url: Optional[str], expected_geo: str) -> GeoValidation:
        indicators: list[GeoIndicator] = []
        dom = self.from_domain(final_url)
        if dom is not None:
            indicators.append(dom)
        indicators.extend(self.from_currency(html))
        lang = self.from_language(html)
        if lang is not None:
            indicators.append(lang)

        expected = (expected_geo or "").lower()
        detected = self.determine_geo(indicators)
        confidence = self.confidence_for(indicators, expected)
        valid = detected is None or detected == expected or confidence < 0.5

        warnings: list[str] = []
        if not valid:
            warnings.append(f"Expected {expected_geo} but detected {detected}")
        return GeoValidation(valid, expected_geo, detected, confidence, indicators, warnings)

    @staticmethod
    def compare_prices(contents: Mapping[str, str]) -> Optional[PriceComparison]:
        prices: dict[str, float] = {}
        for geo, html in contents.items():
            m = _PRICE_RE.search(html or "")
            if m:
                prices[geo] = float(m.group(1).replace(",", ""))
        if len(prices) < 2:
            return None
        lo = min(prices.values())
        hi = max(prices.values())
        lowest = next(g for g, p in prices.items() if p == lo)
        highest = next(g for g, p in prices.items() if p == hi)
        variance = ((hi - lo) / lo * 100.0) if lo else 0.0
        return PriceComparison(lowest, highest, variance, prices)

    def compare_multi_geo(self, results: Mapping[str, Any]) -> dict[str, Any]:
        """results: geo -> ExecutionResult (или что угодно с .content/.final_url)."""
        validations: dict[str, GeoValidation] = {}
        recommendations: list[str] = []
        for geo, res in results.items():
            v = self.validate(getattr(res, "content", "") or "", getattr(res, "final_url", None), geo)
            validations[geo] = v
            if not v.valid:
                recommendations.append(f"{geo.upper()}: Geo mismatch detected. Verify proxy configuration.")
        return {
            "consistent": all(v.valid for v in validations.values()),
            "validations": validations,
            "price_comparison": self.compare_prices({g: getattr(r, "content", "") or "" for g, r in results.items()}),
            "recommendations": recommendations,
        }
