from __future__ import annotations

"""
monitor.py — периодические health-check'и целей + дрейф относительно baseline.

Цикл run_checks():
  для каждой цели: check_target -> история -> DriftDetector -> callbacks.

Проблемы одной проверки (issues):
- slow_response     warning  (> max_response_time_ms), critical (> 2 * max)
- missing_selector  warning
- geo_mismatch      warning  (только если geos > 1)
- error             critical (исключение фетчера или неуспешный результат)

Статус: есть critical -> critical, есть warning -> warning, иначе healthy.
Проверка с ошибкой (issue "error") baseline для дрейфа не задаёт.
Исключение внутри фонового цикла останавливает его; оно лежит в last_error.
Всё хранится в памяти процесса; писатель один, сам монитор.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional

from .config import MonitorConfig, MonitorTarget
from .diag import DiagMixin
from .drift import ChangeRecord, DriftDetector
from .errors import MissingCredentialsError
from .geo import GeoValidator
from .html_extract import count_selectors
from .results import ExecutionResult

Severity = Literal["info", "warning", "critical"]
HealthStatus = Literal["healthy", "warning", "critical"]

Fetcher = Callable[..., ExecutionResult]

DAY_SEC = 24 * 60 * 60


@dataclass(frozen=True)
class Issue:
    type: str  # slow_response|missing_selector|geo_mismatch|error
    severity: Severity
    message: str


@dataclass(frozen=True)
class GeoCheck:
    status: Literal["ok", "mismatch", "error"]
    response_ms: int = 0
    content_length: int = 0
    detected_geo: Optional[str] = None
    error: Optional[str] = None


@dataclass
class HealthCheck:
    url: str
    timestamp: float
    status: HealthStatus
    response_ms: int
    execution_tier: Optional[str] = None
    content_length: int = 0
    selector_matches: dict[str, int] = field(default_factory=dict)
    geo_results: Optional[dict[str, GeoCheck]] = None
    issues: list[Issue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "timestamp": self.timestamp,
            "status": self.status,
            "response_ms": self.response_ms,
            "execution_tier": self.execution_tier,
            "content_length": self.content_length,
            "selector_matches": dict(self.selector_matches),
            "geo_results": {g: vars(r) for g, r in (self.geo_results or {}).items()} or None,
            "issues": [vars(i) for i in self.issues],
        }


@dataclass
class MonitorCallbacks:
    on_health_check: list[Callable[[HealthCheck], None]] = field(default_factory=list)
    on_environment_change: list[Callable[[ChangeRecord], None]] = field(default_factory=list)
    on_baseline_set: list[Callable[[str, HealthCheck], None]] = field(default_factory=list)


def determine_status(issues: list[Issue]) -> HealthStatus:
    if any(i.severity == "critical" for i in issues):
        return "critical"
    if any(i.severity == "warning" for i in issues):
        return "warning"
    return "healthy"


class EnvironmentMonitor(DiagMixin):
    diag_tag = "MONITOR"

    def __init__(
        self,
        config: MonitorConfig,
        fetcher: Fetcher,
        *,
        drift: Optional[DriftDetector] = None,
        geo_validator: Optional[GeoValidator] = None,
        clock: Callable[[], float] = time.time,
        diag: bool = False,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self._clock = clock
        self.drift = drift or DriftDetector(clock=clock)
        self.geo_validator = geo_validator or GeoValidator()
        self.callbacks = MonitorCallbacks()
        self._history: dict[str, list[HealthCheck]] = {}
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_error: Optional[Exception] = None
        self.diag = bool(diag)
        self.last_diag = None

    # --------- subscriptions ---------

    def on_health_check(self, cb: Callable[[HealthCheck], None]) -> None:
        self.callbacks.on_health_check.append(cb)

    def on_environment_change(self, cb: Callable[[ChangeRecord], None]) -> None:
        self.callbacks.on_environment_change.append(cb)

    def on_baseline_set(self, cb: Callable[[str, HealthCheck], None]) -> None:
        self.callbacks.on_baseline_set.append(cb)

    # --------- single check ---------

    def _geo_consistency(self, target: MonitorTarget) -> dict[str, GeoCheck]:
        out: dict[str, GeoCheck] = {}
        for geo in self.config.geos:
            try:
                res = self.fetcher(target.url, geo=geo)
            except MissingCredentialsError:
                raise
            except Exception as e:
                out[geo] = GeoCheck(status="error", error=str(e) or type(e).__name__)
                continue
            v = self.geo_validator.validate(res.content, res.final_url or res.url, geo)
            out[geo] = GeoCheck(
                status="ok" if v.valid else "mismatch",
                response_ms=int(res.duration_ms),
                content_length=res.content_length,
                detected_geo=v.detected_geo,
            )
        return out

    def check_target(self, target: MonitorTarget) -> HealthCheck:
        t0 = self._clock()
        issues: list[Issue] = []
        selector_matches: dict[str, int] = {}

        try:
            result = self.fetcher(target.url)
        except MissingCredentialsError:
            raise
        except Exception as e:
            elapsed = int((self._clock() - t0) * 1000)
            return HealthCheck(
                url=target.url,
                timestamp=self._clock(),
                status="critical",
                response_ms=elapsed,
                issues=[Issue("error", "critical", str(e) or type(e).__name__)],
            )

        response_ms = int(result.duration_ms)
        if not result.success:
            issues.append(Issue("error", "critical", result.error or f"HTTP {result.status_code}"))

        max_ms = int(target.max_response_time_ms)
        if response_ms > max_ms:
            issues.append(
                Issue(
                    "slow_response",
                    "critical" if response_ms > max_ms * 2 else "warning",
                    f"Response time {response_ms}ms exceeds threshold {max_ms}ms",
                )
            )

        if target.selectors:
            selector_matches = count_selectors(result.content, target.selectors)
            for sel, n in selector_matches.items():
                if n == 0:
                    issues.append(Issue("missing_selector", "warning", f'Selector "{sel}" not found'))

        geo_results: Optional[dict[str, GeoCheck]] = None
        if len(self.config.geos) > 1:
            geo_results = self._geo_consistency(target)
            bad = [g for g, r in geo_results.items() if r.status == "mismatch"]
            if bad:
                issues.append(Issue("geo_mismatch", "warning", f"Geographic mismatch in: {', '.join(bad)}"))

        check = HealthCheck(
            url=target.url,
            timestamp=self._clock(),
            status=determine_status(issues),
            response_ms=response_ms,
            execution_tier=result.execution_tier.value,
            content_length=result.content_length,
            selector_matches=selector_matches,
            geo_results=geo_results,
            issues=issues,
        )
        self._emit_diag({"status": check.status, "ms": response_ms, "issues": len(issues), "url": target.url})
        return check

    # --------- cycle ---------

    def _add_to_history(self, url: str, check: HealthCheck) -> None:
        cutoff = self._clock() - float(self.config.retention_days) * DAY_SEC
        hist = self._history.get(url, [])
        hist.append(check)
        self._history[url] = [h for h in hist if h.timestamp > cutoff]

    def run_checks(self) -> list[HealthCheck]:
        results: list[HealthCheck] = []
        for target in self.config.targets:
            check = self.check_target(target)
            results.append(check)
            self._add_to_history(target.url, check)

            # упавшая проверка без baseline не становится baseline: дрейф ждёт первую живую
            if self.drift.get_baseline(target.url) is None and any(i.type == "error" for i in check.issues):
                changes: list[ChangeRecord] = []
            else:
                changes = self.drift.detect(target.url, check)
            for change in changes:
                for cb in self.callbacks.on_environment_change:
                    cb(change)
            for cb in self.callbacks.on_health_check:
                cb(check)
        return results

    # --------- queries ---------

    def history(self, url: str) -> list[HealthCheck]:
        return list(self._history.get(url, []))

    def get_status(self, url: str) -> Optional[HealthCheck]:
        hist = self._history.get(url)
        return hist[-1] if hist else None

    def get_stats(self, url: str) -> Optional[dict[str, Any]]:
        hist = self._history.get(url)
        if not hist:
            return None
        ok = sum(1 for h in hist if h.status != "critical")
        return {
            "total_checks": len(hist),
            "success_rate": ok / len(hist),
            "average_response_ms": sum(h.response_ms for h in hist) / len(hist),
            "last_check": hist[-1].timestamp,
        }

    def set_baseline(self, url: str) -> bool:
        """Явный re-baseline по последней проверке; False, если проверок ещё не было."""
        current = self.get_status(url)
        if current is None:
            return False
        self.drift.set_baseline(url, current)
        for cb in self.callbacks.on_baseline_set:
            cb(url, current)
        return True

    # --------- timer ---------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        # первый цикл сразу при start(), дальше раз в check_interval_sec
        while True:
            try:
                self.run_checks()
            except Exception as e:
                # поток умирает, но ошибка остаётся видна вызывающему (cli -> exit code)
                self.last_error = e
                self._emit_diag({"fatal": f"{type(e).__name__}: {e}"})
                return
            if self._stop.wait(float(self.config.check_interval_sec)):
                return

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self.last_error = None
        self._thread = threading.Thread(target=self._loop, name="web-exec-monitor", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
