from __future__ import annotations

"""
drift.py — сравнение текущей проверки с baseline по тому же target_id.

Правила (оба дают severity="warning", critical от дрейфа не бывает):
- structure: селектор был (count > 0 в baseline), а сейчас count == 0;
  изменение числа среди положительных значений дрейфом не считается;
- performance: response_ms текущей проверки строго больше 2 * baseline.

Первая проверка для target_id молча становится baseline (ноль записей).
Дальше baseline меняется только явным set_baseline(), сам детектор его не двигает.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Mapping, Optional

ChangeType = Literal["structure", "performance"]

PERFORMANCE_FACTOR = 2.0


@dataclass(frozen=True)
class Observation:
    """То, что детектору нужно от проверки: счётчики селекторов и время ответа."""

    selector_matches: Mapping[str, int] = field(default_factory=dict)
    response_ms: float = 0.0


@dataclass(frozen=True)
class ChangeRecord:
    url: str
    timestamp: float
    change_type: ChangeType
    description: str
    before: Any
    after: Any
    severity: str = "warning"

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "timestamp": self.timestamp,
            "change_type": self.change_type,
            "severity": self.severity,
            "description": self.description,
            "before": self.before,
            "after": self.after,
        }


def _as_observation(check: Any) -> Observation:
    if isinstance(check, Observation):
        return check
    if isinstance(check, Mapping):
        return Observation(
            selector_matches=dict(check.get("selector_matches") or {}),
            response_ms=float(check.get("response_ms") or 0.0),
        )
    # HealthCheck и всё, что похоже на него
    return Observation(
        selector_matches=dict(getattr(check, "selector_matches", None) or {}),
        response_ms=float(getattr(check, "response_ms", 0.0) or 0.0),
    )


class DriftDetector:
    def __init__(self, *, performance_factor: float = PERFORMANCE_FACTOR, clock: Callable[[], float] = time.time) -> None:
        self.performance_factor = float(performance_factor)
        self._clock = clock
        self._baselines: dict[str, Observation] = {}

    def get_baseline(self, target_id: str) -> Optional[Observation]:
        return self._baselines.get(target_id)

    def set_baseline(self, target_id: str, check: Any) -> Observation:
        obs = _as_observation(check)
        self._baselines[target_id] = obs
        return obs

    def clear_baseline(self, target_id: str) -> None:
        self._baselines.pop(target_id, None)

    @property
    def targets(self) -> list[str]:
        return list(self._baselines)

    def detect(self, target_id: str, check: Any) -> list[ChangeRecord]:
        current = _as_observation(check)
        baseline = self._baselines.get(target_id)
        if baseline is None:
            self._baselines[target_id] = current
            return []

        now = self._clock()
        changes: list[ChangeRecord] = []

        # только селекторы текущей проверки; пропавший из конфига селектор не дрейф
        for selector, count in current.selector_matches.items():
            before = int(baseline.selector_matches.get(selector, 0) or 0)
            if int(count) == 0 and before > 0:
                changes.append(
                    ChangeRecord(
                        url=target_id,
                        timestamp=now,
                        change_type="structure",
                        description=f'Selector "{selector}" no longer found',
                        before=before,
                        after=int(count),
                    )
                )

        if current.response_ms > baseline.response_ms * self.performance_factor:
            changes.append(
                ChangeRecord(
                    url=target_id,
                    timestamp=now,
                    change_type="performance",
                    description="Response time doubled",
                    before=baseline.response_ms,
                    after=current.response_ms,
                )
            )
        return changes

    observe = detect
