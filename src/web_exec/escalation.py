from __future__ import annotations

"""
escalation.py — машина состояний "исполняем на уровне, при необходимости поднимаемся".

Правила:
- состояния = упорядоченный список уровней (по умолчанию http -> browser-light -> browser-advanced);
- результат с escalation_needed и auto_escalate -> ровно на один уровень выше;
- исключение исполнителя -> тоже вверх, но только если error_policy говорит "escalate";
- вниз не спускаемся никогда, по кругу не ходим; число попыток <= len(tiers);
- на верхнем уровне escalation_needed уже ничего не меняет: отдаём результат как финальный;
- MissingCredentialsError летит наружу сразу (конфиг, а не среда).

Каждый переход пишется в history (время, url, откуда, куда, причина).
Подписчики: явные списки callback'ов, без event-emitter'а.
"""

import dataclasses
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence

from .diag import DiagMixin
from .errors import MissingCredentialsError, UnknownTierError
from .pool import run_bounded
from .results import ExecutionResult
from .retry import ErrorBucket, classify_error
from .tiers import TIER_ORDER, ExecutionTier, parse_tier

Executor = Callable[..., ExecutionResult]


@dataclass(frozen=True)
class EscalationEvent:
    url: str
    from_tier: ExecutionTier
    to_tier: ExecutionTier
    reason: str
    timestamp: float


@dataclass
class EscalationCallbacks:
    on_execution_start: list[Callable[[str, ExecutionTier], None]] = field(default_factory=list)
    on_escalation: list[Callable[[EscalationEvent], None]] = field(default_factory=list)


def _invoke(executor: Any, url: str, options: dict[str, Any]) -> ExecutionResult:
    if callable(executor):
        return executor(url, **options)
    for name in ("fetch", "execute"):
        fn = getattr(executor, name, None)
        if callable(fn):
            return fn(url, **options)
    raise TypeError(f"invalid executor: {executor!r}")


class EscalationHandler(DiagMixin):
    diag_tag = "ESCALATE"

    def __init__(
        self,
        *,
        tiers: Sequence["ExecutionTier | str"] = TIER_ORDER,
        auto_escalate: bool = True,
        escalation_delay: float = 1.0,
        error_policy: Callable[[str], ErrorBucket] = classify_error,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        max_history: Optional[int] = None,
        diag: bool = False,
    ) -> None:
        self.tiers: tuple[ExecutionTier, ...] = tuple(parse_tier(t) for t in tiers)
        if not self.tiers:
            raise ValueError("escalation handler needs at least one tier")
        if len(set(self.tiers)) != len(self.tiers):
            raise ValueError("tiers must be unique")
        self.auto_escalate = bool(auto_escalate)
        self.escalation_delay = float(escalation_delay)
        self.error_policy = error_policy
        self.callbacks = EscalationCallbacks()
        self._sleep = sleep
        self._clock = clock
        # max_history: долгоживущий процесс (монитор) держит только последние N событий
        self._history: deque[EscalationEvent] = deque(maxlen=max_history)
        self._history_lock = threading.Lock()
        self.diag = bool(diag)
        self.last_diag = None

    # --------- subscriptions ---------

    def on_execution_start(self, cb: Callable[[str, ExecutionTier], None]) -> None:
        self.callbacks.on_execution_start.append(cb)

    def on_escalation(self, cb: Callable[[EscalationEvent], None]) -> None:
        self.callbacks.on_escalation.append(cb)

    # --------- history ---------

    @property
    def history(self) -> list[EscalationEvent]:
        with self._history_lock:
            return list(self._history)

    def history_for(self, url: str) -> list[EscalationEvent]:
        return [e for e in self.history if e.url == url]

    def clear_history(self) -> None:
        with self._history_lock:
            self._history.clear()

    def _next(self, idx: int) -> Optional[int]:
        return idx + 1 if idx + 1 < len(self.tiers) else None

    def _record(self, url: str, src: ExecutionTier, dst: ExecutionTier, reason: str) -> EscalationEvent:
        ev = EscalationEvent(url=url, from_tier=src, to_tier=dst, reason=reason, timestamp=self._clock())
        with self._history_lock:
            self._history.append(ev)
        self._emit_diag({"from": src.value, "to": dst.value, "reason": reason, "url": url})
        for cb in self.callbacks.on_escalation:
            cb(ev)
        return ev

    # --------- core ---------

    def execute(
        self,
        url: str,
        executors: Mapping["ExecutionTier | str", Any],
        *,
        start_tier: "ExecutionTier | str | None" = None,
        **options: Any,
    ) -> ExecutionResult:
        table = {parse_tier(k): v for k, v in executors.items()}
        start = parse_tier(start_tier) if start_tier is not None else self.tiers[0]
        if start not in self.tiers:
            raise UnknownTierError(f"start tier {start} is not in {[t.value for t in self.tiers]}")
        idx = self.tiers.index(start)
        if table.get(start) is None:
            raise UnknownTierError(f"no executor registered for start tier {start}")

        escalation_count = 0
        last: Optional[ExecutionResult] = None

        # жёсткая граница: не больше попыток, чем уровней
        for _ in range(len(self.tiers)):
            tier = self.tiers[idx]
            executor = table.get(tier)
            if executor is None:
                # выше подниматься некуда: последний результат и есть финал
                break

            for cb in self.callbacks.on_execution_start:
                cb(url, tier)

            nxt = self._next(idx)
            # подниматься есть куда, только если у следующего уровня есть исполнитель
            can_climb = self.auto_escalate and nxt is not None and table.get(self.tiers[nxt]) is not None
            try:
                result = _invoke(executor, url, dict(options))
            except MissingCredentialsError:
                raise
            except Exception as e:
                msg = str(e) or type(e).__name__
                if can_climb and self.error_policy(msg) == "escalate":
                    self._record(url, tier, self.tiers[nxt], msg)
                    idx = nxt
                    escalation_count += 1
                    continue
                raise

            last = dataclasses.replace(result, execution_tier=tier, escalation_count=escalation_count)
            if result.escalation_needed and can_climb:
                self._record(url, tier, self.tiers[nxt], result.escalation_reason or "escalation needed")
                idx = nxt
                escalation_count += 1
                if self.escalation_delay > 0:
                    self._sleep(self.escalation_delay)
                continue
            return last

        if last is None:
            raise UnknownTierError(f"{url}: no tier produced a result")
        return last

    def execute_many(
        self,
        urls: Sequence[str],
        executors: Mapping["ExecutionTier | str", Any],
        *,
        concurrency: int = 5,
        **options: Any,
    ) -> list[ExecutionResult]:
        # у каждого url свой прогон и свой курсор; общая только history (под lock)
        return run_bounded(list(urls), lambda u: self.execute(u, executors, **options), concurrency=concurrency)
