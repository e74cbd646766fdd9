from __future__ import annotations

"""
retry.py — retry внутри одного уровня исполнения.

Политика простая, по тексту ошибки:
- ошибка похожа на блок (403/forbidden/blocked/challenge) -> сразу эскалация,
  оставшиеся попытки на этом уровне не тратим;
- всё остальное считаем временным -> повтор с линейной паузой base * attempt,
  а когда бюджет кончился -> тоже эскалация.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional, Sequence

from .errors import MissingCredentialsError

ErrorBucket = Literal["retry", "escalate"]

BLOCKING_ERROR_MARKERS: tuple[str, ...] = ("403", "forbidden", "blocked", "challenge")


def classify_error(message: Any, markers: Sequence[str] = BLOCKING_ERROR_MARKERS) -> ErrorBucket:
    low = str(message or "").lower()
    if any(m in low for m in markers):
        return "escalate"
    return "retry"


@dataclass
class RetryPolicy:
    max_retries: int = 3          # попытки ПОСЛЕ первой
    base_delay: float = 1.0       # секунды; пауза = base_delay * attempt
    blocking_markers: tuple[str, ...] = BLOCKING_ERROR_MARKERS

    @property
    def max_attempts(self) -> int:
        return max(0, int(self.max_retries)) + 1

    def delay_for(self, attempt: int) -> float:
        return float(self.base_delay) * max(1, int(attempt))

    def classify(self, message: Any) -> ErrorBucket:
        return classify_error(message, self.blocking_markers)


def make_retry_policy_from_cfg(cfg: Optional[dict[str, Any]]) -> RetryPolicy:
    if not isinstance(cfg, dict):
        return RetryPolicy()
    base = cfg.get("base_delay")
    if base is None and cfg.get("retry_delay_ms") is not None:
        base = float(cfg.get("retry_delay_ms") or 0) / 1000.0
    markers = cfg.get("blocking_markers")
    return RetryPolicy(
        max_retries=int(cfg.get("max_retries", 3)),
        base_delay=float(1.0 if base is None else base),
        blocking_markers=tuple(str(x).lower() for x in markers) if isinstance(markers, list) and markers else BLOCKING_ERROR_MARKERS,
    )


@dataclass
class RetryOutcome:
    value: Any = None
    error: Optional[str] = None
    attempts: int = 0
    bucket: Optional[ErrorBucket] = None  # None = успех
    exhausted: bool = False

    @property
    def ok(self) -> bool:
        return self.bucket is None


def run_with_retry(
    fn: Callable[[int], Any],
    policy: RetryPolicy,
    *,
    is_failure: Callable[[Any], Optional[str]] = lambda _v: None,
    sleep: Callable[[float], None] = time.sleep,
) -> RetryOutcome:
    """
    fn(attempt) либо возвращает значение, либо кидает исключение.
    is_failure(value) -> текст ошибки, если значение тоже надо считать провалом.

    Возвращает RetryOutcome; bucket="escalate" при блоке или исчерпании бюджета.
    """
    last_err: Optional[str] = None
    last_value: Any = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            value = fn(attempt)
            err = is_failure(value)
        except MissingCredentialsError:
            raise
        except Exception as e:  # исполнитель отдаёт ошибку строкой, решаем по ней
            value = None
            err = str(e) or type(e).__name__
        if err is None:
            return RetryOutcome(value=value, attempts=attempt)

        last_err, last_value = err, value
        if policy.classify(err) == "escalate":
            return RetryOutcome(value=value, error=err, attempts=attempt, bucket="escalate")
        if attempt < policy.max_attempts:
            sleep(policy.delay_for(attempt))

    return RetryOutcome(value=last_value, error=last_err, attempts=policy.max_attempts, bucket="escalate", exhausted=True)
