from __future__ import annotations

"""
alerting.py — правила -> алерты -> каналы доставки.

process_event(event):
  для каждого правила: condition(event)? -> не в throttle-окне? -> Alert,
  доставка по каждому каналу отдельно, запись в history, обновление last_fired.

Throttle: правило, сработавшее меньше чем throttle_minutes назад, пропускается целиком
(ни очереди, ни доставки, ни записи в history). Окно правила None -> окно диспетчера.

Падение одного канала не мешает остальным: delivery_results[channel] = False.
"""

import itertools
import json
import sys
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence, TextIO

import requests

from .diag import DiagMixin

DEFAULT_THROTTLE_MINUTES = 5.0


@dataclass(frozen=True)
class AlertEvent:
    type: str  # health-check|environment-change|custom
    source: str
    timestamp: float
    data: Any = None


@dataclass
class AlertRule:
    name: str
    condition: Callable[[AlertEvent], bool]
    severity: str = "warning"  # info|warning|critical
    channels: tuple[str, ...] = ("console",)
    message: Optional[Callable[[AlertEvent], str]] = None
    throttle_minutes: Optional[float] = None


@dataclass
class Alert:
    id: str
    rule: str
    severity: str
    timestamp: float
    message: str
    channels: tuple[str, ...]
    event: AlertEvent
    delivery_results: dict[str, bool] = field(default_factory=dict)

    @property
    def delivered(self) -> bool:
        return any(self.delivery_results.values())

    def payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rule": self.rule,
            "severity": self.severity,
            "message": self.message,
            "source": self.event.source,
            "timestamp": self.timestamp,
        }


class AlertChannel(Protocol):
    def send(self, alert: Alert) -> None: ...


class ConsoleChannel:
    ICONS = {"info": "i", "warning": "!", "critical": "!!"}

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream

    def send(self, alert: Alert) -> None:
        out = self.stream or sys.stderr
        icon = self.ICONS.get(alert.severity, "?")
        ts = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(alert.timestamp))
        out.write(f"[{icon}] [{alert.severity.upper()}] {alert.rule}\n")
        out.write(f"    {alert.message}\n")
        out.write(f"    source={alert.event.source} time={ts}\n")


class WebhookChannel:
    """POST JSON payload; любой не-2xx считается провалом доставки."""

    def __init__(self, url: str, *, session: Optional[requests.Session] = None, timeout: float = 10.0, headers: Optional[dict[str, str]] = None) -> None:
        if not url:
            raise ValueError("webhook channel requires a url")
        self.url = url
        self.session = session or requests.Session()
        self.timeout = float(timeout)
        self.headers = {"Content-Type": "application/json", **(headers or {})}

    def send(self, alert: Alert) -> None:
        r = self.session.post(self.url, data=json.dumps(alert.payload(), ensure_ascii=False), headers=self.headers, timeout=self.timeout)
        r.raise_for_status()


def default_message(rule: AlertRule, event: AlertEvent) -> str:
    d = event.data
    if event.type == "health-check" and d is not None:
        return (
            f"Health check {d.status} for {d.url}. "
            f"Response time: {d.response_ms}ms. Issues: {len(d.issues)}"
        )
    if event.type == "environment-change" and d is not None:
        return f"{d.change_type} change detected on {d.url}: {d.description}"
    return f"Alert triggered: {rule.name}"


class AlertingDispatcher(DiagMixin):
    diag_tag = "ALERT"

    def __init__(
        self,
        *,
        rules: Optional[Sequence[AlertRule]] = None,
        channels: Optional[Mapping[str, AlertChannel]] = None,
        throttle_minutes: float = DEFAULT_THROTTLE_MINUTES,
        clock: Callable[[], float] = time.time,
        max_history: Optional[int] = None,
        diag: bool = False,
    ) -> None:
        self.rules: list[AlertRule] = list(rules or [])
        self.channels: dict[str, AlertChannel] = dict(channels) if channels is not None else {"console": ConsoleChannel()}
        self.throttle_minutes = float(throttle_minutes)
        self._clock = clock
        self._history: deque[Alert] = deque(maxlen=max_history)
        self._last_fired: dict[str, float] = {}
        self._ids = itertools.count(1)
        self.on_alert: list[Callable[[Alert], None]] = []
        self.on_delivery_error: list[Callable[[Alert, str, Exception], None]] = []
        self.diag = bool(diag)
        self.last_diag = None

    def add_rule(self, rule: AlertRule) -> None:
        self.rules.append(rule)

    def is_throttled(self, rule: AlertRule) -> bool:
        last = self._last_fired.get(rule.name)
        if last is None:
            return False
        minutes = self.throttle_minutes if rule.throttle_minutes is None else float(rule.throttle_minutes)
        return self._clock() - last < minutes * 60.0

    def _new_alert(self, rule_name: str, severity: str, message: str, channels: Sequence[str], event: AlertEvent) -> Alert:
        now = self._clock()
        return Alert(
            id=f"alert_{next(self._ids)}_{int(now * 1000)}",
            rule=rule_name,
            severity=severity,
            timestamp=now,
            message=message,
            channels=tuple(channels),
            event=event,
        )

    def _deliver(self, alert: Alert) -> None:
        for name in alert.channels:
            ch = self.channels.get(name)
            if ch is None:
                alert.delivery_results[name] = False
                self._emit_diag({"alert": alert.id, "channel": name, "error": "channel not configured"})
                continue
            try:
                ch.send(alert)
            except Exception as e:  # канал не должен ронять остальные
                alert.delivery_results[name] = False
                self._emit_diag({"alert": alert.id, "channel": name, "error": f"{type(e).__name__}: {e}"})
                for cb in self.on_delivery_error:
                    cb(alert, name, e)
            else:
                alert.delivery_results[name] = True

    def _publish(self, alert: Alert) -> Alert:
        self._deliver(alert)
        self._history.append(alert)
        for cb in self.on_alert:
            cb(alert)
        return alert

    def process_event(self, event: AlertEvent) -> list[Alert]:
        fired: list[Alert] = []
        for rule in self.rules:
            if not rule.condition(event):
                continue
            if self.is_throttled(rule):
                continue
            msg = rule.message(event) if rule.message else default_message(rule, event)
            fired.append(self._publish(self._new_alert(rule.name, rule.severity, msg, rule.channels, event)))
            self._last_fired[rule.name] = self._clock()
        return fired

    def send_alert(self, message: str, severity: str = "info", channels: Sequence[str] = ("console",)) -> Alert:
        event = AlertEvent(type="custom", source="manual", timestamp=self._clock(), data={"message": message})
        return self._publish(self._new_alert("custom", severity, message, channels, event))

    def history(self, limit: Optional[int] = None) -> list[Alert]:
        newest_first = list(reversed(self._history))
        return newest_first[:limit] if limit else newest_first

    def attach(self, monitor: Any) -> None:
        """Подписка на EnvironmentMonitor: health-check и environment-change -> process_event."""

        def _health(check: Any) -> None:
            self.process_event(AlertEvent("health-check", check.url, check.timestamp, check))

        def _change(change: Any) -> None:
            self.process_event(AlertEvent("environment-change", change.url, change.timestamp, change))

        monitor.on_health_check(_health)
        monitor.on_environment_change(_change)


# --------- default rules ---------


def _geo_mismatches(event: AlertEvent) -> list[str]:
    geo_results = getattr(event.data, "geo_results", None) or {}
    return [g for g, r in geo_results.items() if r.status == "mismatch"]


def default_alert_rules(channels: Sequence[str] = ("console",)) -> list[AlertRule]:
    chans = tuple(channels)
    return [
        AlertRule(
            name="Critical Health",
            condition=lambda e: e.type == "health-check" and e.data.status == "critical",
            severity="critical",
            channels=chans,
            message=lambda e: f"Critical health status for {e.data.url}. Issues: {'; '.join(i.message for i in e.data.issues)}",
        ),
        AlertRule(
            name="Structure Change",
            condition=lambda e: e.type == "environment-change" and e.data.change_type == "structure",
            severity="warning",
            channels=chans,
            message=lambda e: f"Structure change on {e.data.url}: {e.data.description}",
        ),
        AlertRule(
            name="Performance Degradation",
            condition=lambda e: e.type == "health-check" and e.data.response_ms > 10000,
            severity="warning",
            channels=("console",),
            message=lambda e: f"Slow response from {e.data.url}: {e.data.response_ms}ms",
            throttle_minutes=30,
        ),
        AlertRule(
            name="Geo Mismatch",
            condition=lambda e: e.type == "health-check" and bool(_geo_mismatches(e)),
            severity="warning",
            channels=("console",),
            message=lambda e: f"Geographic mismatch on {e.data.url} for regions: {', '.join(_geo_mismatches(e))}",
        ),
    ]
