from __future__ import annotations

import pytest
import requests

from web_exec.errors import ExecutionError, MissingCredentialsError, UnknownTierError
from web_exec.escalation import EscalationHandler
from web_exec.http_engine import HttpEngine
from web_exec.config import ProviderCredentials
from web_exec.results import ExecutionResult
from web_exec.tiers import TIER_ORDER, ExecutionTier, tier_rank

HTTP, LIGHT, ADV = TIER_ORDER


def _result(url, tier, *, escalate=False, reason=None, content="<html>ok</html>", success=True):
    return ExecutionResult(
        url=url,
        success=success,
        status_code=200 if success else 0,
        execution_tier=tier,
        content=content,
        escalation_needed=escalate,
        escalation_reason=reason,
    )


class Recorder:
    """Executor, который помнит вызовы и отдаёт заготовленный результат."""

    def __init__(self, tier, **result_kw):
        self.tier = tier
        self.result_kw = result_kw
        self.calls = []

    def __call__(self, url, **options):
        self.calls.append((url, options))
        return _result(url, self.tier, **self.result_kw)


def _handler(**kw):
    sleeps = []
    h = EscalationHandler(sleep=sleeps.append, clock=lambda: 1000.0, **kw)
    return h, sleeps


def test_clean_first_tier_returns_immediately():
    h, sleeps = _handler()
    http = Recorder(HTTP)
    light = Recorder(LIGHT)
    res = h.execute("https://a.test/", {HTTP: http, LIGHT: light})
    assert res.execution_tier == HTTP
    assert res.escalation_count == 0
    assert light.calls == []
    assert h.history == []
    assert sleeps == []


def test_javascript_page_escalates_once_to_browser_light():
    """HTTP отдаёт 'Please enable JavaScript' -> один шаг вверх -> чистый результат."""
    html = "<html><body><noscript>Please enable JavaScript</noscript></body></html>"
    page = requests.Response()
    page.status_code = 200
    page._content = html.encode("utf-8")
    page.encoding = "utf-8"
    page.url = "https://spa.test/"

    class _Session:
        def request(self, **kw):
            return page

    http = HttpEngine(credentials=ProviderCredentials(), session=_Session(), sleep=lambda s: None)
    light = Recorder(LIGHT)
    h, sleeps = _handler(escalation_delay=0.5)

    res = h.execute("https://spa.test/", {HTTP: http, LIGHT: light, ADV: Recorder(ADV)})

    assert res.execution_tier == LIGHT
    assert res.escalation_count == 1
    assert len(light.calls) == 1
    [ev] = h.history
    assert (ev.from_tier, ev.to_tier) == (HTTP, LIGHT)
    assert "JavaScript" in ev.reason
    assert ev.timestamp == 1000.0
    assert sleeps == [0.5]


def test_perpetual_escalation_stops_at_top_tier():
    execs = {t: Recorder(t, escalate=True, reason="still blocked") for t in TIER_ORDER}
    h, _ = _handler()
    res = h.execute("https://hard.test/", execs)

    assert res.execution_tier == ADV
    assert res.escalation_needed  # финальный результат отдаём как есть
    assert res.escalation_count == len(TIER_ORDER) - 1
    assert sum(len(r.calls) for r in execs.values()) == len(TIER_ORDER)


def test_history_never_goes_down():
    execs = {t: Recorder(t, escalate=True, reason="x") for t in TIER_ORDER}
    h, _ = _handler()
    h.execute("https://hard.test/", execs)
    ranks = [tier_rank(e.from_tier) for e in h.history] + [tier_rank(h.history[-1].to_tier)]
    assert ranks == sorted(ranks)
    assert all(tier_rank(e.to_tier) == tier_rank(e.from_tier) + 1 for e in h.history)


def test_start_tier_skips_lower_tiers():
    http = Recorder(HTTP)
    light = Recorder(LIGHT)
    h, _ = _handler()
    res = h.execute("https://a.test/", {HTTP: http, LIGHT: light}, start_tier="browser-light")
    assert res.execution_tier == LIGHT
    assert http.calls == []


def test_auto_escalate_off_returns_first_result():
    h, _ = _handler(auto_escalate=False)
    res = h.execute("https://a.test/", {HTTP: Recorder(HTTP, escalate=True, reason="JavaScript required"), LIGHT: Recorder(LIGHT)})
    assert res.execution_tier == HTTP
    assert res.escalation_needed
    assert h.history == []


def test_blocking_exception_escalates_by_policy():
    def http(url, **kw):
        raise ExecutionError("403 Forbidden from origin")

    h, _ = _handler()
    res = h.execute("https://a.test/", {HTTP: http, LIGHT: Recorder(LIGHT)})
    assert res.execution_tier == LIGHT
    assert res.escalation_count == 1
    assert h.history[0].reason == "403 Forbidden from origin"


def test_non_blocking_exception_propagates():
    def http(url, **kw):
        raise ExecutionError("connection reset")

    h, _ = _handler()
    with pytest.raises(ExecutionError):
        h.execute("https://a.test/", {HTTP: http, LIGHT: Recorder(LIGHT)})


def test_missing_credentials_are_not_escalated():
    light = Recorder(LIGHT)

    def http(url, **kw):
        raise MissingCredentialsError("http execution", ("BRIGHTDATA_PASSWORD",))

    h, _ = _handler()
    with pytest.raises(MissingCredentialsError):
        h.execute("https://a.test/", {HTTP: http, LIGHT: light})
    assert light.calls == []
    assert h.history == []


def test_missing_next_executor_ends_the_run():
    h, _ = _handler()
    res = h.execute("https://a.test/", {HTTP: Recorder(HTTP, escalate=True, reason="Minimal content - likely SPA")})
    assert res.execution_tier == HTTP
    assert res.escalation_needed
    assert h.history == []


def test_blocking_exception_without_next_executor_keeps_original_error():
    def http(url, **kw):
        raise ExecutionError("403 Forbidden from origin")

    h, _ = _handler()
    with pytest.raises(ExecutionError, match="403 Forbidden"):
        h.execute("https://a.test/", {HTTP: http})
    assert h.history == []


def test_unknown_start_tier():
    h, _ = _handler(tiers=[HTTP, LIGHT])
    with pytest.raises(UnknownTierError):
        h.execute("https://a.test/", {HTTP: Recorder(HTTP)}, start_tier=ADV)
    with pytest.raises(UnknownTierError):
        h.execute("https://a.test/", {LIGHT: Recorder(LIGHT)})


def test_options_and_executor_objects():
    class Engine:
        def __init__(self):
            self.seen = None

        def fetch(self, url, **options):
            self.seen = options
            return _result(url, HTTP)

    eng = Engine()
    h, _ = _handler()
    h.execute("https://a.test/", {"http": eng}, geo="de", selectors=[".price"])
    assert eng.seen == {"geo": "de", "selectors": [".price"]}


def test_callbacks_are_called_in_order():
    seen = []
    h, _ = _handler()
    h.on_execution_start(lambda url, tier: seen.append(("start", tier)))
    h.on_escalation(lambda ev: seen.append(("esc", ev.from_tier, ev.to_tier)))
    h.execute("https://a.test/", {HTTP: Recorder(HTTP, escalate=True, reason="x"), LIGHT: Recorder(LIGHT)})
    assert seen == [("start", HTTP), ("esc", HTTP, LIGHT), ("start", LIGHT)]


def test_independent_runs_for_many_targets():
    execs = {
        HTTP: lambda url, **kw: _result(url, HTTP, escalate="spa" in url, reason="Minimal content - likely SPA"),
        LIGHT: Recorder(LIGHT),
    }
    urls = ["https://spa-1.test/", "https://static-1.test/", "https://spa-2.test/", "https://static-2.test/"]
    h, _ = _handler()
    results = {r.url: r for r in h.execute_many(urls, execs, concurrency=2)}

    assert results["https://spa-1.test/"].execution_tier == LIGHT
    assert results["https://static-1.test/"].execution_tier == HTTP
    assert results["https://spa-2.test/"].escalation_count == 1
    assert results["https://static-2.test/"].escalation_count == 0
    assert sorted(e.url for e in h.history) == ["https://spa-1.test/", "https://spa-2.test/"]
    assert h.history_for("https://spa-1.test/")[0].to_tier == LIGHT


def test_tiers_must_be_unique():
    with pytest.raises(ValueError):
        EscalationHandler(tiers=[HTTP, HTTP])
    assert ExecutionTier("browser-advanced") is ADV


def test_bounded_history_keeps_latest_events():
    h, _ = _handler(max_history=2)
    executors = {HTTP: Recorder(HTTP, escalate=True, reason="SPA"), LIGHT: Recorder(LIGHT)}
    for i in range(3):
        h.execute(f"https://t{i}.test/", executors)
    assert [e.url for e in h.history] == ["https://t1.test/", "https://t2.test/"]
    h.clear_history()
    assert h.history == []
