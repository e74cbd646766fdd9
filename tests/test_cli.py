from __future__ import annotations

import json

import pytest

from web_exec import cli
from web_exec.dynamic import DynamicPlan
from web_exec.errors import MissingCredentialsError
from web_exec.results import ExecutionResult
from web_exec.tiers import ExecutionTier
from web_exec.tool_client import ToolClient

PAGE = "<html><body><div class='price'>$29.99</div>" + ("<p>plan details</p>" * 80) + "</body></html>"


def _result(url, tier, *, success=True, status=200, content=PAGE):
    return ExecutionResult(
        url=url,
        success=success,
        status_code=status,
        execution_tier=tier,
        content=content,
        duration_ms=42,
        final_url=url,
        error=None if success else f"http_{status}",
    )


def _patch_executors(monkeypatch, http):
    calls = []

    def build(args, creds, costs):
        def wrapped(url, **kw):
            calls.append((url, kw))
            return http(url, **kw)

        return {ExecutionTier.HTTP: wrapped}

    monkeypatch.setattr(cli, "_build_executors", build)
    return calls


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_parser_fetch_options():
    args = cli.build_parser().parse_args(
        ["--pretty", "fetch", "https://a.test/", "--geo", "uk", "--selector", ".price", "--selector", "h1", "--no-escalate"]
    )
    assert args.pretty and args.no_escalate
    assert args.geo == "uk"
    assert args.selector == [".price", "h1"]
    assert args.start_tier is None


def test_analyze_prints_json(monkeypatch, capsys):
    class _Analysis:
        def to_dict(self):
            return {"url": "https://a.test/", "recommended_tier": "http"}

    class _Analyzer:
        def analyze(self, url):
            return _Analysis()

    monkeypatch.setattr(cli, "EnvironmentAnalyzer", _Analyzer)
    assert cli.main(["analyze", "https://a.test/"]) == 0
    assert json.loads(capsys.readouterr().out)["recommended_tier"] == "http"


def test_fetch_success(monkeypatch, capsys):
    calls = _patch_executors(monkeypatch, lambda url, **kw: _result(url, ExecutionTier.HTTP))
    rc = cli.main(["fetch", "https://a.test/", "--geo", "de", "--selector", ".price"])
    out = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert out["execution_tier"] == "http"
    assert out["escalations"] == []
    assert "content" not in out
    assert calls == [("https://a.test/", {"geo": "de", "selectors": [".price"]})]


def test_fetch_failure_exit_code(monkeypatch, capsys):
    _patch_executors(monkeypatch, lambda url, **kw: _result(url, ExecutionTier.HTTP, success=False, status=502))
    assert cli.main(["fetch", "https://a.test/", "--no-escalate", "--with-content"]) == 1
    out = json.loads(capsys.readouterr().out)
    assert out["error"] == "http_502"
    assert out["content"] == PAGE


def test_missing_credentials_is_exit_2(monkeypatch, capsys):
    def boom(url, **kw):
        raise MissingCredentialsError("proxy fetch", ("BRIGHTDATA_CUSTOMER_ID",))

    _patch_executors(monkeypatch, boom)
    assert cli.main(["fetch", "https://a.test/"]) == 2
    assert "BRIGHTDATA_CUSTOMER_ID" in capsys.readouterr().err


def test_unknown_start_tier_rejected_by_parser():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["fetch", "https://a.test/", "--start-tier", "quantum"])


def test_monitor_once(monkeypatch, tmp_path, capsys):
    _patch_executors(monkeypatch, lambda url, **kw: _result(url, ExecutionTier.HTTP))
    cfg = tmp_path / "monitor.json"
    cfg.write_text(
        json.dumps({"targets": [{"url": "https://a.test/pricing", "selectors": [".price", ".missing"]}]}),
        encoding="utf-8",
    )
    rc = cli.main(["monitor", str(cfg), "--once"])
    captured = capsys.readouterr()
    checks = json.loads(captured.out)
    assert rc == 0
    assert checks[0]["status"] == "warning"
    assert checks[0]["selector_matches"] == {".price": 1, ".missing": 0}


def test_monitor_without_targets(tmp_path, capsys):
    cfg = tmp_path / "monitor.json"
    cfg.write_text(json.dumps({"targets": []}), encoding="utf-8")
    assert cli.main(["monitor", str(cfg), "--once"]) == 2
    assert "no targets" in capsys.readouterr().err


def test_fetch_passes_dynamic_plan_to_executors(monkeypatch, capsys):
    calls = _patch_executors(monkeypatch, lambda url, **kw: _result(url, ExecutionTier.HTTP))
    rc = cli.main(["fetch", "https://a.test/", "--dynamic", "load-more", "--items", ".card", "--control", "button.more"])
    capsys.readouterr()
    assert rc == 0
    plan = calls[0][1]["dynamic"]
    assert isinstance(plan, DynamicPlan)
    assert (plan.mode, plan.item_selector, plan.control_selector) == ("load-more", ".card", "button.more")


def test_fetch_rejects_incomplete_dynamic_plan(monkeypatch, capsys):
    _patch_executors(monkeypatch, lambda url, **kw: _result(url, ExecutionTier.HTTP))
    assert cli.main(["fetch", "https://a.test/", "--dynamic", "pagination", "--items", ".card"]) == 2
    assert "control_selector" in capsys.readouterr().err


def test_monitor_loop_reports_missing_credentials(monkeypatch, tmp_path, capsys):
    def boom(url, **kw):
        raise MissingCredentialsError("browser-light execution", ("BRIGHTDATA_PASSWORD",))

    _patch_executors(monkeypatch, boom)
    monkeypatch.setattr(cli.time, "sleep", lambda s: None)
    cfg = tmp_path / "monitor.json"
    cfg.write_text(json.dumps({"targets": [{"url": "https://a.test/"}]}), encoding="utf-8")

    assert cli.main(["monitor", str(cfg)]) == 2
    assert "BRIGHTDATA_PASSWORD" in capsys.readouterr().err


def test_research_command(monkeypatch, capsys):
    class _Transport:
        def __call__(self, tool, payload):
            if tool == "web_search":
                return {"results": [{"title": "Post", "url": "https://blog.test/a", "snippet": "s"}]}
            return {"success": True, "content": "<html>article</html>"}

    monkeypatch.setattr(cli, "ToolClient", lambda **kw: ToolClient(transport=_Transport()))
    rc = cli.main(["research", "content-aggregation", "web scraping", "--limit", "3"])
    out = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert out["success"] is True
    assert out["phases"][0]["name"] == "aggregation"
    assert out["findings"]["articles"][0]["url"] == "https://blog.test/a"
    assert out["cost_breakdown"]["web_search"] == pytest.approx(0.005)
