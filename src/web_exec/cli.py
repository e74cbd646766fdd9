from __future__ import annotations

"""
cli.py — тонкий пульт поверх библиотеки (console script: web-exec).

Команды:
- analyze : pre-flight анализ URL -> рекомендованный уровень
- fetch   : исполнение с эскалацией http -> browser-light -> browser-advanced
- monitor : health-check целей из monitor.json (+ алерты в консоль)
- research: многошаговая задача через AI-инструменты (ResearchAgent)

Креды берутся только из ENV (см. config.py). Вывод: JSON в stdout, диагностика в stderr.
"""

import argparse
import json
import sys
import time
from typing import Any, Optional

from .alerting import AlertingDispatcher, default_alert_rules
from .analyzer import EnvironmentAnalyzer
from .browser_engine import BrowserConfig, BrowserEngine
from .config import ProviderCredentials, load_monitor_config
from .cost import CostTracker
from .dynamic import DYNAMIC_MODES, DynamicPlan
from .errors import MissingCredentialsError, UnknownTierError
from .escalation import EscalationHandler
from .http_engine import HttpEngine
from .monitor import EnvironmentMonitor
from .research import ResearchAgent, ResearchTask
from .tiers import ExecutionTier
from .tool_client import ToolClient

# долгий монитор держит только последние N событий эскалации/алертов/записей стоимости
MONITOR_HISTORY_LIMIT = 1000


class CliError(RuntimeError):
    def __init__(self, msg: str, exit_code: int = 2) -> None:
        super().__init__(msg)
        self.exit_code = int(exit_code)


def _pretty(obj: Any, pretty: bool) -> str:
    return json.dumps(obj, ensure_ascii=False, indent=(2 if pretty else None))


def _build_executors(args: argparse.Namespace, creds: ProviderCredentials, costs: CostTracker) -> dict[ExecutionTier, Any]:
    diag = bool(args.diag)
    return {
        ExecutionTier.HTTP: HttpEngine(credentials=creds, cost_tracker=costs, diag=diag),
        ExecutionTier.BROWSER_LIGHT: BrowserEngine(config=BrowserConfig(level="light"), credentials=creds, cost_tracker=costs, diag=diag),
        ExecutionTier.BROWSER_ADVANCED: BrowserEngine(config=BrowserConfig(level="advanced"), credentials=creds, cost_tracker=costs, diag=diag),
    }


def cmd_analyze(args: argparse.Namespace) -> int:
    a = EnvironmentAnalyzer().analyze(args.url)
    print(_pretty(a.to_dict(), args.pretty))
    return 0


def _dynamic_plan(args: argparse.Namespace) -> Optional[DynamicPlan]:
    if not args.dynamic:
        return None
    try:
        return DynamicPlan(args.dynamic, args.items or "", args.control, args.dynamic_limit)
    except ValueError as e:
        raise CliError(str(e)) from e


def cmd_fetch(args: argparse.Namespace) -> int:
    creds = ProviderCredentials.from_env()
    costs = CostTracker()
    handler = EscalationHandler(auto_escalate=not args.no_escalate, diag=bool(args.diag))
    options: dict[str, Any] = {"geo": args.geo, "selectors": args.selector or None}
    plan = _dynamic_plan(args)
    if plan is not None:
        # HTTP-уровень план игнорирует, догрузка только в браузере
        options["dynamic"] = plan
    res = handler.execute(
        args.url,
        _build_executors(args, creds, costs),
        start_tier=args.start_tier,
        **options,
    )
    out = res.to_dict(with_content=bool(args.with_content))
    out["escalations"] = [
        {"from": e.from_tier.value, "to": e.to_tier.value, "reason": e.reason} for e in handler.history
    ]
    out["cost_summary"] = costs.summary()
    print(_pretty(out, args.pretty))
    return 0 if res.success else 1


def cmd_monitor(args: argparse.Namespace) -> int:
    cfg = load_monitor_config(args.config)
    if not cfg.targets:
        raise CliError(f"{args.config}: no targets")
    creds = ProviderCredentials.from_env()
    executors = _build_executors(args, creds, CostTracker(max_records=MONITOR_HISTORY_LIMIT))
    handler = EscalationHandler(max_history=MONITOR_HISTORY_LIMIT, diag=bool(args.diag))

    def fetcher(url: str, geo: Optional[str] = None) -> Any:
        return handler.execute(url, executors, geo=geo)

    monitor = EnvironmentMonitor(cfg, fetcher, diag=bool(args.diag))
    alerts = AlertingDispatcher(rules=default_alert_rules(), max_history=MONITOR_HISTORY_LIMIT)
    alerts.attach(monitor)

    if args.once:
        checks = monitor.run_checks()
        print(_pretty([c.to_dict() for c in checks], args.pretty))
        return 0 if all(c.status != "critical" for c in checks) else 1

    monitor.start()
    try:
        while monitor.running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        monitor.stop(timeout=5.0)

    err = monitor.last_error
    if isinstance(err, MissingCredentialsError):
        raise err
    if err is not None:
        raise CliError(f"monitor stopped: {type(err).__name__}: {err}", exit_code=1) from err
    return 0


def cmd_research(args: argparse.Namespace) -> int:
    client = ToolClient(credentials=ProviderCredentials.from_env(), diag=bool(args.diag))
    params: dict[str, Any] = {}
    if args.geo:
        params["geos"] = list(args.geo)
    if args.url:
        params["urls"] = list(args.url)
    if args.limit:
        params["limit"] = int(args.limit)
    agent = ResearchAgent(client, diag=bool(args.diag))
    res = agent.execute_research(ResearchTask(args.type, args.target or "", params))
    out = res.to_dict()
    out["cost_breakdown"] = client.cost_breakdown()
    print(_pretty(out, args.pretty))
    return 0 if res.success else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="web-exec")
    p.add_argument("--pretty", action="store_true", help="pretty JSON output")
    p.add_argument("--diag", action="store_true", help="print short diagnostics to stderr")

    sub = p.add_subparsers(dest="cmd", required=True)

    a = sub.add_parser("analyze", help="pre-flight environment analysis")
    a.add_argument("url")
    a.set_defaults(fn=cmd_analyze)

    f = sub.add_parser("fetch", help="execute with tier escalation")
    f.add_argument("url")
    f.add_argument("--geo", default=None, help="two-letter country code (us, uk, de, ...)")
    f.add_argument("--start-tier", default=None, choices=[t.value for t in ExecutionTier])
    f.add_argument("--selector", action="append", default=[], help="CSS selector to extract (repeatable)")
    f.add_argument("--no-escalate", action="store_true", help="stay on the start tier")
    f.add_argument("--with-content", action="store_true", help="include content in output")
    f.add_argument("--dynamic", default=None, choices=list(DYNAMIC_MODES), help="load more items on browser tiers")
    f.add_argument("--items", default=None, help="item selector for --dynamic")
    f.add_argument("--control", default=None, help="next / load-more button selector")
    f.add_argument("--dynamic-limit", type=int, default=None, help="max items / pages / clicks")
    f.set_defaults(fn=cmd_fetch)

    m = sub.add_parser("monitor", help="health checks from monitor.json")
    m.add_argument("config")
    m.add_argument("--once", action="store_true", help="one check cycle, then exit")
    m.set_defaults(fn=cmd_monitor)

    r = sub.add_parser("research", help="multi-step research through AI tools")
    r.add_argument("type", choices=["competitive-research", "price-monitoring", "content-aggregation"])
    r.add_argument("target", nargs="?", default="")
    r.add_argument("--geo", action="append", default=[], help="geo for price checks (repeatable)")
    r.add_argument("--url", action="append", default=[], help="url for price-monitoring (repeatable)")
    r.add_argument("--limit", type=int, default=None)
    r.set_defaults(fn=cmd_research)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    try:
        return int(args.fn(args) or 0)
    except (CliError, MissingCredentialsError, UnknownTierError) as e:
        print(str(e), file=sys.stderr)
        return int(getattr(e, "exit_code", 2))


if __name__ == "__main__":
    raise SystemExit(main())
