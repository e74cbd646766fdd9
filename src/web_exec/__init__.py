"""web_exec package.

Tiered web execution: direct HTTP (unlocker proxy) -> managed browser (light/advanced)
-> AI-tool calls, with an escalation engine on top and monitoring/alerting around it.

Entry point: `web-exec` (console script).
"""

__all__ = [
    "analyzer",
    "escalation",
    "http_engine",
    "browser_engine",
    "monitor",
    "alerting",
    "dynamic",
    "tool_client",
    "research",
    "cli",
]
