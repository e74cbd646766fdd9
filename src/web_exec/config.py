from __future__ import annotations

"""
config.py — учётные данные провайдера и конфиг мониторинга.

ENV (значения не коммитятся, .env грузит кто-то снаружи):
- BRIGHTDATA_CUSTOMER_ID
- BRIGHTDATA_PASSWORD
- BRIGHTDATA_ZONE_WEB_UNLOCKER       (default: web_unlocker)
- BRIGHTDATA_ZONE_SCRAPING_BROWSER   (default: scraping_browser)
- BRIGHTDATA_API_TOKEN               (AI-tool вызовы)

Формат monitor.json (пример):
{
  "targets": [
    {"url": "https://competitor-a.com/pricing", "selectors": [".price-box"], "max_response_time_ms": 3000}
  ],
  "check_interval_sec": 3600,
  "geos": ["us", "uk", "de"],
  "retention_days": 7
}
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .errors import MissingCredentialsError

UNLOCKER_HOST = "brd.superproxy.io"
UNLOCKER_PORT = 22225
BROWSER_PORT = 9222


@dataclass(frozen=True)
class ProviderCredentials:
    customer_id: str = ""
    password: str = ""
    unlocker_zone: str = "web_unlocker"
    browser_zone: str = "scraping_browser"
    api_token: str = ""

    ENV_CUSTOMER = "BRIGHTDATA_CUSTOMER_ID"
    ENV_PASSWORD = "BRIGHTDATA_PASSWORD"
    ENV_UNLOCKER_ZONE = "BRIGHTDATA_ZONE_WEB_UNLOCKER"
    ENV_BROWSER_ZONE = "BRIGHTDATA_ZONE_SCRAPING_BROWSER"
    ENV_API_TOKEN = "BRIGHTDATA_API_TOKEN"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProviderCredentials":
        env = os.environ if environ is None else environ
        return cls(
            customer_id=str(env.get(cls.ENV_CUSTOMER, "") or "").strip(),
            password=str(env.get(cls.ENV_PASSWORD, "") or "").strip(),
            unlocker_zone=str(env.get(cls.ENV_UNLOCKER_ZONE, "") or "").strip() or "web_unlocker",
            browser_zone=str(env.get(cls.ENV_BROWSER_ZONE, "") or "").strip() or "scraping_browser",
            api_token=str(env.get(cls.ENV_API_TOKEN, "") or "").strip(),
        )

    @property
    def proxy_configured(self) -> bool:
        return bool(self.customer_id and self.password)

    def require_proxy(self, what: str) -> None:
        missing = tuple(
            name for name, val in ((self.ENV_CUSTOMER, self.customer_id), (self.ENV_PASSWORD, self.password)) if not val
        )
        if missing:
            raise MissingCredentialsError(what, missing)

    def require_token(self, what: str) -> None:
        if not self.api_token:
            raise MissingCredentialsError(what, (self.ENV_API_TOKEN,))

    def proxy_username(self, zone: str, geo: Optional[str] = None) -> str:
        # brd-customer-{id}-zone-{zone}[-country-{geo}]
        user = f"brd-customer-{self.customer_id}-zone-{zone}"
        if geo:
            user += f"-country-{geo.strip().lower()}"
        return user


def unlocker_proxy_url(creds: ProviderCredentials, geo: Optional[str] = None, *, host: str = UNLOCKER_HOST, port: int = UNLOCKER_PORT) -> str:
    creds.require_proxy("web unlocker proxy")
    user = creds.proxy_username(creds.unlocker_zone, geo)
    return f"http://{user}:{creds.password}@{host}:{port}"


def browser_ws_endpoint(creds: ProviderCredentials, geo: Optional[str] = None, *, host: str = UNLOCKER_HOST, port: int = BROWSER_PORT) -> str:
    creds.require_proxy("scraping browser")
    user = creds.proxy_username(creds.browser_zone, geo)
    return f"wss://{user}:{creds.password}@{host}:{port}"


@dataclass
class MonitorTarget:
    url: str
    selectors: list[str] = field(default_factory=list)
    max_response_time_ms: int = 5000

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "MonitorTarget":
        url = d.get("url")
        if not isinstance(url, str) or not url.strip():
            raise ValueError("monitor target requires a non-empty 'url'")
        sels = d.get("selectors") or []
        if not isinstance(sels, list):
            raise ValueError(f"{url}: 'selectors' must be a list")
        return cls(
            url=url.strip(),
            selectors=[str(s) for s in sels if str(s).strip()],
            max_response_time_ms=int(d.get("max_response_time_ms") or d.get("max_response_time") or 5000),
        )


@dataclass
class MonitorConfig:
    targets: list[MonitorTarget] = field(default_factory=list)
    check_interval_sec: float = 3600.0
    geos: list[str] = field(default_factory=lambda: ["us"])
    retention_days: float = 7.0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "MonitorConfig":
        if not isinstance(d, dict):
            raise ValueError("monitor config must be an object")
        raw_targets = d.get("targets") or []
        if not isinstance(raw_targets, list):
            raise ValueError("'targets' must be a list")
        geos = d.get("geos") or ["us"]
        return cls(
            targets=[MonitorTarget.from_dict(t) for t in raw_targets if isinstance(t, dict)],
            check_interval_sec=float(d.get("check_interval_sec") or 3600.0),
            geos=[str(g).strip().lower() for g in geos if str(g).strip()] or ["us"],
            retention_days=float(d.get("retention_days") or 7.0),
        )


def load_monitor_config(path: str) -> MonitorConfig:
    with open(path, "r", encoding="utf-8") as f:
        return MonitorConfig.from_dict(json.load(f))
