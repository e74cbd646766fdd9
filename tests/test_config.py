from __future__ import annotations

import pytest

from web_exec.config import ProviderCredentials, browser_ws_endpoint, unlocker_proxy_url
from web_exec.errors import MissingCredentialsError


def test_credentials_from_env_with_defaults():
    c = ProviderCredentials.from_env({"BRIGHTDATA_CUSTOMER_ID": " c9 ", "BRIGHTDATA_PASSWORD": "p"})
    assert c.customer_id == "c9"
    assert c.unlocker_zone == "web_unlocker"
    assert c.browser_zone == "scraping_browser"
    assert c.proxy_configured
    assert c.api_token == ""


def test_credentials_from_process_env(monkeypatch):
    monkeypatch.setenv("BRIGHTDATA_CUSTOMER_ID", "cid")
    monkeypatch.setenv("BRIGHTDATA_PASSWORD", "secret")
    monkeypatch.setenv("BRIGHTDATA_ZONE_WEB_UNLOCKER", "my_unlocker")
    monkeypatch.setenv("BRIGHTDATA_API_TOKEN", "tok")
    c = ProviderCredentials.from_env()
    assert c.unlocker_zone == "my_unlocker"
    assert c.api_token == "tok"


def test_proxy_and_browser_urls():
    c = ProviderCredentials(customer_id="c1", password="pw")
    assert unlocker_proxy_url(c) == "http://brd-customer-c1-zone-web_unlocker:pw@brd.superproxy.io:22225"
    assert unlocker_proxy_url(c, "DE") == "http://brd-customer-c1-zone-web_unlocker-country-de:pw@brd.superproxy.io:22225"
    assert browser_ws_endpoint(c, "us") == "wss://brd-customer-c1-zone-scraping_browser-country-us:pw@brd.superproxy.io:9222"


def test_missing_credentials_name_the_variables():
    with pytest.raises(MissingCredentialsError) as ei:
        unlocker_proxy_url(ProviderCredentials(customer_id="c1"))
    assert ei.value.missing == ("BRIGHTDATA_PASSWORD",)
    assert isinstance(ei.value, ValueError)

    with pytest.raises(MissingCredentialsError):
        ProviderCredentials().require_token("tool call")
