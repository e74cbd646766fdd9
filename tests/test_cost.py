from __future__ import annotations

import pytest

from web_exec.cost import CostTracker, geo_premium
from web_exec.tiers import ExecutionTier, next_tier, parse_tier
from web_exec.errors import UnknownTierError


def test_calculate_per_tier_and_geo():
    t = CostTracker()
    c = t.calculate("browser-advanced", bytes_transferred=2048, geo="jp")
    assert c.base_cost == pytest.approx(0.025)
    assert c.data_cost == pytest.approx(2 * 0.0001)
    assert c.geo_premium == pytest.approx(0.005)
    assert c.total_cost == pytest.approx(0.025 + 0.0002 + 0.005)


@pytest.mark.parametrize("geo,premium", [(None, 0.0), ("us", 0.0), ("UK", 0.002), ("de", 0.002), ("br", 0.005)])
def test_geo_premiums(geo, premium):
    assert geo_premium(geo) == pytest.approx(premium)


def test_records_summary_export_reset():
    t = CostTracker(clock=lambda: 42.0)
    t.record(ExecutionTier.HTTP, bytes_transferred=1024)
    t.record(ExecutionTier.BROWSER_LIGHT, bytes_transferred=0, geo="uk", url="https://a.test/")

    s = t.summary()
    assert s["record_count"] == 2
    assert s["by_tier"]["http"] == pytest.approx(0.001 + 0.00001)
    assert s["by_tier"]["browser-light"] == pytest.approx(0.012)
    assert s["average_cost"] == pytest.approx(s["total"] / 2)

    rows = t.export()
    assert rows[1]["details"]["url"] == "https://a.test/"
    assert rows[1]["timestamp"] == 42.0

    t.reset()
    assert t.summary()["record_count"] == 0


def test_trackers_do_not_share_state():
    a, b = CostTracker(), CostTracker()
    a.record("http")
    assert b.summary()["total"] == 0.0


def test_tier_helpers():
    assert parse_tier("BROWSER_LIGHT") == ExecutionTier.BROWSER_LIGHT
    assert next_tier(ExecutionTier.HTTP) == ExecutionTier.BROWSER_LIGHT
    assert next_tier(ExecutionTier.BROWSER_ADVANCED) is None
    with pytest.raises(UnknownTierError):
        parse_tier("quantum")


def test_bounded_records_keep_the_latest():
    t = CostTracker(max_records=2)
    for tier in ("http", "browser-light", "browser-advanced"):
        t.record(tier)
    assert [r.tier for r in t.records] == [ExecutionTier.BROWSER_LIGHT, ExecutionTier.BROWSER_ADVANCED]
    assert t.summary()["record_count"] == 2
    t.reset()
    assert len(t.records) == 0
