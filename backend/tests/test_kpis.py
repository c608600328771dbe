from __future__ import annotations

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from modcar.services.kpis import KpiAssumptions, compute_kpis, growth_rate

NOW = datetime(2025, 6, 30, 12, 0)
ASSUMPTIONS = KpiAssumptions(churn_rate=5.2, avg_retention_months=18, cac=450.0, profit_margin=35.0)


def _partner(created_days_ago, last_access_days_ago=None):
    return SimpleNamespace(
        created_at=NOW - timedelta(days=created_days_ago),
        last_access_at=None if last_access_days_ago is None else NOW - timedelta(days=last_access_days_ago),
    )


def _sub(plan, revenue, status="active"):
    return SimpleNamespace(plan=plan, monthly_revenue=revenue, status=status)


def test_growth_rate():
    assert growth_rate(10, 15) == 50.0
    assert growth_rate(0, 7) == 0
    assert growth_rate(4, 2) == -50.0


def test_compute_kpis():
    partners = [_partner(5, 1) for _ in range(15)] + [_partner(40) for _ in range(10)]
    subscriptions = [_sub("turbo", 99.90), _sub("v6", 249.90), _sub("v12", 499.90, status="cancelled")]
    products = [object()] * 30

    kpis = compute_kpis(partners, subscriptions, products, NOW, ASSUMPTIONS)

    growth = kpis["growth"]
    assert growth["total_partners_registered"] == 25
    assert growth["total_partners_active"] == 15
    assert growth["new_partners"] == 15
    assert growth["partners_last_month"] == 10
    assert growth["partner_growth_rate"] == 50.0

    financial = kpis["financial"]
    assert financial["mrr"] == pytest.approx(349.80)
    assert financial["arr"] == pytest.approx(349.80 * 12)
    assert financial["arpu"] == pytest.approx(349.80 / 15)
    assert financial["ltv"] == pytest.approx(349.80 / 15 * 18)
    assert financial["payback"] == pytest.approx(450.0 / (349.80 / 15))
    assert financial["churn_mrr"] == pytest.approx(349.80 * 0.052)
    assert financial["churn_rate"] == 5.2
    assert financial["profit_margin"] == 35.0

    catalog = kpis["catalog"]
    assert catalog["total_products"] == 30
    assert catalog["avg_products_per_partner"] == 2.0
    assert {d["plan"]: d["percentage"] for d in catalog["plan_distribution"]} == {"turbo": 50.0, "v6": 50.0}


def test_compute_kpis_without_data_has_no_division_errors():
    kpis = compute_kpis([], [], [], NOW, ASSUMPTIONS)

    assert kpis["growth"]["partner_growth_rate"] == 0
    assert kpis["financial"]["mrr"] == 0
    assert kpis["financial"]["arpu"] == 0
    assert kpis["financial"]["payback"] == 0
    assert kpis["catalog"]["avg_products_per_partner"] == 0
    assert kpis["catalog"]["plan_distribution"] == []


def test_kpi_endpoint_is_admin_only(client, admin_headers, partner_headers):
    assert client.get("/admin/kpis", headers=partner_headers).status_code == 403

    r = client.get("/admin/kpis", headers=admin_headers)
    assert r.status_code == 200
    assert set(r.json()) == {"growth", "financial", "catalog"}


def test_reports_series_has_six_months(client, admin_headers):
    r = client.get("/admin/reports", headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert len(body["months"]) == 6
    assert [p["plan"] for p in body["plans"]] == ["turbo", "v6", "v12"]

    r = client.get("/admin/dashboard", headers=admin_headers)
    assert r.status_code == 200
    assert "pending_products" in r.json()
