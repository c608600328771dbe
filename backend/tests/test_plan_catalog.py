from __future__ import annotations

from datetime import datetime

import pytest

from modcar.services.plan_catalog import (
    UnknownPlanError,
    as_public_dict,
    calc_renewal_date,
    format_quota,
    get_plan,
    is_valid_plan,
    list_plans,
    price_brl,
    upgrade_options,
)


def test_catalog_quotas_and_prices():
    turbo = get_plan("turbo")
    assert (turbo.max_products, turbo.max_users, price_brl(turbo)) == (100, 2, 99.90)

    v6 = get_plan(" V6 ")
    assert (v6.max_products, v6.max_users, price_brl(v6)) == (500, 5, 249.90)

    v12 = get_plan("v12")
    assert v12.max_products == -1
    assert format_quota(v12.max_products) == "Ilimitado"


def test_unknown_plan_is_rejected():
    assert not is_valid_plan("v8")
    with pytest.raises(UnknownPlanError):
        get_plan("v8")


def test_list_plans_has_fixed_order():
    assert [p.id for p in list_plans()] == ["turbo", "v6", "v12"]


def test_upgrade_options_only_go_up():
    assert [p.id for p in upgrade_options("turbo")] == ["v6", "v12"]
    assert upgrade_options("v12") == []


def test_renewal_is_one_calendar_year():
    assert calc_renewal_date(datetime(2023, 1, 15)) == datetime(2024, 1, 15)
    # atravessa 29/02: 366 dias
    assert (calc_renewal_date(datetime(2023, 3, 1)) - datetime(2023, 3, 1)).days == 366
    assert calc_renewal_date(datetime(2024, 2, 29)) == datetime(2025, 2, 28)


def test_public_dict_never_exposes_negative_quota_label():
    data = as_public_dict(get_plan("v12"))
    assert data["max_products_label"] == "Ilimitado"
    assert data["max_users_label"] == "Ilimitado"
    assert data["price_brl"] == 499.90
