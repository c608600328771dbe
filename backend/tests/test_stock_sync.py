from __future__ import annotations

from uuid import uuid4

from conftest import make_partner, make_product
from modcar import models
from modcar.config import settings


def _movements(db, product_id):
    db.expire_all()
    return (
        db.query(models.StockMovement)
        .filter(models.StockMovement.product_id == product_id)
        .order_by(models.StockMovement.id)
        .all()
    )


def _code():
    return f"ERP-{uuid4().hex[:8]}"


def test_sync_applies_signed_delta_and_records_movement(client, db, partner):
    product = make_product(db, partner.id, code=_code(), stock=10)

    r = client.post(
        "/functions/v1/sync-stock-erp",
        json={"product_code": product.code, "quantity_change": -3, "erp_reference": "NF-1001"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["product"] == {"id": product.id, "name": product.name, "code": product.code}
    assert body["stock_update"]["previous_stock"] == 10
    assert body["stock_update"]["new_stock"] == 7

    movements = _movements(db, product.id)
    assert len(movements) == 1
    assert movements[0].movement_type == "erp_sync"
    assert movements[0].quantity_change == -3
    assert movements[0].reference_id == "NF-1001"
    assert movements[0].notes == "ERP sync from reference: NF-1001"
    assert movements[0].user_id is None
    assert db.get(models.Product, product.id).stock == 7


def test_unknown_code_is_404_without_mutation(client, db):
    before = db.query(models.StockMovement).count()

    r = client.post(
        "/functions/v1/sync-stock-erp",
        json={"product_code": "NAO-EXISTE", "quantity_change": 5, "erp_reference": "NF-1"},
    )
    assert r.status_code == 404
    assert r.json() == {"error": "Product not found"}
    assert db.query(models.StockMovement).count() == before


def test_stock_never_goes_negative(client, db, partner):
    product = make_product(db, partner.id, code=_code(), stock=2)

    r = client.post(
        "/functions/v1/sync-stock-erp",
        json={"product_code": product.code, "quantity_change": -5, "erp_reference": "NF-2"},
    )
    assert r.status_code == 400
    assert "error" in r.json()
    assert _movements(db, product.id) == []
    assert db.get(models.Product, product.id).stock == 2


def test_code_shared_by_two_partners_is_conflict(client, db, partner):
    code = _code()
    other = make_partner(db)
    make_product(db, partner.id, code=code)
    make_product(db, other.id, code=code)

    r = client.post(
        "/functions/v1/sync-stock-erp",
        json={"product_code": code, "quantity_change": 1, "erp_reference": "NF-3"},
    )
    assert r.status_code == 409


def test_erp_token_is_checked_when_configured(client, db, partner, monkeypatch):
    monkeypatch.setattr(settings, "ERP_SYNC_TOKEN", "s3cr3t")
    product = make_product(db, partner.id, code=_code(), stock=1)
    payload = {"product_code": product.code, "quantity_change": 4, "erp_reference": "NF-4"}

    assert client.post("/functions/v1/sync-stock-erp", json=payload).status_code == 403
    r = client.post("/functions/v1/sync-stock-erp", json=payload, headers={"X-ERP-Token": "s3cr3t"})
    assert r.status_code == 200
    assert r.json()["stock_update"]["new_stock"] == 5


def test_partner_manual_adjustment(client, db, partner, partner_headers):
    product = make_product(db, partner.id, stock=4)

    r = client.post(
        f"/partner/products/{product.id}/stock",
        json={"quantity_change": 6, "notes": "Inventário"},
        headers=partner_headers,
    )
    assert r.status_code == 200
    assert r.json()["new_stock"] == 10

    movement = _movements(db, product.id)[-1]
    assert movement.movement_type == "manual"
    assert movement.user_id == partner.id

    r = client.post(
        f"/partner/products/{product.id}/stock",
        json={"quantity_change": 0},
        headers=partner_headers,
    )
    assert r.status_code == 422
