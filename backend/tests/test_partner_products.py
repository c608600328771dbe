from __future__ import annotations

from datetime import date, timedelta

import pytest

from conftest import auth_headers, make_partner, make_product
from modcar import models
from modcar.dependencies import get_partner_subscription
from modcar.main import app
from modcar.services.storage import StorageClient, get_storage


def _product_payload(code="FOP-001", **overrides):
    data = {
        "code": code,
        "name": "Filtro de Óleo Premium",
        "category": "Filtros",
        "brand": "Bosch",
        "description": "Filtro de alta performance",
        "price": 45.90,
        "stock": 120,
        "compatibility": [{"brand": "VW", "model": "Gol", "year": "2015"}],
        "technical_specs": {"rosca": "M20x1.5"},
    }
    data.update(overrides)
    return data


@pytest.fixture()
def local_storage(tmp_path):
    app.dependency_overrides[get_storage] = lambda: StorageClient(
        base_dir=str(tmp_path), public_url="http://cdn.test/storage"
    )
    yield tmp_path
    app.dependency_overrides.pop(get_storage, None)


def test_partner_creates_pending_product(client, db, partner, partner_headers):
    r = client.post("/partner/products", json=_product_payload(), headers=partner_headers)
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "pending"
    assert body["partner_name"] == "Parceiro Teste"
    assert body["compatibility"][0]["model"] == "Gol"

    db.expire_all()
    assert get_partner_subscription(db, partner.id).products_count == 1


def test_duplicate_code_for_same_partner_is_conflict(client, partner_headers):
    assert client.post("/partner/products", json=_product_payload("DUP-1"), headers=partner_headers).status_code == 201
    assert client.post("/partner/products", json=_product_payload("DUP-1"), headers=partner_headers).status_code == 409


def test_partner_cannot_change_product_status(client, db, partner, partner_headers):
    product = make_product(db, partner.id)

    r = client.patch(
        f"/partner/products/{product.id}",
        json={"price": 60.0, "status": "active"},
        headers=partner_headers,
    )
    assert r.status_code == 200
    assert r.json()["price"] == 60.0
    assert r.json()["status"] == "pending"


def test_editing_rejected_product_keeps_it_rejected(client, db, partner, partner_headers):
    product = make_product(db, partner.id, status="rejected")
    product.rejection_reason = "Fotos ilegíveis"
    db.commit()

    r = client.patch(f"/partner/products/{product.id}", json={"name": "Nome Corrigido"}, headers=partner_headers)
    assert r.status_code == 200
    assert r.json()["name"] == "Nome Corrigido"
    assert r.json()["status"] == "rejected"
    assert r.json()["rejection_reason"] == "Fotos ilegíveis"

    db.expire_all()
    stored = db.get(models.Product, product.id)
    assert stored.status == "rejected"
    assert stored.rejection_reason == "Fotos ilegíveis"


def test_product_limit_by_plan(client, db, partner, partner_headers):
    for _ in range(100):
        make_product(db, partner.id)

    r = client.post("/partner/products", json=_product_payload("LIMIT-1"), headers=partner_headers)
    assert r.status_code == 403
    assert r.json()["detail"] == "Limite atingido: plano Turbo permite até 100 produtos."


def test_unlimited_plan_has_no_product_limit(client, db):
    partner = make_partner(db, plan="v12")
    for _ in range(101):
        make_product(db, partner.id)

    r = client.post("/partner/products", json=_product_payload("V12-1"), headers=auth_headers(partner))
    assert r.status_code == 201


def test_other_partners_products_are_invisible(client, db, partner_headers):
    other = make_partner(db)
    product = make_product(db, other.id)

    assert client.get(f"/partner/products/{product.id}", headers=partner_headers).status_code == 404
    assert client.delete(f"/partner/products/{product.id}", headers=partner_headers).status_code == 404


def test_delete_refreshes_products_count(client, db, partner, partner_headers):
    r = client.post("/partner/products", json=_product_payload("DEL-1"), headers=partner_headers)
    product_id = r.json()["id"]

    assert client.delete(f"/partner/products/{product_id}", headers=partner_headers).status_code == 204

    db.expire_all()
    assert get_partner_subscription(db, partner.id).products_count == 0


def test_product_image_upload(client, db, partner, partner_headers, local_storage):
    product = make_product(db, partner.id)

    r = client.post(
        f"/partner/products/{product.id}/images",
        files={"image": ("foto.png", b"\x89PNG fake", "image/png")},
        headers=partner_headers,
    )
    assert r.status_code == 200
    images = r.json()["images"]
    assert len(images) == 1
    assert images[0].startswith(f"http://cdn.test/storage/product-images/{partner.id}/")
    assert images[0].endswith(".png")

    stored = list((local_storage / "product-images" / partner.id).iterdir())
    assert len(stored) == 1

    r = client.post(
        f"/partner/products/{product.id}/images",
        files={"image": ("doc.pdf", b"%PDF", "application/pdf")},
        headers=partner_headers,
    )
    assert r.status_code == 400


def test_partner_campaign_starts_pending(client, partner_headers, local_storage):
    form = {
        "title": "Queima de Estoque",
        "start_date": date.today().isoformat(),
        "end_date": (date.today() + timedelta(days=15)).isoformat(),
        "link_url": "https://loja.modcar.com.br/promo",
    }
    image = {"image": ("banner.jpg", b"\xff\xd8 fake", "image/jpeg")}

    r = client.post("/partner/campaigns", data=form, files=image, headers=partner_headers)
    assert r.status_code == 201
    assert r.json()["status"] == "pending"

    bad_range = {**form, "end_date": (date.today() - timedelta(days=1)).isoformat()}
    r = client.post("/partner/campaigns", data=bad_range, files=image, headers=partner_headers)
    assert r.status_code == 422

    listed = client.get("/partner/campaigns", headers=partner_headers).json()
    assert [c["title"] for c in listed] == ["Queima de Estoque"]


def test_settings_and_dashboard(client, db, partner, partner_headers):
    make_product(db, partner.id, stock=2, price=10.0)
    make_product(db, partner.id, status="active", stock=10, price=5.0)

    r = client.get("/partner/settings", headers=partner_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["subscription"]["plan"] == "turbo"
    assert [p["id"] for p in body["upgrade_options"]] == ["v6", "v12"]

    r = client.get("/partner/dashboard", headers=partner_headers)
    assert r.status_code == 200
    dash = r.json()
    assert dash["total_products"] == 2
    assert dash["products_by_status"]["pending"] == 1
    assert dash["products_by_status"]["active"] == 1
    assert dash["stock_value"] == pytest.approx(70.0)
    assert dash["low_stock"] == 1
    assert dash["quota"]["limit"] == 100


def test_partner_routes_require_partner_role(client, admin_headers):
    assert client.get("/partner/products").status_code == 401
    assert client.get("/partner/products", headers=admin_headers).status_code == 403
