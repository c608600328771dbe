from __future__ import annotations

import pytest

from conftest import admin_ctx, auth_headers, make_partner, unique_email
from modcar import models
from modcar.dependencies import AuthorizationError, SessionContext
from modcar.schemas import PartnerCreate
from modcar.services import provisioning


def _payload(email=None, plan="v6"):
    return {
        "name": "Maria Silva",
        "email": email or unique_email("partner"),
        "company": "Silva Autopeças",
        "password": "segredo123",
        "plan": plan,
    }


def _identity_by_email(db, email):
    db.expire_all()
    return db.query(models.Identity).filter(models.Identity.email == email).first()


def test_admin_creates_partner(client, db, admin_headers):
    payload = _payload()
    r = client.post("/admin/partners", json=payload, headers=admin_headers)
    assert r.status_code == 201
    data = r.json()
    assert data["email"] == payload["email"]
    assert data["company"] == "Silva Autopeças"
    assert data["plan"] == "v6"

    identity = _identity_by_email(db, payload["email"])
    assert identity is not None
    assert identity.profile.name == "Maria Silva"
    assert identity.profile.company == "Silva Autopeças"

    role = db.query(models.UserRole).filter(models.UserRole.user_id == identity.id).one()
    assert role.role == "partner"

    sub = db.query(models.PartnerSubscription).filter(models.PartnerSubscription.partner_id == identity.id).one()
    assert sub.status == "active"
    assert sub.monthly_revenue == pytest.approx(249.90)
    assert sub.products_count == 0
    assert sub.users_count == 1
    assert (sub.renewal_date - sub.start_date).days in (365, 366)


def test_role_grant_failure_rolls_back_identity(db, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("role insert failed")

    monkeypatch.setattr(provisioning, "_grant_role", boom)
    data = PartnerCreate(**_payload())

    with pytest.raises(provisioning.ProvisioningError) as excinfo:
        provisioning.provision_partner(db, admin_ctx(), data)

    assert excinfo.value.step == provisioning.STEP_ROLE
    assert excinfo.value.message == "role insert failed"
    assert excinfo.value.compensation_errors == []

    assert _identity_by_email(db, data.email) is None
    assert db.query(models.Profile).filter(models.Profile.email == data.email).count() == 0


def test_subscription_failure_undoes_every_step(db, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("subscription insert failed")

    monkeypatch.setattr(provisioning, "_create_subscription", boom)
    data = PartnerCreate(**_payload())

    with pytest.raises(provisioning.ProvisioningError) as excinfo:
        provisioning.provision_partner(db, admin_ctx(), data)

    assert excinfo.value.step == provisioning.STEP_SUBSCRIPTION
    assert _identity_by_email(db, data.email) is None
    orphan_roles = (
        db.query(models.UserRole)
        .outerjoin(models.Identity, models.Identity.id == models.UserRole.user_id)
        .filter(models.Identity.id.is_(None))
        .count()
    )
    assert orphan_roles == 0


def test_non_admin_is_refused_before_any_write(db):
    data = PartnerCreate(**_payload())
    ctx = SessionContext(identity_id="someone", email="p@modcar.com.br", role="partner")

    with pytest.raises(AuthorizationError):
        provisioning.provision_partner(db, ctx, data)

    assert _identity_by_email(db, data.email) is None


def test_partner_token_cannot_create_partner(client, db, partner):
    payload = _payload()
    r = client.post("/admin/partners", json=payload, headers=auth_headers(partner))
    assert r.status_code == 403
    assert _identity_by_email(db, payload["email"]) is None


def test_duplicate_email_is_conflict(client, db, admin_headers):
    existing = make_partner(db)
    r = client.post("/admin/partners", json=_payload(email=existing.email), headers=admin_headers)
    assert r.status_code == 409
    assert db.query(models.Identity).filter(models.Identity.email == existing.email).count() == 1


@pytest.mark.parametrize(
    "override",
    [
        {"name": "Al"},
        {"company": "X"},
        {"email": "nao-e-email"},
        {"password": "123"},
        {"plan": "v8"},
    ],
)
def test_invalid_input_never_reaches_the_store(client, db, admin_headers, override):
    payload = {**_payload(), **override}
    r = client.post("/admin/partners", json=payload, headers=admin_headers)
    assert r.status_code == 422
    assert db.query(models.Identity).filter(models.Identity.email == payload["email"]).count() == 0


def test_create_partner_function_shapes(client, db, admin_headers):
    payload = _payload(plan="turbo")

    r = client.post("/functions/v1/create-partner", json=payload)
    assert r.status_code == 400
    assert r.json()["success"] is False

    r = client.post("/functions/v1/create-partner", json={**payload, "plan": "v8"}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["success"] is False

    r = client.post("/functions/v1/create-partner", json=payload, headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["partner"]["plan"] == "turbo"
    assert body["partner"]["email"] == payload["email"]


def test_admin_lists_partners_with_profile_data(client, db, admin_headers):
    partner = make_partner(db, plan="v12", name="Carlos Souza", company="Souza Motors")

    r = client.get("/admin/partners", headers=admin_headers)
    assert r.status_code == 200
    row = next(item for item in r.json() if item["partner_id"] == partner.id)
    assert row["partner_name"] == "Carlos Souza"
    assert row["company"] == "Souza Motors"
    assert row["plan"] == "v12"
    assert row["monthly_revenue"] == pytest.approx(499.90)
