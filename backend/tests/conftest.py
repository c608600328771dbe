import os
import tempfile
from uuid import uuid4

# config precisa ver isso antes do primeiro import de modcar
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORAGE_DIR"] = tempfile.mkdtemp(prefix="modcar-storage-")
os.environ["RESEND_API_KEY"] = ""
os.environ["ERP_SYNC_TOKEN"] = ""

import pytest
from fastapi.testclient import TestClient

from modcar import models
from modcar.database import Base, SessionLocal, engine
from modcar.dependencies import ROLE_ADMIN, SessionContext
from modcar.main import app
from modcar.schemas import PartnerCreate
from modcar.services.identity import create_identity, issue_token
from modcar.services.provisioning import provision_partner


@pytest.fixture(scope="session", autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client():
    return TestClient(app)


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}_{uuid4().hex[:10]}@modcar.com.br"


def auth_headers(identity) -> dict:
    return {"Authorization": f"Bearer {issue_token(identity)}"}


def admin_ctx(identity_id: str = "admin-test") -> SessionContext:
    return SessionContext(identity_id=identity_id, email="admin@modcar.com.br", role=ROLE_ADMIN)


def make_user(db, role=None, email=None, password="segredo123", name="Usuário Teste"):
    identity = create_identity(db, email=email or unique_email(role or "customer"), password=password, metadata={"name": name})
    if role:
        db.add(models.UserRole(user_id=identity.id, role=role))
        db.commit()
    return identity


def make_partner(db, plan="turbo", name="Parceiro Teste", company="Auto Peças Teste"):
    result = provision_partner(
        db,
        admin_ctx(),
        PartnerCreate(
            name=name,
            email=unique_email("partner"),
            company=company,
            password="segredo123",
            plan=plan,
        ),
    )
    return db.get(models.Identity, result["id"])


def make_product(db, partner_id, code=None, status="pending", stock=10, price=50.0, name="Filtro de Óleo"):
    product = models.Product(
        partner_id=partner_id,
        code=code or f"P-{uuid4().hex[:8]}",
        name=name,
        category="Filtros",
        brand="Bosch",
        price=price,
        stock=stock,
        status=status,
        images=[],
        compatibility=[],
        technical_specs={},
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture()
def admin(db):
    return make_user(db, role=ROLE_ADMIN, name="Admin Teste")


@pytest.fixture()
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture()
def partner(db):
    return make_partner(db)


@pytest.fixture()
def partner_headers(partner):
    return auth_headers(partner)
