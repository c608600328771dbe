from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    # SQLite não guarda tz: tudo é UTC "naive"
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid.uuid4())


def _money():
    return Numeric(12, 2, asdecimal=False)


# ============================================================
# IDENTIDADE (provedor de auth)
# ============================================================
class Identity(Base):
    __tablename__ = "identities"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(180), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    profile = relationship(
        "Profile",
        back_populates="identity",
        uselist=False,
        cascade="all, delete-orphan",
    )


# ============================================================
# PERFIL (admin, parceiro ou cliente)
# ============================================================
class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), ForeignKey("identities.id", ondelete="CASCADE"), primary_key=True)

    name = Column(String(150), nullable=True)
    email = Column(String(180), nullable=True, index=True)
    phone = Column(String(30), nullable=True)
    cpf = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    company = Column(String(150), nullable=True)

    # ciclo de vida
    status = Column(String(20), default="active", nullable=False)  # active | blocked
    blocked_at = Column(DateTime, nullable=True)
    blocked_reason = Column(Text, nullable=True)
    last_access_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    identity = relationship("Identity", back_populates="profile")
    orders = relationship("Order", back_populates="customer", order_by="Order.created_at.desc()")


# ============================================================
# PAPEL (um por identidade)
# ============================================================
class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("identities.id", ondelete="CASCADE"), unique=True, nullable=False)
    role = Column(String(20), nullable=False)  # admin | partner
    created_at = Column(DateTime, default=utcnow, nullable=False)


# ============================================================
# ASSINATURA DO PARCEIRO
# ============================================================
class PartnerSubscription(Base):
    __tablename__ = "partner_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    partner_id = Column(String(36), ForeignKey("identities.id", ondelete="CASCADE"), unique=True, nullable=False)

    plan = Column(String(20), nullable=False)  # turbo | v6 | v12
    status = Column(String(20), default="active", nullable=False)  # active | inactive | cancelled

    start_date = Column(DateTime, default=utcnow, nullable=False)
    renewal_date = Column(DateTime, nullable=True)

    # snapshot do preço do plano no momento da contratação
    monthly_revenue = Column(_money(), default=0, nullable=False)

    products_count = Column(Integer, default=0, nullable=False)
    users_count = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)


# ============================================================
# PRODUTO (catálogo do parceiro)
# ============================================================
class Product(Base):
    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("partner_id", "code", name="uq_products_partner_code"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    partner_id = Column(String(36), ForeignKey("identities.id", ondelete="CASCADE"), index=True, nullable=False)

    code = Column(String(60), index=True, nullable=False)
    name = Column(String(200), nullable=False)
    category = Column(String(100), nullable=False)
    brand = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    price = Column(_money(), default=0, nullable=False)
    stock = Column(Integer, default=0, nullable=False)

    images = Column(JSON, default=list, nullable=False)
    compatibility = Column(JSON, default=list, nullable=False)
    technical_specs = Column(JSON, default=dict, nullable=False)

    status = Column(String(20), default="pending", nullable=False)  # pending | active | inactive | rejected
    rejection_reason = Column(Text, nullable=True)
    approved_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    movements = relationship("StockMovement", back_populates="product", cascade="all, delete-orphan")


# ============================================================
# ANÚNCIO / CAMPANHA
# ============================================================
class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=_uuid)
    partner_id = Column(String(36), ForeignKey("identities.id", ondelete="CASCADE"), index=True, nullable=False)

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=False)
    link_url = Column(Text, nullable=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    status = Column(String(20), default="pending", nullable=False)  # pending | approved | rejected | active | expired
    impressions = Column(Integer, default=0, nullable=False)
    clicks = Column(Integer, default=0, nullable=False)

    rejection_reason = Column(Text, nullable=True)
    approved_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def effective_status(self) -> str:
        if self.status in ("approved", "active") and self.end_date and self.end_date < date.today():
            return "expired"
        return self.status


# ============================================================
# PEDIDO (somente leitura neste sistema)
# ============================================================
class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    product_name = Column(String(200), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    total_price = Column(_money(), default=0, nullable=False)
    status = Column(String(20), default="pending", nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    customer = relationship("Profile", back_populates="orders")


# ============================================================
# MOVIMENTO DE ESTOQUE
# ============================================================
class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)

    movement_type = Column(String(20), nullable=False)  # erp_sync | manual | import
    quantity_change = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)

    reference_id = Column(String(120), nullable=True)
    notes = Column(Text, nullable=True)
    user_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    product = relationship("Product", back_populates="movements")
