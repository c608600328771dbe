from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from modcar import models
from modcar.database import get_db
from modcar.services.identity import InvalidCredentialsError, decode_token
from modcar.services.plan_catalog import format_quota, get_plan, is_unlimited

ROLE_ADMIN = "admin"
ROLE_PARTNER = "partner"


class AuthorizationError(Exception):
    pass


# ============================================================
# CONTEXTO DA SESSÃO (passado explicitamente aos serviços)
# ============================================================
@dataclass(frozen=True)
class SessionContext:
    identity_id: str
    email: str
    role: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_partner(self) -> bool:
        return self.role == ROLE_PARTNER


def extract_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    if not auth_header.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Token ausente")
    return auth_header.split(" ", 1)[1].strip()


def load_session_context(db: Session, identity_id: str) -> SessionContext:
    identity = db.get(models.Identity, identity_id)
    if not identity:
        raise HTTPException(status_code=401, detail="Credenciais inválidas")

    profile = identity.profile
    if profile and profile.status == "blocked":
        raise HTTPException(status_code=403, detail="Usuário bloqueado")

    role = (
        db.query(models.UserRole.role)
        .filter(models.UserRole.user_id == identity.id)
        .scalar()
    )
    return SessionContext(
        identity_id=identity.id,
        email=identity.email,
        role=role,
        name=profile.name if profile else None,
    )


def get_session_context(request: Request, db: Session = Depends(get_db)) -> SessionContext:
    token = extract_bearer_token(request)
    try:
        payload = decode_token(token)
    except InvalidCredentialsError:
        raise HTTPException(status_code=401, detail="Token inválido")
    return load_session_context(db, payload["sub"])


def require_admin(ctx: SessionContext = Depends(get_session_context)) -> SessionContext:
    if not ctx.is_admin:
        raise HTTPException(status_code=403, detail="Acesso restrito a administradores")
    return ctx


def require_partner(ctx: SessionContext = Depends(get_session_context)) -> SessionContext:
    if not ctx.is_partner:
        raise HTTPException(status_code=403, detail="Acesso restrito a parceiros")
    return ctx


# ============================================================
# COTAS DO PLANO
# ============================================================
def get_partner_subscription(db: Session, partner_id: str) -> Optional[models.PartnerSubscription]:
    return (
        db.query(models.PartnerSubscription)
        .filter(models.PartnerSubscription.partner_id == partner_id)
        .first()
    )


def remaining_product_quota(db: Session, partner_id: str) -> Optional[int]:
    """
    Quantos produtos ainda cabem no plano. None = ilimitado.
    Sem assinatura ativa não cabe nenhum.
    """
    subscription = get_partner_subscription(db, partner_id)
    if not subscription or subscription.status != "active":
        return 0

    limit = get_plan(subscription.plan).max_products
    if is_unlimited(limit):
        return None

    total = db.query(models.Product).filter(models.Product.partner_id == partner_id).count()
    return max(limit - total, 0)


def check_product_limit(db: Session, partner_id: str, adding: int = 1) -> None:
    """
    Enforce: limite de produtos por plano.
    TURBO: 100
    V6: 500
    V12: ilimitado
    """
    remaining = remaining_product_quota(db, partner_id)
    if remaining is None:
        return

    if adding > remaining:
        subscription = get_partner_subscription(db, partner_id)
        if not subscription or subscription.status != "active":
            raise HTTPException(status_code=403, detail="Parceiro sem assinatura ativa.")
        plan = get_plan(subscription.plan)
        raise HTTPException(
            status_code=403,
            detail=f"Limite atingido: plano {plan.name} permite até {format_quota(plan.max_products)} produtos.",
        )


def refresh_products_count(db: Session, partner_id: str) -> None:
    subscription = get_partner_subscription(db, partner_id)
    if not subscription:
        return
    subscription.products_count = (
        db.query(models.Product).filter(models.Product.partner_id == partner_id).count()
    )
    db.add(subscription)
