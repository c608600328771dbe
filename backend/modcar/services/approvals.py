from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from modcar import models
from modcar.dependencies import AuthorizationError, SessionContext

logger = logging.getLogger("modcar.approvals")

PRODUCT_APPROVED = "active"
CAMPAIGN_APPROVED = "approved"
REJECTED = "rejected"
PENDING = "pending"


class ApprovalConflict(Exception):
    pass


class NotFoundError(Exception):
    pass


def _require_admin(ctx: SessionContext) -> None:
    if not ctx.is_admin:
        raise AuthorizationError("Somente administradores podem moderar")


def _require_reason(reason: Optional[str]) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ValueError("Informe o motivo da rejeição")
    return reason


def _ensure_pending(kind: str, item_id: str, status: str) -> None:
    # só sai de "pending"; qualquer outro estado é final para a moderação
    if status != PENDING:
        raise ApprovalConflict(f"{kind} {item_id} não está pendente (status atual: {status})")


def _get_product(db: Session, product_id: str) -> models.Product:
    product = db.get(models.Product, product_id)
    if not product:
        raise NotFoundError("Produto não encontrado.")
    return product


def _get_campaign(db: Session, campaign_id: str) -> models.Campaign:
    campaign = db.get(models.Campaign, campaign_id)
    if not campaign:
        raise NotFoundError("Anúncio não encontrado.")
    return campaign


# ============================================================
# PRODUTOS
# ============================================================
def approve_product(db: Session, ctx: SessionContext, product_id: str) -> models.Product:
    _require_admin(ctx)
    product = _get_product(db, product_id)
    _ensure_pending("Produto", product_id, product.status)

    product.status = PRODUCT_APPROVED
    product.rejection_reason = None
    product.approved_by = ctx.identity_id
    product.approved_at = models.utcnow()

    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("product approved id=%s by=%s", product.id, ctx.identity_id)
    return product


def reject_product(db: Session, ctx: SessionContext, product_id: str, reason: str) -> models.Product:
    _require_admin(ctx)
    reason = _require_reason(reason)
    product = _get_product(db, product_id)
    _ensure_pending("Produto", product_id, product.status)

    product.status = REJECTED
    product.rejection_reason = reason

    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("product rejected id=%s by=%s", product.id, ctx.identity_id)
    return product


# ============================================================
# ANÚNCIOS
# ============================================================
def approve_campaign(db: Session, ctx: SessionContext, campaign_id: str) -> models.Campaign:
    _require_admin(ctx)
    campaign = _get_campaign(db, campaign_id)
    _ensure_pending("Anúncio", campaign_id, campaign.status)

    campaign.status = CAMPAIGN_APPROVED
    campaign.rejection_reason = None
    campaign.approved_by = ctx.identity_id
    campaign.approved_at = models.utcnow()

    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    logger.info("campaign approved id=%s by=%s", campaign.id, ctx.identity_id)
    return campaign


def reject_campaign(db: Session, ctx: SessionContext, campaign_id: str, reason: str) -> models.Campaign:
    _require_admin(ctx)
    reason = _require_reason(reason)
    campaign = _get_campaign(db, campaign_id)
    _ensure_pending("Anúncio", campaign_id, campaign.status)

    campaign.status = REJECTED
    campaign.rejection_reason = reason

    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    logger.info("campaign rejected id=%s by=%s", campaign.id, ctx.identity_id)
    return campaign


def delete_pending_campaign(db: Session, ctx: SessionContext, campaign_id: str) -> None:
    """
    O parceiro só remove anúncios próprios ainda pendentes.
    """
    campaign = _get_campaign(db, campaign_id)
    if campaign.partner_id != ctx.identity_id:
        raise NotFoundError("Anúncio não encontrado.")
    if campaign.status != PENDING:
        raise ApprovalConflict("Somente anúncios pendentes podem ser excluídos")

    db.delete(campaign)
    db.commit()
    logger.info("campaign deleted id=%s by=%s", campaign_id, ctx.identity_id)
