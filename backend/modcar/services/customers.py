from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from modcar import models

logger = logging.getLogger("modcar.customers")

STATUS_ACTIVE = "active"
STATUS_BLOCKED = "blocked"


class CustomerNotFound(Exception):
    pass


def _customers_query(db: Session):
    # cliente = perfil sem papel de admin/parceiro
    with_role = select(models.UserRole.user_id)
    return db.query(models.Profile).filter(~models.Profile.id.in_(with_role))


def list_customers(db: Session, search: Optional[str] = None) -> List[models.Profile]:
    query = _customers_query(db)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                models.Profile.name.ilike(term),
                models.Profile.email.ilike(term),
                models.Profile.cpf.ilike(term),
            )
        )
    return query.order_by(models.Profile.created_at.desc()).all()


def get_customer(db: Session, customer_id: str) -> models.Profile:
    customer = _customers_query(db).filter(models.Profile.id == customer_id).first()
    if not customer:
        raise CustomerNotFound("Cliente não encontrado.")
    return customer


def block_customer(db: Session, customer_id: str, reason: str) -> models.Profile:
    reason = (reason or "").strip()
    if not reason:
        raise ValueError("Informe o motivo do bloqueio")

    customer = get_customer(db, customer_id)
    # novo bloqueio sobrescreve motivo/data anteriores
    customer.status = STATUS_BLOCKED
    customer.blocked_at = models.utcnow()
    customer.blocked_reason = reason

    db.add(customer)
    db.commit()
    db.refresh(customer)
    logger.info("customer blocked id=%s", customer.id)
    return customer


def unblock_customer(db: Session, customer_id: str) -> models.Profile:
    customer = get_customer(db, customer_id)
    customer.status = STATUS_ACTIVE
    customer.blocked_at = None
    customer.blocked_reason = None

    db.add(customer)
    db.commit()
    db.refresh(customer)
    logger.info("customer unblocked id=%s", customer.id)
    return customer
