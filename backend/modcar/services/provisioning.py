"""
Provisionamento de parceiro.

Quatro passos sequenciais, cada um dependente do id gerado no primeiro:

  1. cria a identidade (email + senha)
  2. grava nome/empresa no perfil
  3. concede o papel ``partner``
  4. cria a assinatura do plano

Se o passo N falhar, os passos 1..N-1 são desfeitos em ordem reversa
antes de propagar o erro. Nenhum parceiro fica "meio criado".
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from modcar import models
from modcar.dependencies import ROLE_PARTNER, AuthorizationError, SessionContext
from modcar.schemas import PartnerCreate
from modcar.services import identity as identity_service
from modcar.services.plan_catalog import calc_renewal_date, get_plan, price_brl

logger = logging.getLogger("modcar.provisioning")

STEP_IDENTITY = "create_identity"
STEP_PROFILE = "update_profile"
STEP_ROLE = "grant_role"
STEP_SUBSCRIPTION = "create_subscription"


class ProvisioningError(Exception):
    def __init__(self, step: str, message: str, compensation_errors: Optional[List[str]] = None):
        super().__init__(message)
        self.step = step
        self.message = message
        self.compensation_errors = compensation_errors or []


@dataclass
class _Saga:
    db: Session
    undo: List[Tuple[str, Callable[[], None]]] = field(default_factory=list)

    def compensate(self) -> List[str]:
        self.db.rollback()
        errors: List[str] = []
        for step, action in reversed(self.undo):
            try:
                action()
                logger.info("compensated step=%s", step)
            except Exception as exc:
                self.db.rollback()
                logger.exception("compensation failed step=%s", step)
                errors.append(f"{step}: {exc}")
        self.undo.clear()
        return errors


# ============================================================
# PASSOS
# ============================================================
def _create_identity(db: Session, data: PartnerCreate) -> models.Identity:
    return identity_service.create_identity(
        db,
        email=data.email,
        password=data.password,
        metadata={"name": data.name},
    )


def _update_profile(db: Session, identity_id: str, data: PartnerCreate) -> Dict[str, Optional[str]]:
    profile = db.get(models.Profile, identity_id)
    if not profile:
        raise RuntimeError("Perfil não encontrado para a identidade criada")

    previous = {"name": profile.name, "company": profile.company}
    profile.name = data.name
    profile.company = data.company
    db.add(profile)
    db.commit()
    return previous


def _restore_profile(db: Session, identity_id: str, previous: Dict[str, Optional[str]]) -> None:
    profile = db.get(models.Profile, identity_id)
    if not profile:
        return
    profile.name = previous["name"]
    profile.company = previous["company"]
    db.add(profile)
    db.commit()


def _grant_role(db: Session, identity_id: str) -> models.UserRole:
    role = models.UserRole(user_id=identity_id, role=ROLE_PARTNER)
    db.add(role)
    db.commit()
    db.refresh(role)
    return role


def _revoke_role(db: Session, identity_id: str) -> None:
    db.query(models.UserRole).filter(models.UserRole.user_id == identity_id).delete()
    db.commit()


def _create_subscription(db: Session, identity_id: str, plan_id: str) -> models.PartnerSubscription:
    plan = get_plan(plan_id)
    now = models.utcnow()
    subscription = models.PartnerSubscription(
        partner_id=identity_id,
        plan=plan.id,
        status="active",
        start_date=now,
        renewal_date=calc_renewal_date(now),
        monthly_revenue=price_brl(plan),
        products_count=0,
        users_count=1,
    )
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    return subscription


# ============================================================
# OPERAÇÃO
# ============================================================
def provision_partner(
    db: Session,
    ctx: Optional[SessionContext],
    data: PartnerCreate,
    *,
    self_signup: bool = False,
) -> Dict[str, str]:
    """
    Cria um parceiro completo. ``ctx`` precisa ser admin, exceto no
    autocadastro do funil público (``self_signup=True``).
    """
    if not self_signup and (ctx is None or not ctx.is_admin):
        raise AuthorizationError("Somente administradores podem criar parceiros")

    logger.info("provisioning partner email=%s plan=%s", data.email, data.plan)
    saga = _Saga(db)
    step = STEP_IDENTITY

    try:
        identity = _create_identity(db, data)
        identity_id = identity.id
        email = identity.email
        saga.undo.append((STEP_IDENTITY, lambda: identity_service.delete_identity(db, identity_id)))
        logger.info("step=%s ok id=%s", step, identity_id)

        step = STEP_PROFILE
        previous = _update_profile(db, identity_id, data)
        saga.undo.append((STEP_PROFILE, lambda: _restore_profile(db, identity_id, previous)))
        logger.info("step=%s ok", step)

        step = STEP_ROLE
        _grant_role(db, identity_id)
        saga.undo.append((STEP_ROLE, lambda: _revoke_role(db, identity_id)))
        logger.info("step=%s ok", step)

        step = STEP_SUBSCRIPTION
        subscription = _create_subscription(db, identity_id, data.plan)
        logger.info("step=%s ok plan=%s", step, subscription.plan)
    except Exception as exc:
        logger.error("provisioning failed step=%s error=%s", step, exc)
        compensation_errors = saga.compensate()
        raise ProvisioningError(step, str(exc), compensation_errors) from exc

    return {
        "id": identity_id,
        "email": email,
        "name": data.name,
        "company": data.company,
        "plan": subscription.plan,
    }
