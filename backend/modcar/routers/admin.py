from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from modcar import models, schemas
from modcar.config import settings
from modcar.database import get_db
from modcar.dependencies import AuthorizationError, SessionContext, require_admin
from modcar.services import customers as customer_service
from modcar.services.email import dispatch_welcome_email
from modcar.services.identity import DuplicateIdentityError
from modcar.services.kpis import load_kpis
from modcar.services.plan_catalog import as_public_dict, list_plans
from modcar.services.provisioning import ProvisioningError, provision_partner
from modcar.services.reports import admin_dashboard, monthly_report

router = APIRouter(
    prefix="/admin",
    tags=["Admin"]
)


def profiles_by_id(db: Session, ids: List[str]) -> Dict[str, models.Profile]:
    """
    Um único SELECT ... WHERE id IN (...) para enriquecer listagens.
    """
    unique_ids = list({i for i in ids if i})
    if not unique_ids:
        return {}
    rows = db.query(models.Profile).filter(models.Profile.id.in_(unique_ids)).all()
    return {p.id: p for p in rows}


def run_provisioning(
    db: Session,
    ctx: Optional[SessionContext],
    payload: schemas.PartnerCreate,
    background_tasks: BackgroundTasks,
    *,
    self_signup: bool = False,
) -> Dict[str, str]:
    try:
        partner = provision_partner(db, ctx, payload, self_signup=self_signup)
    except AuthorizationError as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    except ProvisioningError as exc:
        status = 409 if isinstance(exc.__cause__, DuplicateIdentityError) else 400
        raise HTTPException(status_code=status, detail=exc.message)

    background_tasks.add_task(
        dispatch_welcome_email,
        email=partner["email"],
        name=partner["name"],
        company_name=partner["company"],
        plan=partner["plan"],
    )
    return partner


# ============================================================
# PARCEIROS
# ============================================================
@router.get("/partners", response_model=List[schemas.PartnerListItem])
def list_partners(
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    subscriptions = (
        db.query(models.PartnerSubscription)
        .order_by(models.PartnerSubscription.start_date.desc())
        .all()
    )
    profiles = profiles_by_id(db, [s.partner_id for s in subscriptions])

    items = []
    for sub in subscriptions:
        profile = profiles.get(sub.partner_id)
        items.append(
            schemas.PartnerListItem(
                partner_id=sub.partner_id,
                partner_name=profile.name if profile else None,
                company=profile.company if profile else None,
                email=profile.email if profile else None,
                plan=sub.plan,
                status=sub.status,
                start_date=sub.start_date,
                renewal_date=sub.renewal_date,
                monthly_revenue=float(sub.monthly_revenue or 0),
                products_count=sub.products_count,
                users_count=sub.users_count,
            )
        )
    return items


@router.post("/partners", response_model=schemas.PartnerOut, status_code=201)
def create_partner(
    payload: schemas.PartnerCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    return run_provisioning(db, ctx, payload, background_tasks)


# ============================================================
# CLIENTES
# ============================================================
@router.get("/customers", response_model=List[schemas.CustomerOut])
def list_customers(
    search: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    return customer_service.list_customers(db, search)


@router.get("/customers/{customer_id}", response_model=schemas.CustomerDetail)
def get_customer(
    customer_id: str,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    try:
        return customer_service.get_customer(db, customer_id)
    except customer_service.CustomerNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post("/customers/{customer_id}/block", response_model=schemas.CustomerOut)
def block_customer(
    customer_id: str,
    payload: schemas.BlockRequest,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    try:
        return customer_service.block_customer(db, customer_id, payload.reason)
    except customer_service.CustomerNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post("/customers/{customer_id}/unblock", response_model=schemas.CustomerOut)
def unblock_customer(
    customer_id: str,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    try:
        return customer_service.unblock_customer(db, customer_id)
    except customer_service.CustomerNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))


# ============================================================
# PAINEL / KPIs / RELATÓRIOS
# ============================================================
@router.get("/dashboard")
def dashboard(
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    return admin_dashboard(db)


@router.get("/kpis")
def kpis(
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    return load_kpis(db)


@router.get("/reports")
def reports(
    months: int = Query(default=6, ge=1, le=24),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    return monthly_report(db, months=months)


@router.get("/settings")
def plan_settings(ctx: SessionContext = Depends(require_admin)):
    """
    Planos vigentes e premissas de KPI (somente leitura; vêm da config).
    """
    return {
        "plans": [as_public_dict(p) for p in list_plans()],
        "kpi_assumptions": {
            "churn_rate": settings.KPI_CHURN_RATE,
            "avg_retention_months": settings.KPI_AVG_RETENTION_MONTHS,
            "cac": settings.KPI_CAC,
            "profit_margin": settings.KPI_PROFIT_MARGIN,
            "active_window_days": settings.KPI_ACTIVE_WINDOW_DAYS,
        },
    }
