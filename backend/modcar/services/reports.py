from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from modcar import models
from modcar.dependencies import ROLE_PARTNER, get_partner_subscription
from modcar.services.kpis import growth_rate
from modcar.services.plan_catalog import format_quota, get_plan, is_unlimited, list_plans, price_brl

MONTH_LABELS = ["Jan", "Fev", "Mar", "Abr", "Mai", "Jun", "Jul", "Ago", "Set", "Out", "Nov", "Dez"]
LOW_STOCK_THRESHOLD = 5


def _month_start(value: datetime) -> datetime:
    return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _plan_breakdown(subscriptions: List[models.PartnerSubscription]) -> List[Dict[str, Any]]:
    counts = Counter(s.plan for s in subscriptions)
    return [
        {
            "plan": plan.id,
            "name": plan.name,
            "count": counts.get(plan.id, 0),
            "revenue": counts.get(plan.id, 0) * price_brl(plan),
        }
        for plan in list_plans()
    ]


# ============================================================
# ADMIN
# ============================================================
def admin_dashboard(db: Session) -> Dict[str, Any]:
    active_subs = (
        db.query(models.PartnerSubscription)
        .filter(models.PartnerSubscription.status == "active")
        .all()
    )
    with_role = select(models.UserRole.user_id)

    return {
        "total_partners": db.query(models.UserRole).filter(models.UserRole.role == ROLE_PARTNER).count(),
        "active_subscriptions": len(active_subs),
        "total_products": db.query(models.Product).count(),
        "pending_products": db.query(models.Product).filter(models.Product.status == "pending").count(),
        "pending_campaigns": db.query(models.Campaign).filter(models.Campaign.status == "pending").count(),
        "total_customers": db.query(models.Profile).filter(~models.Profile.id.in_(with_role)).count(),
        "monthly_revenue": sum(float(s.monthly_revenue or 0) for s in active_subs),
        "plans": _plan_breakdown(active_subs),
    }


def monthly_report(db: Session, now: Optional[datetime] = None, months: int = 6) -> Dict[str, Any]:
    """
    Série acumulada dos últimos ``months`` meses (o mês corrente incluso):
    receita das assinaturas ativas, parceiros e produtos existentes
    ao fim de cada mês.
    """
    now = now or models.utcnow()
    current = _month_start(now)

    active_subs = (
        db.query(models.PartnerSubscription)
        .filter(models.PartnerSubscription.status == "active")
        .all()
    )
    product_dates = [row[0] for row in db.query(models.Product.created_at).all()]

    series: List[Dict[str, Any]] = []
    for offset in range(months - 1, -1, -1):
        start = current - relativedelta(months=offset)
        end = start + relativedelta(months=1)

        subs = [s for s in active_subs if s.start_date < end]
        series.append(
            {
                "month": MONTH_LABELS[start.month - 1],
                "year": start.year,
                "revenue": sum(float(s.monthly_revenue or 0) for s in subs),
                "partners": len(subs),
                "products": sum(1 for created in product_dates if created < end),
            }
        )

    first, last = series[0], series[-1]
    return {
        "months": series,
        "total_revenue": last["revenue"],
        "total_partners": last["partners"],
        "total_products": last["products"],
        "new_partners": last["partners"] - first["partners"],
        "revenue_growth": growth_rate(first["revenue"], last["revenue"]),
        "plans": _plan_breakdown(active_subs),
    }


# ============================================================
# PARCEIRO
# ============================================================
def partner_dashboard(db: Session, partner_id: str) -> Dict[str, Any]:
    status_rows = (
        db.query(models.Product.status, func.count(models.Product.id))
        .filter(models.Product.partner_id == partner_id)
        .group_by(models.Product.status)
        .all()
    )
    by_status = {status: count for status, count in status_rows}
    total = sum(by_status.values())

    products = db.query(models.Product).filter(models.Product.partner_id == partner_id).all()
    stock_value = sum(float(p.price or 0) * (p.stock or 0) for p in products)
    low_stock = sum(1 for p in products if (p.stock or 0) <= LOW_STOCK_THRESHOLD)

    campaigns = db.query(models.Campaign).filter(models.Campaign.partner_id == partner_id).all()
    running = [c for c in campaigns if c.effective_status in ("approved", "active")]

    quota: Dict[str, Any] = {"plan": None, "used": total, "limit": None, "label": None, "percentage": 0.0}
    subscription = get_partner_subscription(db, partner_id)
    if subscription:
        plan = get_plan(subscription.plan)
        quota.update(
            plan=plan.id,
            limit=plan.max_products,
            label=format_quota(plan.max_products),
            percentage=0.0 if is_unlimited(plan.max_products) else (total / plan.max_products) * 100,
        )

    return {
        "total_products": total,
        "products_by_status": {
            "pending": by_status.get("pending", 0),
            "active": by_status.get("active", 0),
            "inactive": by_status.get("inactive", 0),
            "rejected": by_status.get("rejected", 0),
        },
        "stock_value": stock_value,
        "low_stock": low_stock,
        "active_campaigns": len(running),
        "impressions": sum(c.impressions or 0 for c in campaigns),
        "clicks": sum(c.clicks or 0 for c in campaigns),
        "quota": quota,
    }
