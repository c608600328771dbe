"""
KPIs do painel admin.

Tudo é recalculado a cada chamada sobre as linhas atuais do banco.
Churn, CAC, margem e retenção média são premissas de configuração
(``KpiAssumptions``), não valores apurados de histórico.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from modcar import models
from modcar.config import settings
from modcar.dependencies import ROLE_PARTNER


@dataclass(frozen=True)
class KpiAssumptions:
    churn_rate: float
    avg_retention_months: int
    cac: float
    profit_margin: float
    active_window_days: int = 30

    @classmethod
    def from_settings(cls) -> "KpiAssumptions":
        return cls(
            churn_rate=settings.KPI_CHURN_RATE,
            avg_retention_months=settings.KPI_AVG_RETENTION_MONTHS,
            cac=settings.KPI_CAC,
            profit_margin=settings.KPI_PROFIT_MARGIN,
            active_window_days=settings.KPI_ACTIVE_WINDOW_DAYS,
        )


def growth_rate(previous: int, current: int) -> float:
    """
    Variação percentual mês a mês. Sem base (previous == 0) → 0.
    """
    if previous <= 0:
        return 0.0
    return ((current - previous) / previous) * 100


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def compute_kpis(
    partners: Sequence[Any],
    subscriptions: Iterable[Any],
    products: Sequence[Any],
    now: datetime,
    assumptions: KpiAssumptions,
) -> Dict[str, Dict[str, Any]]:
    window = timedelta(days=assumptions.active_window_days)
    this_month_start = now - window
    last_month_start = now - 2 * window

    # crescimento
    active_partners = [
        p for p in partners
        if p.last_access_at is not None and p.last_access_at > this_month_start
    ]
    new_this_month = sum(1 for p in partners if p.created_at > this_month_start)
    new_last_month = sum(
        1 for p in partners
        if last_month_start < p.created_at <= this_month_start
    )

    # financeiro
    active_subs = [s for s in subscriptions if s.status == "active"]
    mrr = sum(float(s.monthly_revenue or 0) for s in active_subs)
    arpu = _ratio(mrr, len(active_partners))

    # catálogo
    total_products = len(products)
    plan_counts = Counter(s.plan for s in active_subs)
    total_subs = len(active_subs)
    plan_distribution: List[Dict[str, Any]] = [
        {
            "plan": plan,
            "count": count,
            "percentage": _ratio(count, total_subs) * 100,
        }
        for plan, count in sorted(plan_counts.items())
    ]

    return {
        "growth": {
            "total_partners_active": len(active_partners),
            "total_partners_registered": len(partners),
            "new_partners": new_this_month,
            "partners_last_month": new_last_month,
            "partner_growth_rate": growth_rate(new_last_month, new_this_month),
        },
        "financial": {
            "mrr": mrr,
            "arr": mrr * 12,
            "arpu": arpu,
            "churn_rate": assumptions.churn_rate,
            "ltv": arpu * assumptions.avg_retention_months,
            "cac": assumptions.cac,
            "payback": _ratio(assumptions.cac, arpu),
            "total_revenue": mrr,
            "churn_mrr": mrr * assumptions.churn_rate / 100,
            "profit_margin": assumptions.profit_margin,
        },
        "catalog": {
            "total_products": total_products,
            "avg_products_per_partner": _ratio(total_products, len(active_partners)),
            "plan_distribution": plan_distribution,
        },
    }


def load_kpis(
    db: Session,
    now: Optional[datetime] = None,
    assumptions: Optional[KpiAssumptions] = None,
) -> Dict[str, Dict[str, Any]]:
    partner_ids = select(models.UserRole.user_id).where(models.UserRole.role == ROLE_PARTNER)
    partners = (
        db.query(models.Profile)
        .filter(
            models.Profile.status == "active",
            models.Profile.id.in_(partner_ids),
        )
        .all()
    )
    subscriptions = db.query(models.PartnerSubscription).all()
    products = db.query(models.Product).all()

    return compute_kpis(
        partners,
        subscriptions,
        products,
        now or models.utcnow(),
        assumptions or KpiAssumptions.from_settings(),
    )
