from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta


# ============================================================
# PLANOS OFICIAIS (IDs canônicos)
# ============================================================
PLAN_TURBO = "turbo"
PLAN_V6 = "v6"
PLAN_V12 = "v12"

ALL_PLANS = {PLAN_TURBO, PLAN_V6, PLAN_V12}

UNLIMITED = -1


class UnknownPlanError(ValueError):
    pass


# ============================================================
# MODELO DO CATÁLOGO
# ============================================================
@dataclass(frozen=True)
class Plan:
    """
    Catálogo único de planos (fonte da verdade).
    - price_brl_cents: mensalidade em centavos (BRL).
    - max_products / max_users: cota; -1 = ilimitado.
    - features: lista para UI (checkout/página de preços/upgrade).
    """
    id: str
    name: str
    price_brl_cents: int
    max_products: int
    max_users: int
    color: str
    icon: str
    features: List[str] = field(default_factory=list)


# ============================================================
# CATÁLOGO
# ============================================================
_CATALOG: Dict[str, Plan] = {
    PLAN_TURBO: Plan(
        id=PLAN_TURBO,
        name="Turbo",
        price_brl_cents=9990,
        max_products=100,
        max_users=2,
        color="text-blue-600",
        icon="🚗",
        features=[
            "Até 100 produtos",
            "2 usuários",
            "Importação de planilhas",
            "Suporte por email",
        ],
    ),
    PLAN_V6: Plan(
        id=PLAN_V6,
        name="V6",
        price_brl_cents=24990,
        max_products=500,
        max_users=5,
        color="text-orange-600",
        icon="🏎️",
        features=[
            "Até 500 produtos",
            "5 usuários",
            "Importação de planilhas",
            "API de integração",
            "Suporte prioritário",
            "Relatórios avançados",
        ],
    ),
    PLAN_V12: Plan(
        id=PLAN_V12,
        name="V12",
        price_brl_cents=49990,
        max_products=UNLIMITED,
        max_users=UNLIMITED,
        color="text-primary",
        icon="🏁",
        features=[
            "Produtos ilimitados",
            "Usuários ilimitados",
            "Importação de planilhas",
            "API de integração",
            "Suporte 24/7",
            "Relatórios avançados",
            "Gerente de conta dedicado",
            "Customizações",
        ],
    ),
}

_ORDER = {PLAN_TURBO: 0, PLAN_V6: 1, PLAN_V12: 2}


# ============================================================
# HELPERS (API interna do catálogo)
# ============================================================
def normalize_plan(plan: Optional[str]) -> str:
    return str(plan or "").strip().lower()


def is_valid_plan(plan: Optional[str]) -> bool:
    return normalize_plan(plan) in ALL_PLANS


def get_plan(plan: Optional[str]) -> Plan:
    p = normalize_plan(plan)
    if p not in _CATALOG:
        raise UnknownPlanError(f"Plano inválido. Use: {', '.join(sorted(ALL_PLANS, key=_ORDER.get))}")
    return _CATALOG[p]


def list_plans() -> List[Plan]:
    # ordem fixa para UI
    return sorted(_CATALOG.values(), key=lambda x: _ORDER[x.id])


def price_brl(plan: Plan) -> float:
    return plan.price_brl_cents / 100.0


def is_unlimited(quota: int) -> bool:
    return quota == UNLIMITED


def format_quota(quota: int) -> str:
    if is_unlimited(quota):
        return "Ilimitado"
    return str(quota)


def calc_renewal_date(start_at: datetime, years: int = 1) -> datetime:
    """
    Renovação anual por calendário: 365 ou 366 dias conforme o ano.
    """
    return start_at + relativedelta(years=years)


def upgrade_options(current: Optional[str]) -> List[Plan]:
    current_plan = get_plan(current)
    return [p for p in list_plans() if _ORDER[p.id] > _ORDER[current_plan.id]]


def as_public_dict(plan: Plan) -> Dict[str, Any]:
    """
    Para UI/checkout: cotas já formatadas, nunca negativas.
    """
    return {
        "id": plan.id,
        "name": plan.name,
        "price_brl_cents": plan.price_brl_cents,
        "price_brl": price_brl(plan),
        "max_products": plan.max_products,
        "max_users": plan.max_users,
        "max_products_label": format_quota(plan.max_products),
        "max_users_label": format_quota(plan.max_users),
        "features": list(plan.features),
        "color": plan.color,
        "icon": plan.icon,
    }
