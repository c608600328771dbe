from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from ..config import TEMPLATES_DIR, settings
from ..database import get_db
from .. import models, schemas
from .admin import run_provisioning
from ..services.identity import normalize_email
from ..services.plan_catalog import UnknownPlanError, as_public_dict, get_plan, list_plans

router = APIRouter(tags=["Público"])

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def _plan_or_404(plan_id: str):
    try:
        return get_plan(plan_id)
    except UnknownPlanError:
        raise HTTPException(status_code=404, detail="Plano não encontrado.")


# ============================================================
# PLANOS / LANDING
# ============================================================
@router.get("/plans")
def public_plans():
    return [as_public_dict(p) for p in list_plans()]


@router.get("/ui", response_class=HTMLResponse)
def landing(request: Request):
    return templates.TemplateResponse(
        request,
        "landing.html",
        {
            "app_name": settings.APP_NAME,
            "plans": [as_public_dict(p) for p in list_plans()],
        },
    )


# ============================================================
# CHECKOUT (SIMULADO)
# ============================================================
@router.get("/checkout/{plan_id}")
def checkout_summary(plan_id: str):
    return as_public_dict(_plan_or_404(plan_id))


@router.post("/checkout/{plan_id}")
def checkout(plan_id: str, payload: schemas.CheckoutRequest):
    """
    Ambiente de demonstração: nenhum dado de cartão é processado
    nem armazenado. Só confirma e manda para o cadastro.
    """
    plan = _plan_or_404(plan_id)
    return {
        "success": True,
        "message": "Pagamento processado com sucesso!",
        "plan": plan.id,
        "amount_brl": as_public_dict(plan)["price_brl"],
        "card_last4": payload.card_number[-4:],
        "next": f"/signup?plan={plan.id}",
    }


# ============================================================
# CADASTRO DO PARCEIRO (2 etapas)
# ============================================================
@router.post("/signup/validate/personal")
def validate_personal(payload: schemas.SignupPersonal, db: Session = Depends(get_db)):
    taken = (
        db.query(models.Identity.id)
        .filter(models.Identity.email == normalize_email(payload.email))
        .first()
    )
    if taken:
        raise HTTPException(status_code=409, detail="Já existe um usuário registrado com este email")
    return {"valid": True, "next_step": 2}


@router.post("/signup", status_code=201)
def signup(
    payload: schemas.SignupRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    partner_data = schemas.PartnerCreate(
        name=payload.personal.name,
        email=payload.personal.email,
        company=payload.company.companyName,
        password=payload.personal.password,
        plan=payload.plan,
    )
    partner = run_provisioning(db, None, partner_data, background_tasks, self_signup=True)

    profile = db.get(models.Profile, partner["id"])
    if profile:
        profile.cpf = payload.personal.cpf
        profile.phone = payload.personal.phone
        profile.address = payload.company.address
        db.add(profile)
        db.commit()

    return {
        "success": True,
        "partner": partner,
        "next": "/signup/success",
    }


@router.get("/signup/success")
def signup_success():
    return {
        "title": "Cadastro realizado com sucesso!",
        "message": "Enviamos um email de boas-vindas. Use seu email e senha para acessar o painel.",
        "next": "/auth/login",
    }
