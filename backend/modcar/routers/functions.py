"""
Endpoints no formato das "functions" serverless consumidas pelo painel
e por integrações externas (ERP). Mantêm os formatos de resposta
originais: ``{success, ...}`` ou ``{error}`` em vez do ``detail`` padrão.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from modcar import schemas
from modcar.config import settings
from modcar.database import get_db
from modcar.dependencies import (
    AuthorizationError,
    SessionContext,
    extract_bearer_token,
    load_session_context,
)
from modcar.services.email import EmailError, dispatch_welcome_email, send_welcome_email
from modcar.services.identity import InvalidCredentialsError, decode_token
from modcar.services.provisioning import ProvisioningError, provision_partner
from modcar.services.stock import StockSyncError, sync_stock_from_erp

logger = logging.getLogger("modcar.functions")

router = APIRouter(prefix="/functions/v1", tags=["Functions"])


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    field = ".".join(str(p) for p in err.get("loc", ()))
    return f"{field}: {err.get('msg')}" if field else str(err.get("msg"))


# ============================================================
# 🔐 SESSÃO (bearer obrigatório nas operações privilegiadas)
# ============================================================
def _session_from_request(db: Session, request: Request) -> SessionContext:
    token = extract_bearer_token(request)
    try:
        return load_session_context(db, decode_token(token)["sub"])
    except InvalidCredentialsError:
        raise HTTPException(status_code=401, detail="Token inválido")


# ============================================================
# 🔐 SEGREDO DO ERP
# ============================================================
def _verify_erp_token(x_erp_token: Optional[str]) -> None:
    secret = settings.ERP_SYNC_TOKEN
    if secret:
        if not x_erp_token or x_erp_token != secret:
            raise HTTPException(status_code=403, detail="Integração ERP não autorizada")


# ============================================================
# POST /functions/v1/create-partner
# ============================================================
@router.post("/create-partner")
def create_partner_function(
    request: Request,
    background_tasks: BackgroundTasks,
    body: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    try:
        ctx = _session_from_request(db, request)
        payload = schemas.PartnerCreate.model_validate(body)
        partner = provision_partner(db, ctx, payload)
    except HTTPException as exc:
        return JSONResponse(status_code=400, content={"success": False, "error": exc.detail})
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"success": False, "error": _first_error(exc)})
    except (AuthorizationError, ProvisioningError) as exc:
        logger.error("create-partner failed: %s", exc)
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    background_tasks.add_task(
        dispatch_welcome_email,
        email=partner["email"],
        name=partner["name"],
        company_name=partner["company"],
        plan=partner["plan"],
    )
    return {"success": True, "partner": partner}


# ============================================================
# POST /functions/v1/send-welcome-email
# ============================================================
@router.post("/send-welcome-email")
def send_welcome_email_function(
    request: Request,
    payload: schemas.WelcomeEmailRequest,
    db: Session = Depends(get_db),
):
    try:
        _session_from_request(db, request)
    except HTTPException as exc:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    try:
        return send_welcome_email(
            email=payload.email,
            name=payload.name,
            company_name=payload.companyName,
            plan=payload.plan,
        )
    except EmailError as exc:
        logger.error("send-welcome-email failed: %s", exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})


# ============================================================
# POST /functions/v1/sync-stock-erp
# ============================================================
@router.post("/sync-stock-erp")
def sync_stock_erp_function(
    payload: schemas.StockSyncRequest,
    x_erp_token: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    _verify_erp_token(x_erp_token)

    try:
        return sync_stock_from_erp(
            db,
            payload.product_code,
            payload.quantity_change,
            payload.erp_reference,
            payload.notes,
        )
    except StockSyncError as exc:
        logger.warning("sync-stock-erp failed code=%s: %s", payload.product_code, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})
