from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from modcar import models, schemas
from modcar.database import get_db
from modcar.dependencies import ROLE_PARTNER, AuthorizationError, SessionContext, require_admin
from modcar.routers.admin import profiles_by_id
from modcar.services import approvals
from modcar.services.storage import BUCKET_CAMPAIGN_IMAGES, StorageClient, StorageError, get_storage

router = APIRouter(prefix="/admin", tags=["Moderação"])


def _moderate(action, *args):
    """
    Traduz os erros do serviço de aprovação para HTTP.
    """
    try:
        return action(*args)
    except AuthorizationError as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    except approvals.NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except approvals.ApprovalConflict as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def parse_campaign_form(model, **data):
    try:
        return model(**data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())


def store_campaign_image(storage: StorageClient, owner_id: str, image: UploadFile) -> str:
    try:
        return storage.upload(
            BUCKET_CAMPAIGN_IMAGES,
            owner_id,
            image.filename or "imagem",
            image.file.read(),
            image.content_type,
        )
    except StorageError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


# ============================================================
# PRODUTOS
# ============================================================
@router.get("/products", response_model=List[schemas.ProductOut])
def list_products(
    status: Optional[str] = Query(default=None, pattern="^(pending|active|inactive|rejected)$"),
    search: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    query = db.query(models.Product)
    if status:
        query = query.filter(models.Product.status == status)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(models.Product.name.ilike(term) | models.Product.code.ilike(term))

    products = query.order_by(models.Product.created_at.desc()).all()
    profiles = profiles_by_id(db, [p.partner_id for p in products])
    return [
        schemas.product_out(p, profiles[p.partner_id].name if p.partner_id in profiles else None)
        for p in products
    ]


@router.post("/products/{product_id}/approve", response_model=schemas.ProductOut)
def approve_product(
    product_id: str,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    return schemas.product_out(_moderate(approvals.approve_product, db, ctx, product_id))


@router.post("/products/{product_id}/reject", response_model=schemas.ProductOut)
def reject_product(
    product_id: str,
    payload: schemas.RejectRequest,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    return schemas.product_out(
        _moderate(approvals.reject_product, db, ctx, product_id, payload.reason)
    )


# ============================================================
# ANÚNCIOS
# ============================================================
@router.get("/campaigns", response_model=List[schemas.CampaignOut])
def list_campaigns(
    status: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    campaigns = db.query(models.Campaign).order_by(models.Campaign.created_at.desc()).all()
    profiles = profiles_by_id(db, [c.partner_id for c in campaigns])

    items = [
        schemas.campaign_out(c, profiles[c.partner_id].name if c.partner_id in profiles else None)
        for c in campaigns
    ]
    if status:
        # "expired" só existe na leitura
        items = [c for c in items if c.status == status]
    return items


@router.post("/campaigns", response_model=schemas.CampaignOut, status_code=201)
def create_campaign(
    partner_id: str = Form(...),
    title: str = Form(...),
    start_date: date = Form(...),
    end_date: date = Form(...),
    description: Optional[str] = Form(default=None),
    link_url: Optional[str] = Form(default=None),
    status: str = Form(default="approved"),
    image: UploadFile = File(...),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
    storage: StorageClient = Depends(get_storage),
):
    fields = parse_campaign_form(
        schemas.AdminCampaignFields,
        partner_id=partner_id,
        title=title,
        description=description,
        link_url=link_url,
        start_date=start_date,
        end_date=end_date,
        status=status,
    )

    is_partner = (
        db.query(models.UserRole)
        .filter(models.UserRole.user_id == fields.partner_id, models.UserRole.role == ROLE_PARTNER)
        .first()
    )
    if not is_partner:
        raise HTTPException(status_code=404, detail="Parceiro não encontrado.")

    campaign = models.Campaign(
        partner_id=fields.partner_id,
        title=fields.title,
        description=fields.description,
        link_url=fields.link_url,
        start_date=fields.start_date,
        end_date=fields.end_date,
        status=fields.status,
        image_url=store_campaign_image(storage, fields.partner_id, image),
    )
    if fields.status != approvals.PENDING:
        campaign.approved_by = ctx.identity_id
        campaign.approved_at = models.utcnow()

    db.add(campaign)
    db.commit()
    db.refresh(campaign)

    profile = db.get(models.Profile, campaign.partner_id)
    return schemas.campaign_out(campaign, profile.name if profile else None)


@router.post("/campaigns/{campaign_id}/approve", response_model=schemas.CampaignOut)
def approve_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    return schemas.campaign_out(_moderate(approvals.approve_campaign, db, ctx, campaign_id))


@router.post("/campaigns/{campaign_id}/reject", response_model=schemas.CampaignOut)
def reject_campaign(
    campaign_id: str,
    payload: schemas.RejectRequest,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    return schemas.campaign_out(
        _moderate(approvals.reject_campaign, db, ctx, campaign_id, payload.reason)
    )
