from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile
from sqlalchemy.orm import Session

from modcar import models, schemas
from modcar.database import get_db
from modcar.dependencies import (
    SessionContext,
    check_product_limit,
    get_partner_subscription,
    refresh_products_count,
    require_partner,
)
from modcar.routers.moderation import parse_campaign_form, store_campaign_image
from modcar.services import approvals
from modcar.services import product_import
from modcar.services import stock as stock_service
from modcar.services.plan_catalog import as_public_dict, get_plan, upgrade_options
from modcar.services.reports import partner_dashboard
from modcar.services.storage import BUCKET_PRODUCT_IMAGES, StorageClient, StorageError, get_storage

router = APIRouter(prefix="/partner", tags=["Parceiro"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _get_own_product(db: Session, ctx: SessionContext, product_id: str) -> models.Product:
    product = db.get(models.Product, product_id)
    # produto de outro parceiro = inexistente
    if not product or product.partner_id != ctx.identity_id:
        raise HTTPException(status_code=404, detail="Produto não encontrado.")
    return product


def _code_taken(db: Session, partner_id: str, code: str) -> bool:
    return (
        db.query(models.Product.id)
        .filter(models.Product.partner_id == partner_id, models.Product.code == code)
        .first()
        is not None
    )


# ============================================================
# PRODUTOS
# ============================================================
@router.get("/products", response_model=List[schemas.ProductOut])
def list_products(
    status: Optional[str] = Query(default=None, pattern="^(pending|active|inactive|rejected)$"),
    search: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
):
    query = db.query(models.Product).filter(models.Product.partner_id == ctx.identity_id)
    if status:
        query = query.filter(models.Product.status == status)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(models.Product.name.ilike(term) | models.Product.code.ilike(term))
    return [schemas.product_out(p, ctx.name) for p in query.order_by(models.Product.created_at.desc()).all()]


@router.post("/products", response_model=schemas.ProductOut, status_code=201)
def create_product(
    payload: schemas.ProductCreate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
):
    check_product_limit(db, ctx.identity_id)

    if _code_taken(db, ctx.identity_id, payload.code):
        raise HTTPException(status_code=409, detail=f"Código {payload.code} já cadastrado.")

    data = payload.model_dump()
    product = models.Product(
        partner_id=ctx.identity_id,
        status="pending",
        images=[],
        **data,
    )
    db.add(product)
    db.flush()
    refresh_products_count(db, ctx.identity_id)
    db.commit()
    db.refresh(product)
    return schemas.product_out(product, ctx.name)


# antes de /products/{product_id}
@router.get("/products/template")
def download_import_template(ctx: SessionContext = Depends(require_partner)):
    return Response(
        content=product_import.build_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="modelo-produtos.xlsx"'},
    )


@router.post("/products/import", response_model=schemas.ImportResult)
def import_products(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
):
    try:
        plan = product_import.prepare_import(db, ctx.identity_id, file.filename or "", file.file.read())
    except product_import.ImportValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if plan.valid:
        check_product_limit(db, ctx.identity_id, adding=len(plan.valid))
        product_import.commit_import(db, ctx.identity_id, plan)
        refresh_products_count(db, ctx.identity_id)
        db.commit()

    return schemas.ImportResult(
        total_rows=plan.total_rows,
        imported=len(plan.valid),
        errors=[schemas.ImportRowError(**e) for e in plan.errors],
    )


@router.get("/products/{product_id}", response_model=schemas.ProductOut)
def get_product(
    product_id: str,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
):
    return schemas.product_out(_get_own_product(db, ctx, product_id), ctx.name)


@router.patch("/products/{product_id}", response_model=schemas.ProductOut)
def update_product(
    product_id: str,
    payload: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
):
    product = _get_own_product(db, ctx, product_id)

    data = payload.model_dump(exclude_unset=True)
    for field, value in data.items():
        setattr(product, field, value)

    db.add(product)
    db.commit()
    db.refresh(product)
    return schemas.product_out(product, ctx.name)


@router.delete("/products/{product_id}", status_code=204)
def delete_product(
    product_id: str,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
):
    product = _get_own_product(db, ctx, product_id)
    db.delete(product)
    db.flush()
    refresh_products_count(db, ctx.identity_id)
    db.commit()
    return None


@router.post("/products/{product_id}/images", response_model=schemas.ProductOut)
def upload_product_image(
    product_id: str,
    image: UploadFile = File(...),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
    storage: StorageClient = Depends(get_storage),
):
    product = _get_own_product(db, ctx, product_id)
    try:
        url = storage.upload(
            BUCKET_PRODUCT_IMAGES,
            ctx.identity_id,
            image.filename or "imagem",
            image.file.read(),
            image.content_type,
        )
    except StorageError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    # lista nova para o SQLAlchemy detectar a mudança no JSON
    product.images = [*(product.images or []), url]
    db.add(product)
    db.commit()
    db.refresh(product)
    return schemas.product_out(product, ctx.name)


@router.post("/products/{product_id}/stock")
def adjust_stock(
    product_id: str,
    payload: schemas.StockAdjust,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
):
    try:
        return stock_service.adjust_partner_stock(
            db, ctx.identity_id, product_id, payload.quantity_change, payload.notes
        )
    except stock_service.StockSyncError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc))


# ============================================================
# ANÚNCIOS
# ============================================================
@router.get("/campaigns", response_model=List[schemas.CampaignOut])
def list_campaigns(
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
):
    campaigns = (
        db.query(models.Campaign)
        .filter(models.Campaign.partner_id == ctx.identity_id)
        .order_by(models.Campaign.created_at.desc())
        .all()
    )
    return [schemas.campaign_out(c, ctx.name) for c in campaigns]


@router.post("/campaigns", response_model=schemas.CampaignOut, status_code=201)
def create_campaign(
    title: str = Form(...),
    start_date: date = Form(...),
    end_date: date = Form(...),
    description: Optional[str] = Form(default=None),
    link_url: Optional[str] = Form(default=None),
    image: UploadFile = File(...),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
    storage: StorageClient = Depends(get_storage),
):
    fields = parse_campaign_form(
        schemas.CampaignFields,
        title=title,
        description=description,
        link_url=link_url,
        start_date=start_date,
        end_date=end_date,
    )

    campaign = models.Campaign(
        partner_id=ctx.identity_id,
        title=fields.title,
        description=fields.description,
        link_url=fields.link_url,
        start_date=fields.start_date,
        end_date=fields.end_date,
        status=approvals.PENDING,
        image_url=store_campaign_image(storage, ctx.identity_id, image),
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    return schemas.campaign_out(campaign, ctx.name)


@router.delete("/campaigns/{campaign_id}", status_code=204)
def delete_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
):
    try:
        approvals.delete_pending_campaign(db, ctx, campaign_id)
    except approvals.NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except approvals.ApprovalConflict as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return None


# ============================================================
# CONFIGURAÇÕES / PAINEL
# ============================================================
@router.get("/settings")
def partner_settings(
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
):
    subscription = get_partner_subscription(db, ctx.identity_id)
    if not subscription:
        raise HTTPException(status_code=404, detail="Assinatura não encontrada.")

    profile = db.get(models.Profile, ctx.identity_id)
    plan = get_plan(subscription.plan)
    return {
        "profile": {
            "name": profile.name if profile else None,
            "email": ctx.email,
            "company": profile.company if profile else None,
            "phone": profile.phone if profile else None,
        },
        "subscription": {
            "plan": plan.id,
            "status": subscription.status,
            "start_date": subscription.start_date,
            "renewal_date": subscription.renewal_date,
            "monthly_revenue": float(subscription.monthly_revenue or 0),
            "products_count": subscription.products_count,
            "users_count": subscription.users_count,
        },
        "plan": as_public_dict(plan),
        "upgrade_options": [as_public_dict(p) for p in upgrade_options(plan.id)],
    }


@router.get("/dashboard")
def dashboard(
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_partner),
):
    return partner_dashboard(db, ctx.identity_id)
