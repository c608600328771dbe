from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from modcar import models

logger = logging.getLogger("modcar.stock")

MOVEMENT_ERP_SYNC = "erp_sync"
MOVEMENT_MANUAL = "manual"


class StockSyncError(Exception):
    status_code = 400


class ProductNotFound(StockSyncError):
    status_code = 404


class AmbiguousProductCode(StockSyncError):
    status_code = 409


class StockUpdateError(StockSyncError):
    status_code = 400


# ============================================================
# ATUALIZAÇÃO ATÔMICA (estoque + movimento na mesma transação)
# ============================================================
def update_product_stock(
    db: Session,
    product_id: str,
    quantity_change: int,
    movement_type: str,
    reference_id: Optional[str] = None,
    notes: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    product = db.get(models.Product, product_id)
    if not product:
        raise ProductNotFound("Product not found")

    previous_stock = product.stock or 0
    new_stock = previous_stock + quantity_change
    if new_stock < 0:
        raise StockUpdateError(
            f"Estoque insuficiente: atual {previous_stock}, alteração {quantity_change}"
        )

    movement = models.StockMovement(
        product_id=product.id,
        movement_type=movement_type,
        quantity_change=quantity_change,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reference_id=reference_id,
        notes=notes,
        user_id=user_id,
    )
    product.stock = new_stock

    try:
        db.add(product)
        db.add(movement)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(movement)

    logger.info(
        "stock updated product=%s %s -> %s type=%s",
        product.id, previous_stock, new_stock, movement_type,
    )
    return {
        "success": True,
        "product_id": product.id,
        "movement_id": movement.id,
        "previous_stock": previous_stock,
        "new_stock": new_stock,
        "quantity_change": quantity_change,
    }


# ============================================================
# ERP
# ============================================================
def find_product_by_code(db: Session, product_code: str) -> models.Product:
    matches = (
        db.query(models.Product)
        .filter(models.Product.code == (product_code or "").strip())
        .limit(2)
        .all()
    )
    if not matches:
        raise ProductNotFound("Product not found")
    if len(matches) > 1:
        # código só é único por parceiro
        raise AmbiguousProductCode(f"Código {product_code} pertence a mais de um parceiro")
    return matches[0]


def sync_stock_from_erp(
    db: Session,
    product_code: str,
    quantity_change: int,
    erp_reference: str,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    logger.info(
        "stock sync request code=%s change=%s ref=%s",
        product_code, quantity_change, erp_reference,
    )
    product = find_product_by_code(db, product_code)

    result = update_product_stock(
        db,
        product.id,
        quantity_change,
        MOVEMENT_ERP_SYNC,
        reference_id=erp_reference,
        notes=notes or f"ERP sync from reference: {erp_reference}",
        user_id=None,
    )
    return {
        "success": True,
        "product": {"id": product.id, "name": product.name, "code": product.code},
        "stock_update": result,
    }


def adjust_partner_stock(
    db: Session,
    partner_id: str,
    product_id: str,
    quantity_change: int,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    product = db.get(models.Product, product_id)
    if not product or product.partner_id != partner_id:
        raise ProductNotFound("Produto não encontrado.")

    return update_product_stock(
        db,
        product.id,
        quantity_change,
        MOVEMENT_MANUAL,
        notes=notes,
        user_id=partner_id,
    )
