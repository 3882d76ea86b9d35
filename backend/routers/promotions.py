"""
Router promotions : classement, badges produit, libellés.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from core.money import from_cents
from models.cart import CartSnapshot, UsageRecord
from models.promotion import Promotion
from routers.cart import check_catalog_size
from services.catalog_service import describe_promotion, promotions_for_product
from services.eligibility_service import is_eligible
from services.priority_service import rank
from services.reconciliation_service import raw_lines
from services.usage_service import consumed_promotions, is_usable

router = APIRouter()


class ProductPromotionsRequest(BaseModel):
    catalog:     List[Promotion]
    product_id:  str
    category_id: Optional[str] = None
    now:         Optional[datetime] = None


class DescribeRequest(BaseModel):
    catalog: List[Promotion]


def _summary(promotion: Promotion) -> dict:
    return {
        "promo_id":    promotion.promo_id,
        "code":        promotion.code,
        "title":       promotion.title,
        "type":        promotion.type.value,
        "auto_apply":  promotion.auto_apply,
        "description": describe_promotion(promotion),
    }


@router.post("/rank", summary="Promos éligibles classées pour ce panier")
async def rank_promotions(body: CartSnapshot):
    check_catalog_size(body.catalog)
    lines = raw_lines(body.lines)
    candidates = [
        p for p in body.catalog
        if is_eligible(p, lines, body.now) and is_usable(p, body.user_id, body.usage_records)
    ]
    ranked = rank(candidates, lines)
    return {
        "promotions": [
            {
                **_summary(r.promotion),
                "effective_priority": r.effective_priority,
                "savings":            from_cents(r.savings.monetary_cents),
                "free_units":         r.savings.free_quantity,
                "free_shipping":      r.savings.free_shipping,
            }
            for r in ranked
        ]
    }


@router.post("/for-product", summary="Promos applicables à un produit (badges)")
async def product_promotions(body: ProductPromotionsRequest):
    check_catalog_size(body.catalog)
    promos = promotions_for_product(body.catalog, body.product_id, body.category_id, body.now)
    return {"promotions": [_summary(p) for p in promos]}


@router.post("/describe", summary="Libellés des promotions")
async def describe_promotions(body: DescribeRequest):
    check_catalog_size(body.catalog)
    return {"descriptions": {p.promo_id: describe_promotion(p) for p in body.catalog}}


class ConsumedRequest(BaseModel):
    user_id:       str
    usage_records: List[UsageRecord] = []
    catalog:       List[Promotion] = []


@router.post("/consumed", summary="Promos déjà utilisées par un client")
async def user_consumed_promotions(body: ConsumedRequest):
    check_catalog_size(body.catalog)
    by_id = {p.promo_id: p for p in body.catalog}
    promotions = []
    for promo_id, count in consumed_promotions(body.user_id, body.usage_records).items():
        promotion = by_id.get(promo_id)
        entry = _summary(promotion) if promotion else {"promo_id": promo_id}
        promotions.append({**entry, "times_used": count})
    return {"promotions": promotions}
