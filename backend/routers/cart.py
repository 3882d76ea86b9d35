"""
Router panier : application des promotions sur un instantané de panier.
Rien n'est persisté ici : lignes, catalogue et historique d'usage viennent de
l'appelant, qui enregistre ensuite le résultat.
"""
from typing import List

from fastapi import APIRouter, Request
from pydantic import BaseModel

from config import settings
from core.exceptions import bad_request_exception, promotion_rejected_exception
from core.limiter import limiter
from models.cart import ApplyResult, CartSnapshot, CartView
from models.promotion import Promotion
from services.promotion_service import CartSession

router = APIRouter()


class ApplyPromotionRequest(CartSnapshot):
    code: str


class ApplyPromotionResponse(BaseModel):
    result: ApplyResult
    cart:   CartView


def check_catalog_size(catalog: List[Promotion]) -> None:
    if len(catalog) > settings.MAX_CATALOG_SIZE:
        raise bad_request_exception(
            f"Catalogue trop volumineux ({len(catalog)} > {settings.MAX_CATALOG_SIZE})"
        )


def _session_for_code(body: ApplyPromotionRequest) -> CartSession:
    check_catalog_size(body.catalog)
    if not body.code.strip():
        raise bad_request_exception("Veuillez saisir un code promo")
    return CartSession.from_snapshot(body)


@router.post("/evaluate", response_model=CartView, summary="Recalculer les promos du panier")
async def evaluate_cart(body: CartSnapshot):
    check_catalog_size(body.catalog)
    session = CartSession.from_snapshot(body)
    return session.view()


@router.post("/validate-code", response_model=ApplyResult, summary="Vérifier un code promo sans l'appliquer")
@limiter.limit(settings.APPLY_CODE_RATE_LIMIT)
async def validate_code(request: Request, body: ApplyPromotionRequest):
    session = _session_for_code(body)
    result = session.validate_code(body.code)
    if not result.success:
        raise promotion_rejected_exception(result.reason, result.message)
    return result


@router.post("/apply-promotion", response_model=ApplyPromotionResponse, summary="Appliquer un code promo")
@limiter.limit(settings.APPLY_CODE_RATE_LIMIT)
async def apply_promotion(request: Request, body: ApplyPromotionRequest):
    session = _session_for_code(body)
    result = session.apply_code(body.code)
    if not result.success:
        raise promotion_rejected_exception(result.reason, result.message)
    return ApplyPromotionResponse(result=result, cart=session.view())


@router.post("/remove-promotion", response_model=CartView, summary="Retirer le code promo")
async def remove_promotion(body: CartSnapshot):
    check_catalog_size(body.catalog)
    session = CartSession.from_snapshot(body)
    session.remove_manual()
    return session.view()


@router.post("/remove-all-promotions", response_model=CartView, summary="Retirer toutes les promos")
async def remove_all_promotions(body: CartSnapshot):
    check_catalog_size(body.catalog)
    session = CartSession.from_snapshot(body)
    session.remove_all()
    return session.view()
