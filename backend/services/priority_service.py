"""
Service priorité : classement des promotions éligibles.
Clé 1 : priorité effective (champ priority, sinon repli par type), décroissante.
Clé 2 : économies calculées, décroissantes. Ordre du catalogue pour les égalités.
"""
from typing import Iterable, List, Optional

from models.cart import CartLine, RankedPromotion
from models.common import PromotionType
from models.promotion import Promotion
from services.discount_service import compute_savings

TYPE_FALLBACK_PRIORITY: dict[PromotionType, int] = {
    PromotionType.CART_TOTAL:        3,
    PromotionType.BUY_X_GET_Y:       2,
    PromotionType.QUANTITY_DISCOUNT: 1,
}


def effective_priority(promotion: Promotion) -> int:
    if promotion.priority is not None:
        return promotion.priority
    return TYPE_FALLBACK_PRIORITY.get(promotion.type, 0)


def rank(promotions: Iterable[Promotion], lines: List[CartLine]) -> List[RankedPromotion]:
    ranked = [
        RankedPromotion(
            promotion=p,
            effective_priority=effective_priority(p),
            savings=compute_savings(p, lines),
        )
        for p in promotions
    ]
    # sorted() est stable : l'ordre du catalogue départage les égalités exactes
    return sorted(
        ranked,
        key=lambda r: (r.effective_priority, r.savings.monetary_cents),
        reverse=True,
    )


def suggest_code(ranked: List[RankedPromotion], exclude_ids: Iterable[str] = ()) -> str:
    """Premier code saisissable du classement, hors promos déjà appliquées."""
    excluded = set(exclude_ids)
    best: Optional[RankedPromotion] = next(
        (r for r in ranked if r.promotion.code and r.promotion.promo_id not in excluded),
        None,
    )
    return best.promotion.code if best else ""
