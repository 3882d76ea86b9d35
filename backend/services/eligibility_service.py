"""
Service éligibilité : une promotion s'applique-t-elle à ce panier ?

Étapes (toutes obligatoires, aucun crédit partiel) :
  1. promo active et dans sa fenêtre [start_date, end_date]
  2. sous-total facturable >= min_order_amount
  3. au moins une ligne concernée (inclusions / exclusions)
  4. seuil propre au type, calculé sur les seules lignes concernées

Aucune exception : une règle mal formée rend simplement la promo inéligible.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from core.money import to_cents
from models.cart import CartLine, original_total_cents
from models.common import PromotionType
from models.promotion import Promotion

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_currently_valid(promotion: Promotion, now: Optional[datetime] = None) -> bool:
    """Drapeau is_active + fenêtre de dates ; une borne absente ne limite pas."""
    if not promotion.is_active:
        return False
    now = _as_utc(now or datetime.now(timezone.utc))
    if promotion.start_date and _as_utc(promotion.start_date) > now:
        return False
    if promotion.end_date and _as_utc(promotion.end_date) < now:
        return False
    return True


def is_product_applicable(
    promotion: Promotion,
    product_id: str,
    category_id: Optional[str] = None,
) -> bool:
    # Les exclusions priment toujours sur les inclusions
    if product_id in promotion.excluded_products:
        return False
    if category_id is not None and category_id in promotion.excluded_categories:
        return False

    if not promotion.applicable_products and not promotion.applicable_categories:
        return True
    if product_id in promotion.applicable_products:
        return True
    return category_id is not None and category_id in promotion.applicable_categories


def applicable_lines(promotion: Promotion, lines: List[CartLine]) -> List[CartLine]:
    return [l for l in lines if is_product_applicable(promotion, l.product_id, l.category_id)]


def is_well_formed(promotion: Promotion) -> bool:
    if promotion.rule.is_well_formed():
        return True
    logger.warning(f"Promo {promotion.promo_id} : règle {promotion.type.value} mal formée, ignorée")
    return False


# ── Seuils par type ───────────────────────────────────────────────────────────

def _buy_x_get_y_threshold(promotion: Promotion, lines: List[CartLine]) -> bool:
    buy = promotion.rule.buy_quantity
    return any(l.quantity >= buy for l in lines if not l.is_free_item)


def _quantity_discount_threshold(promotion: Promotion, lines: List[CartLine]) -> bool:
    total_qty = sum(l.quantity for l in lines if not l.is_free_item)
    return total_qty >= promotion.rule.min_quantity


def _cart_total_threshold(promotion: Promotion, lines: List[CartLine]) -> bool:
    return original_total_cents(lines) >= to_cents(promotion.rule.min_amount)


_THRESHOLDS: dict[PromotionType, Callable[[Promotion, List[CartLine]], bool]] = {
    PromotionType.BUY_X_GET_Y:       _buy_x_get_y_threshold,
    PromotionType.QUANTITY_DISCOUNT: _quantity_discount_threshold,
    PromotionType.CART_TOTAL:        _cart_total_threshold,
}


# ── Point d'entrée principal ──────────────────────────────────────────────────

def is_eligible(
    promotion: Promotion,
    lines: List[CartLine],
    now: Optional[datetime] = None,
) -> bool:
    if not is_currently_valid(promotion, now):
        return False
    if not is_well_formed(promotion):
        return False

    if original_total_cents(lines) < to_cents(promotion.min_order_amount):
        return False

    targets = applicable_lines(promotion, lines)
    if not targets:
        return False

    eligible = _THRESHOLDS[promotion.type](promotion, targets)
    logger.debug(f"Promo {promotion.promo_id} éligible={eligible} ({len(targets)} ligne(s) concernée(s))")
    return eligible


def eligible_promotions(
    catalog: List[Promotion],
    lines: List[CartLine],
    now: Optional[datetime] = None,
) -> List[Promotion]:
    """Filtre le catalogue en conservant son ordre."""
    return [p for p in catalog if is_eligible(p, lines, now)]
