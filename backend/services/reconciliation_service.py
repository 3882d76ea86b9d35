"""
Service réconciliation : totaux du panier à partir des promos appliquées.

Ordre fixe : promos automatiques par position catalogue croissante, puis la
promo manuelle en dernier. Les unités offertes s'additionnent, plafonnées à
la quantité de la ligne ; la remise totale est plafonnée au sous-total.
Toujours recalculé depuis les lignes brutes : deux appels donnent le même résultat.
"""
import logging
from typing import Dict, List

from core.money import spread
from models.cart import (
    AppliedPromotion, CartLine, CartTotals, FreeUnit, Reconciliation, original_total_cents,
)
from models.promotion import Promotion
from services.discount_service import allocate_line_discounts, compute_savings

logger = logging.getLogger(__name__)


def raw_lines(lines: List[CartLine]) -> List[CartLine]:
    """Retire les annotations posées par une réconciliation précédente."""
    cleaned = []
    for line in lines:
        if line.granted_by:
            if line.is_free_item:
                continue  # ligne créée par une promo
            line = line.model_copy(update={"free_quantity": 0, "granted_by": [], "discount_cents": 0})
        elif line.discount_cents:
            line = line.model_copy(update={"discount_cents": 0})
        cleaned.append(line)
    return cleaned


def application_order(applied: List[AppliedPromotion]) -> List[AppliedPromotion]:
    return sorted(applied, key=lambda a: (not a.is_auto_applied, a.catalog_position))


def _grant(working: Dict[str, CartLine], order: List[str], unit: FreeUnit, promo_id: str) -> int:
    """Pose les unités offertes sur leur ligne ; retourne la quantité réellement accordée."""
    line = working.get(unit.line_id)
    if line is None:
        line = CartLine(
            line_id=unit.line_id,
            product_id=unit.product_id,
            category_id=unit.category_id,
            unit_price=0,
            quantity=0,
            is_free_item=True,
        )
        working[unit.line_id] = line
        order.append(unit.line_id)

    if line.is_free_item:
        line.quantity += unit.quantity
        granted = unit.quantity
    else:
        room = max(0, line.quantity - line.free_quantity)
        granted = min(unit.quantity, room)
        line.free_quantity += granted

    if granted and promo_id not in line.granted_by:
        line.granted_by.append(promo_id)
    return granted


def reconcile(
    lines: List[CartLine],
    applied: List[AppliedPromotion],
    promotions: Dict[str, Promotion],
) -> Reconciliation:
    base     = raw_lines(lines)
    original = original_total_cents(base)

    working = {l.line_id: l.model_copy(deep=True) for l in base}
    order   = [l.line_id for l in base]

    remaining     = original
    free_shipping = False
    result: List[AppliedPromotion] = []

    for entry in application_order(applied):
        promotion = promotions.get(entry.promo_id)
        if promotion is None:
            logger.warning(f"Promo {entry.promo_id} absente du catalogue, ignorée à la réconciliation")
            continue

        savings  = compute_savings(promotion, base)
        monetary = savings.monetary_cents
        weights: Dict[str, int] = {}

        for unit in savings.free_units:
            granted = _grant(working, order, unit, promotion.promo_id)
            # Unités déjà offertes par une autre promo : pas de double comptage
            monetary -= (unit.quantity - granted) * unit.unit_price_cents
            if granted and unit.unit_price_cents:
                weights[unit.line_id] = weights.get(unit.line_id, 0) + granted * unit.unit_price_cents

        effective = max(0, min(monetary, remaining))
        remaining -= effective

        if savings.free_units:
            shares = spread(effective, weights)
        else:
            shares = allocate_line_discounts(promotion, base, effective)
        for line_id, cents in shares.items():
            working[line_id].discount_cents += cents

        free_shipping = free_shipping or savings.free_shipping
        result.append(entry.model_copy(update={
            "discount_cents": effective,
            "free_shipping":  savings.free_shipping,
        }))

    final  = max(0, remaining)
    totals = CartTotals(
        original_total_cents=original,
        total_discount_cents=max(0, original - final),
        final_total_cents=final,
        free_shipping=free_shipping,
    )
    return Reconciliation(totals=totals, lines=[working[i] for i in order], applied=result)
