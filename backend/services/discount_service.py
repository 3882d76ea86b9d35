"""
Service remises : économies (centimes) et unités offertes d'une promotion.

  buyXGetY         → par ligne : sets = qté // buy ; offerts = sets × get
  quantityDiscount → une seule remise sur l'agrégat des lignes concernées
  cartTotal        → idem, base = prix × quantité avant toute autre promo

Le montant fixe l'emporte sur le pourcentage quand les deux sont renseignés.
Le résultat n'est jamais négatif ni supérieur à la valeur remisée.
L'éligibilité n'est pas revérifiée ici : c'est à l'appelant de le faire.
"""
from typing import Callable, Dict, List, Union

from core.money import percentage_of, spread, to_cents
from models.cart import CartLine, FreeUnit, Savings
from models.common import PromotionType
from models.promotion import CartTotalRule, Promotion, QuantityDiscountRule
from services.eligibility_service import applicable_lines


def _clamp(amount: int, ceiling: int) -> int:
    return max(0, min(amount, ceiling))


def _paid_lines(promotion: Promotion, lines: List[CartLine]) -> List[CartLine]:
    return [l for l in applicable_lines(promotion, lines) if not l.is_free_item]


def free_line_id(promo_id: str, product_id: str) -> str:
    return f"free_{promo_id}_{product_id}"


# ── Calculateurs ──────────────────────────────────────────────────────────────

def _buy_x_get_y_savings(promotion: Promotion, lines: List[CartLine]) -> Savings:
    rule    = promotion.rule
    targets = _paid_lines(promotion, lines)

    if rule.same_item:
        units, monetary = [], 0
        for line in targets:
            sets = line.quantity // rule.buy_quantity
            free = min(sets * rule.get_quantity, line.quantity - line.free_quantity)
            if free <= 0:
                continue
            units.append(FreeUnit(
                line_id=line.line_id,
                product_id=line.product_id,
                category_id=line.category_id,
                quantity=free,
                unit_price_cents=line.unit_price_cents,
            ))
            monetary += free * line.unit_price_cents
        return Savings(monetary_cents=max(0, monetary), free_units=units)

    # Produit offert distinct : les unités gratuites vont sur la ligne du free_item
    earned = sum((l.quantity // rule.buy_quantity) * rule.get_quantity for l in targets)
    if earned <= 0:
        return Savings()

    target = next(
        (l for l in lines if l.product_id == rule.free_item and not l.is_free_item),
        None,
    )
    if target is None:
        unit = FreeUnit(
            line_id=free_line_id(promotion.promo_id, rule.free_item),
            product_id=rule.free_item,
            quantity=earned,
            unit_price_cents=0,
            creates_line=True,
        )
        return Savings(monetary_cents=0, free_units=[unit])

    free = _clamp(earned, target.quantity - target.free_quantity)
    if free == 0:
        return Savings()
    unit = FreeUnit(
        line_id=target.line_id,
        product_id=target.product_id,
        category_id=target.category_id,
        quantity=free,
        unit_price_cents=target.unit_price_cents,
    )
    return Savings(monetary_cents=free * target.unit_price_cents, free_units=[unit])


def _aggregate_discount(rule: Union[QuantityDiscountRule, CartTotalRule], base_cents: int) -> int:
    if rule.discount_amount > 0:
        amount = to_cents(rule.discount_amount)
    else:
        amount = percentage_of(base_cents, rule.discount_percentage)
    return _clamp(amount, base_cents)


def _quantity_discount_savings(promotion: Promotion, lines: List[CartLine]) -> Savings:
    base = sum(l.chargeable_cents for l in _paid_lines(promotion, lines))
    return Savings(monetary_cents=_aggregate_discount(promotion.rule, base))


def _cart_total_savings(promotion: Promotion, lines: List[CartLine]) -> Savings:
    base = sum(l.unit_price_cents * l.quantity for l in _paid_lines(promotion, lines))
    return Savings(
        monetary_cents=_aggregate_discount(promotion.rule, base),
        free_shipping=promotion.rule.free_shipping,
    )


_CALCULATORS: dict[PromotionType, Callable[[Promotion, List[CartLine]], Savings]] = {
    PromotionType.BUY_X_GET_Y:       _buy_x_get_y_savings,
    PromotionType.QUANTITY_DISCOUNT: _quantity_discount_savings,
    PromotionType.CART_TOTAL:        _cart_total_savings,
}


# ── Point d'entrée principal ──────────────────────────────────────────────────

def compute_savings(promotion: Promotion, lines: List[CartLine]) -> Savings:
    if not promotion.rule.is_well_formed():
        return Savings()
    return _CALCULATORS[promotion.type](promotion, lines)


def allocate_line_discounts(
    promotion: Promotion,
    lines: List[CartLine],
    monetary_cents: int,
) -> Dict[str, int]:
    """
    Répartit une remise agrégée entre les lignes concernées, au prorata de
    leur valeur facturable. Plus forts restes : la somme des parts est exacte.
    """
    weights = {l.line_id: l.chargeable_cents for l in _paid_lines(promotion, lines)}
    return spread(monetary_cents, weights)
