"""
Service catalogue : libellés des promotions et promos affichables sur une fiche produit.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from config import settings
from models.common import PromotionType
from models.promotion import CartTotalRule, Promotion, QuantityDiscountRule
from services.eligibility_service import is_currently_valid, is_product_applicable

_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


def _number(value: Decimal) -> str:
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return str(value.quantize(Decimal("0.01")))


def _money(amount: Decimal) -> str:
    symbol = _CURRENCY_SYMBOLS.get(settings.CURRENCY)
    text = _number(amount)
    return f"{symbol}{text}" if symbol else f"{text} {settings.CURRENCY}"


def _discount_label(rule: Union[QuantityDiscountRule, CartTotalRule]) -> str:
    if rule.discount_amount > 0:
        return f"{_money(rule.discount_amount)} off"
    return f"{_number(rule.discount_percentage)}% off"


def describe_promotion(promotion: Promotion) -> str:
    rule = promotion.rule
    if not rule.is_well_formed():
        return promotion.description

    if promotion.type == PromotionType.BUY_X_GET_Y:
        if rule.same_item:
            return f"Buy {rule.buy_quantity} get {rule.get_quantity} free"
        return f"Buy {rule.buy_quantity} get {rule.get_quantity} {rule.free_item} free"

    if promotion.type == PromotionType.QUANTITY_DISCOUNT:
        return f"{_discount_label(rule)} when you buy {rule.min_quantity}+ items"

    if rule.discount_amount > 0 or rule.discount_percentage > 0:
        text = f"{_discount_label(rule)} on orders over {_money(rule.min_amount)}"
        return f"{text} + free shipping" if rule.free_shipping else text
    return f"Free shipping on orders over {_money(rule.min_amount)}"


def promotions_for_product(
    catalog: List[Promotion],
    product_id: str,
    category_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Promotion]:
    """Promos valides maintenant et dont le périmètre couvre ce produit (badges)."""
    return [
        p for p in catalog
        if is_currently_valid(p, now) and is_product_applicable(p, product_id, category_id)
    ]
