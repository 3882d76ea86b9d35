from datetime import datetime, timedelta, timezone
from decimal import Decimal

from models.cart import CartLine, UsageRecord
from models.promotion import Promotion

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_promotion(promo_id: str, rule: dict, **overrides) -> Promotion:
    data = {
        "promo_id":   promo_id,
        "title":      promo_id,
        "rule":       rule,
        "start_date": NOW - timedelta(days=30),
        "end_date":   NOW + timedelta(days=30),
    }
    data.update(overrides)
    return Promotion(**data)


def buy_x_get_y(buy: int, get: int, same_item: bool = True, free_item: str = None) -> dict:
    return {"type": "buyXGetY", "buy_quantity": buy, "get_quantity": get,
            "same_item": same_item, "free_item": free_item}


def quantity_discount(min_quantity: int, percentage="0", amount="0") -> dict:
    return {"type": "quantityDiscount", "min_quantity": min_quantity,
            "discount_percentage": percentage, "discount_amount": amount}


def cart_total(min_amount="0", percentage="0", amount="0", free_shipping: bool = False) -> dict:
    return {"type": "cartTotal", "min_amount": min_amount, "discount_percentage": percentage,
            "discount_amount": amount, "free_shipping": free_shipping}


def make_line(line_id: str, price: str, quantity: int, product_id: str = None,
              category_id: str = None, **overrides) -> CartLine:
    return CartLine(
        line_id=line_id,
        product_id=product_id or f"prod_{line_id}",
        category_id=category_id,
        unit_price=Decimal(price),
        quantity=quantity,
        **overrides,
    )


def usage(promo_id: str, user_id: str, count: int = 1) -> list:
    return [UsageRecord(promo_id=promo_id, user_id=user_id, order_id=f"ord_{i}") for i in range(count)]
