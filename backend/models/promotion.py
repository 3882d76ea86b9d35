from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from models.common import PromotionType


class BuyXGetYRule(BaseModel):
    type:         Literal["buyXGetY"] = "buyXGetY"
    buy_quantity: int  = 0
    get_quantity: int  = 0
    same_item:    bool = True
    free_item:    Optional[str] = None   # product_id offert si same_item=False

    def is_well_formed(self) -> bool:
        if self.buy_quantity <= 0 or self.get_quantity <= 0:
            return False
        return self.same_item or bool(self.free_item)


class QuantityDiscountRule(BaseModel):
    type:                Literal["quantityDiscount"] = "quantityDiscount"
    min_quantity:        int     = 0
    discount_percentage: Decimal = Decimal("0")
    discount_amount:     Decimal = Decimal("0")

    def is_well_formed(self) -> bool:
        if self.min_quantity <= 0:
            return False
        if self.discount_percentage < 0 or self.discount_amount < 0:
            return False
        return self.discount_percentage > 0 or self.discount_amount > 0


class CartTotalRule(BaseModel):
    type:                Literal["cartTotal"] = "cartTotal"
    min_amount:          Decimal = Decimal("0")
    discount_percentage: Decimal = Decimal("0")
    discount_amount:     Decimal = Decimal("0")
    free_shipping:       bool    = False

    def is_well_formed(self) -> bool:
        if self.min_amount < 0 or self.discount_percentage < 0 or self.discount_amount < 0:
            return False
        return self.discount_percentage > 0 or self.discount_amount > 0 or self.free_shipping


PromotionRule = Annotated[
    Union[BuyXGetYRule, QuantityDiscountRule, CartTotalRule],
    Field(discriminator="type"),
]


class Promotion(BaseModel):
    promo_id:    str = Field(default_factory=lambda: f"promo_{uuid4().hex[:12]}")
    code:        Optional[str] = None   # None = pas de saisie possible
    title:       str = ""
    description: str = ""
    rule:        PromotionRule
    # Validité
    start_date:  Optional[datetime] = None
    end_date:    Optional[datetime] = None
    is_active:   bool = True
    # Périmètre (listes vides = tout le catalogue, hors exclusions)
    applicable_products:   List[str] = []
    applicable_categories: List[str] = []
    excluded_products:     List[str] = []
    excluded_categories:   List[str] = []
    min_order_amount:      Decimal = Decimal("0")
    # Quotas (0 = illimité) ; current_usage est incrémenté à la commande, hors moteur
    max_usage:          int = 0
    max_usage_per_user: int = 0
    current_usage:      int = 0
    # Ordre
    priority:      Optional[int] = None
    auto_apply:    bool = False
    requires_code: bool = True

    @model_validator(mode="before")
    @classmethod
    def _lift_type_into_rule(cls, data):
        # Format catalogue : {"type": "cartTotal", "rule": {...}} sans tag dans la règle
        if isinstance(data, dict) and isinstance(data.get("rule"), dict):
            promo_type = data.get("type")
            if promo_type and "type" not in data["rule"]:
                data = {**data, "rule": {**data["rule"], "type": promo_type}}
        return data

    @property
    def type(self) -> PromotionType:
        return PromotionType(self.rule.type)

    @property
    def is_auto_candidate(self) -> bool:
        return self.auto_apply and not self.requires_code
