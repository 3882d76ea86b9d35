from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from core.money import from_cents, to_cents
from models.common import ApplyFailureReason, PolicyState, RemovalReason
from models.promotion import Promotion


class CartLine(BaseModel):
    line_id:       str
    product_id:    str
    category_id:   Optional[str] = None
    unit_price:    Decimal = Field(ge=0)  # fixé à l'ajout au panier
    quantity:      int  = Field(1, ge=0)  # payés + offerts
    free_quantity: int  = Field(0, ge=0)  # 0 <= free_quantity <= quantity
    is_free_item:  bool = False           # ligne entièrement offerte
    # Annotations posées par la réconciliation
    discount_cents:  int = 0
    granted_by:      List[str] = []

    @model_validator(mode="after")
    def _clamp_free_quantity(self):
        # Même règle que update_quantity : jamais plus d'offerts que d'unités
        if self.free_quantity > self.quantity:
            self.free_quantity = self.quantity
        return self

    @property
    def unit_price_cents(self) -> int:
        return to_cents(self.unit_price)

    @property
    def chargeable_quantity(self) -> int:
        if self.is_free_item:
            return 0
        return max(0, self.quantity - min(self.free_quantity, self.quantity))

    @property
    def chargeable_cents(self) -> int:
        return self.unit_price_cents * self.chargeable_quantity


def original_total_cents(lines: List[CartLine]) -> int:
    """Sous-total facturable, sans aucune remise."""
    return sum(line.chargeable_cents for line in lines)


class FreeUnit(BaseModel):
    line_id:          str
    product_id:       str
    quantity:         int
    unit_price_cents: int = 0
    category_id:      Optional[str] = None
    creates_line:     bool = False        # produit offert absent du panier


class Savings(BaseModel):
    monetary_cents: int = 0
    free_units:     List[FreeUnit] = []
    free_shipping:  bool = False

    @property
    def free_quantity(self) -> int:
        return sum(u.quantity for u in self.free_units)


class AppliedPromotion(BaseModel):
    promo_id:         str
    is_auto_applied:  bool = True
    code:             Optional[str] = None
    discount_cents:   int  = 0
    free_shipping:    bool = False
    catalog_position: int  = 0

    @computed_field
    @property
    def discount_amount(self) -> Decimal:
        return from_cents(self.discount_cents)


class CartTotals(BaseModel):
    original_total_cents: int = 0
    total_discount_cents: int = 0
    final_total_cents:    int = 0
    free_shipping:        bool = False

    @computed_field
    @property
    def original_total(self) -> Decimal:
        return from_cents(self.original_total_cents)

    @computed_field
    @property
    def total_discount(self) -> Decimal:
        return from_cents(self.total_discount_cents)

    @computed_field
    @property
    def final_total(self) -> Decimal:
        return from_cents(self.final_total_cents)


class UsageRecord(BaseModel):
    promo_id:   str
    user_id:    str
    order_id:   Optional[str] = None
    created_at: Optional[datetime] = None


class PromotionRemoval(BaseModel):
    promo_id:        str
    code:            Optional[str] = None
    is_auto_applied: bool
    reason:          RemovalReason


class ApplyResult(BaseModel):
    success: bool
    reason:  Optional[ApplyFailureReason] = None
    message: str = ""
    applied: Optional[AppliedPromotion] = None
    replaced: Optional[PromotionRemoval] = None


class CartView(BaseModel):
    """Projection en lecture seule d'une session panier."""
    state:          PolicyState
    lines:          List[CartLine]
    applied:        List[AppliedPromotion]
    totals:         CartTotals
    suggested_code: str = ""
    removed:        List[PromotionRemoval] = []


class RankedPromotion(BaseModel):
    promotion:          Promotion
    effective_priority: int
    savings:            Savings


class CartSnapshot(BaseModel):
    """Entrée de l'API : tout est fourni par l'appelant, rien n'est persisté ici."""
    lines:         List[CartLine] = []
    applied:       List[AppliedPromotion] = []
    catalog:       List[Promotion] = []
    usage_records: List[UsageRecord] = []
    user_id:       Optional[str] = None
    now:           Optional[datetime] = None


class Reconciliation(BaseModel):
    totals:  CartTotals
    lines:   List[CartLine]
    applied: List[AppliedPromotion]
