from enum import Enum


class PromotionType(str, Enum):
    BUY_X_GET_Y       = "buyXGetY"
    QUANTITY_DISCOUNT = "quantityDiscount"
    CART_TOTAL        = "cartTotal"


class ApplyFailureReason(str, Enum):
    NOT_FOUND      = "NOT_FOUND"
    INELIGIBLE     = "INELIGIBLE"
    USAGE_EXCEEDED = "USAGE_EXCEEDED"
    EXPIRED        = "EXPIRED"        # désactivée ou hors fenêtre de validité


class PolicyState(str, Enum):
    NO_MANUAL_PROMO     = "NoManualPromo"
    MANUAL_PROMO_ACTIVE = "ManualPromoActive"


class RemovalReason(str, Enum):
    INELIGIBLE      = "ineligible"       # le panier ne remplit plus les conditions
    USAGE_EXCEEDED  = "usage_exceeded"
    REPLACED        = "replaced"         # nouveau code saisi
    REMOVED_BY_USER = "removed_by_user"
    NOT_IN_CATALOG  = "not_in_catalog"
