"""
Service quotas : limite par utilisateur (et test du quota global).
Le moteur ne fait que lire les compteurs ; la commande les incrémente.
"""
from typing import Dict, List, Optional

from models.cart import UsageRecord
from models.promotion import Promotion


def usage_count(promo_id: str, user_id: str, usage_records: List[UsageRecord]) -> int:
    return sum(1 for r in usage_records if r.promo_id == promo_id and r.user_id == user_id)


def can_use(
    promotion: Promotion,
    user_id: Optional[str],
    usage_records: List[UsageRecord],
) -> bool:
    """Quota par utilisateur. Sans user_id (invité) le quota n'est pas vérifié."""
    if promotion.max_usage_per_user <= 0:
        return True
    if not user_id:
        return True
    return usage_count(promotion.promo_id, user_id, usage_records) < promotion.max_usage_per_user


def is_globally_exhausted(promotion: Promotion) -> bool:
    return promotion.max_usage > 0 and promotion.current_usage >= promotion.max_usage


def is_usable(
    promotion: Promotion,
    user_id: Optional[str],
    usage_records: List[UsageRecord],
) -> bool:
    return not is_globally_exhausted(promotion) and can_use(promotion, user_id, usage_records)


def consumed_promotions(user_id: str, usage_records: List[UsageRecord]) -> Dict[str, int]:
    """Promos déjà utilisées par ce client -> nombre d'utilisations (ordre de l'historique)."""
    consumed: Dict[str, int] = {}
    for record in usage_records:
        if record.user_id == user_id:
            consumed[record.promo_id] = consumed.get(record.promo_id, 0) + 1
    return consumed
