"""
Montants : tous les cumuls se font en unités mineures (centimes, int).
La conversion en Decimal n'a lieu qu'en entrée/sortie de l'API.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Union

from config import settings

Number = Union[int, float, str, Decimal]


def _scale() -> int:
    return 10 ** settings.CURRENCY_DECIMALS


def to_cents(value: Number) -> int:
    """Convertit un montant décimal en unités mineures (arrondi au plus proche)."""
    if value is None:
        return 0
    amount = Decimal(str(value)) * _scale()
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    quantum = Decimal(1).scaleb(-settings.CURRENCY_DECIMALS)
    return (Decimal(cents) / _scale()).quantize(quantum)


def percentage_of(cents: int, percentage: Number) -> int:
    """cents × percentage / 100, arrondi au centime (ROUND_HALF_UP)."""
    raw = Decimal(cents) * Decimal(str(percentage)) / Decimal(100)
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_amount(cents: int) -> str:
    return f"{from_cents(cents)} {settings.CURRENCY}"


def spread(amount_cents: int, weights: Dict[str, int]) -> Dict[str, int]:
    """
    Répartit amount_cents au prorata des poids (plus forts restes) :
    la somme des parts vaut exactement amount_cents.
    """
    total = sum(weights.values())
    if total <= 0 or amount_cents <= 0:
        return {}

    shares = {key: amount_cents * w // total for key, w in weights.items()}
    leftover = amount_cents - sum(shares.values())
    by_remainder = sorted(weights, key=lambda key: amount_cents * weights[key] % total, reverse=True)
    for key in by_remainder[:leftover]:
        shares[key] += 1
    return shares
