"""
Service promotions : session panier et politique d'application.

Au plus UNE promo manuelle (saisie d'un code) + N promos automatiques.
  NoManualPromo ──apply(code)──▶ ManualPromoActive
  ManualPromoActive ──apply(autre code)──▶ ManualPromoActive (remplacement)
  ManualPromoActive ──remove_manual() / remove_all() / panier devenu inéligible──▶ NoManualPromo

Chaque transition relance la réconciliation et le calcul du code suggéré.
Aucune I/O ici : catalogue, lignes et historique d'usage sont fournis par
l'appelant, qui sérialise les mutations d'un même panier.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set, Tuple

from config import settings
from core.money import format_amount
from models.cart import (
    AppliedPromotion, ApplyResult, CartLine, CartSnapshot, CartTotals, CartView,
    PromotionRemoval, UsageRecord,
)
from models.common import ApplyFailureReason, PolicyState, RemovalReason
from models.promotion import Promotion
from services.discount_service import compute_savings
from services.eligibility_service import is_currently_valid, is_eligible
from services.priority_service import rank, suggest_code
from services.reconciliation_service import raw_lines, reconcile
from services.usage_service import can_use, is_globally_exhausted, is_usable

logger = logging.getLogger(__name__)

_FAILURE_MESSAGES = {
    ApplyFailureReason.NOT_FOUND:      "Code promo invalide",
    ApplyFailureReason.EXPIRED:        "Ce code promo n'est plus valide",
    ApplyFailureReason.USAGE_EXCEEDED: "Ce code promo a atteint sa limite d'utilisation",
    ApplyFailureReason.INELIGIBLE:     "Votre panier ne remplit pas les conditions de ce code promo",
}


def normalize_code(code: Optional[str]) -> str:
    code = (code or "").strip()
    return code.upper() if settings.PROMO_CODE_CASE_INSENSITIVE else code


class CartSession:
    """Agrégat unique : lignes du panier + promos appliquées + totaux dérivés."""

    def __init__(
        self,
        catalog: List[Promotion],
        lines: Optional[List[CartLine]] = None,
        usage_records: Optional[List[UsageRecord]] = None,
        user_id: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._catalog  = list(catalog)
        self._by_id    = {p.promo_id: p for p in self._catalog}
        self._position = {p.promo_id: i for i, p in enumerate(self._catalog)}
        self._usage_records = list(usage_records or [])
        self.user_id = user_id
        self._clock  = clock or (lambda: datetime.now(timezone.utc))

        self._lines: List[CartLine] = raw_lines([l.model_copy(deep=True) for l in lines or []])
        self._manual: Optional[AppliedPromotion] = None
        self._auto:   List[AppliedPromotion] = []
        self._removed: List[PromotionRemoval] = []
        self._dismissed: Set[str] = set()
        self._suggested = ""
        self._refresh()

    @classmethod
    def from_snapshot(cls, snapshot: CartSnapshot) -> "CartSession":
        """Reconstruit une session à partir d'un état fourni par l'appelant, puis revalide."""
        clock = (lambda: snapshot.now) if snapshot.now else None
        session = cls(
            catalog=snapshot.catalog,
            lines=snapshot.lines,
            usage_records=snapshot.usage_records,
            user_id=snapshot.user_id,
            clock=clock,
        )
        manual = next((a for a in snapshot.applied if not a.is_auto_applied), None)
        if manual is not None:
            session._manual = session._attachment(manual.promo_id, is_auto_applied=False)
        session._auto = [
            session._attachment(a.promo_id, is_auto_applied=True)
            for a in snapshot.applied
            if a.is_auto_applied and (manual is None or a.promo_id != manual.promo_id)
        ]
        session.on_cart_changed()
        return session

    # ── Projections en lecture seule ──────────────────────────────────────────

    @property
    def state(self) -> PolicyState:
        if self._manual is None:
            return PolicyState.NO_MANUAL_PROMO
        return PolicyState.MANUAL_PROMO_ACTIVE

    @property
    def lines(self) -> List[CartLine]:
        return [l.model_copy(deep=True) for l in self._result.lines]

    @property
    def applied(self) -> List[AppliedPromotion]:
        return [a.model_copy() for a in self._result.applied]

    @property
    def manual_promotion(self) -> Optional[AppliedPromotion]:
        return next((a.model_copy() for a in self._result.applied if not a.is_auto_applied), None)

    @property
    def totals(self) -> CartTotals:
        return self._result.totals.model_copy()

    @property
    def suggested_code(self) -> str:
        return self._suggested

    def view(self) -> CartView:
        return CartView(
            state=self.state,
            lines=self.lines,
            applied=self.applied,
            totals=self.totals,
            suggested_code=self._suggested,
            removed=list(self._removed),
        )

    # ── Transitions ───────────────────────────────────────────────────────────

    def find_by_code(self, code: str) -> Optional[Promotion]:
        wanted = normalize_code(code)
        if not wanted:
            return None
        matches = [p for p in self._catalog if p.code and normalize_code(p.code) == wanted]
        if not matches:
            return None
        # Code unique parmi les promos actives : on préfère celle qui est valide maintenant
        now = self._clock()
        return next((p for p in matches if is_currently_valid(p, now)), matches[0])

    def _check_code(
        self, code: str, now: datetime,
    ) -> Tuple[Optional[Promotion], Optional[ApplyFailureReason]]:
        """Contrôles d'un code, dans l'ordre : existe, valide, quota, panier."""
        promotion = self.find_by_code(code)
        if promotion is None:
            return None, ApplyFailureReason.NOT_FOUND
        if not is_currently_valid(promotion, now):
            return promotion, ApplyFailureReason.EXPIRED
        if is_globally_exhausted(promotion) or not can_use(promotion, self.user_id, self._usage_records):
            return promotion, ApplyFailureReason.USAGE_EXCEEDED
        if not is_eligible(promotion, self._lines, now):
            return promotion, ApplyFailureReason.INELIGIBLE
        return promotion, None

    def validate_code(self, code: str) -> ApplyResult:
        """Même verdict qu'apply_code, sans rien modifier : aperçu de la remise."""
        promotion, reason = self._check_code(code, self._clock())
        if reason is not None:
            return self._reject(code, reason)

        savings = compute_savings(promotion, self._lines)
        preview = self._attachment(promotion.promo_id, is_auto_applied=False).model_copy(update={
            "discount_cents": savings.monetary_cents,
            "free_shipping":  savings.free_shipping,
        })
        return ApplyResult(success=True, applied=preview, message=f'Code "{promotion.code}" valide')

    def apply_code(self, code: str) -> ApplyResult:
        now = self._clock()
        promotion, reason = self._check_code(code, now)
        if reason is not None:
            return self._reject(code, reason)

        if self._manual is not None and self._manual.promo_id == promotion.promo_id:
            return ApplyResult(success=True, applied=self.manual_promotion, message="Code déjà appliqué")

        replaced = None
        if self._manual is not None:
            replaced = self._detach_manual(RemovalReason.REPLACED)

        # Une promo automatique saisie en code passe dans l'emplacement manuel
        self._auto = [a for a in self._auto if a.promo_id != promotion.promo_id]
        self._manual = self._attachment(promotion.promo_id, is_auto_applied=False)
        # L'ancien code peut redevenir une promo automatique
        removed = self._sync_auto(now)
        self._removed = ([replaced] if replaced else []) + removed
        self._refresh(now)

        logger.info(
            f"Promo {promotion.promo_id} appliquée avec le code {promotion.code} "
            f"(remise {format_amount(self._result.totals.total_discount_cents)})"
        )
        return ApplyResult(
            success=True,
            applied=self.manual_promotion,
            replaced=replaced,
            message=f'Code "{promotion.code}" appliqué',
        )

    def remove_manual(self) -> Optional[PromotionRemoval]:
        if self._manual is None:
            return None
        now = self._clock()
        removal = self._detach_manual(RemovalReason.REMOVED_BY_USER)
        self._removed = [removal] + self._sync_auto(now)
        self._refresh(now)
        return removal

    def remove_all(self) -> List[PromotionRemoval]:
        """
        Retire la promo manuelle et toutes les promos automatiques.
        Les promos automatiques écartées ne reviennent pas tant que le panier
        n'est pas vidé.
        """
        removed: List[PromotionRemoval] = []
        if self._manual is not None:
            removed.append(self._detach_manual(RemovalReason.REMOVED_BY_USER))
        for entry in self._auto:
            removed.append(self._removal(entry, RemovalReason.REMOVED_BY_USER))
            self._dismissed.add(entry.promo_id)
        self._auto = []
        self._removed = removed
        self._refresh()
        return removed

    def on_cart_changed(self) -> List[PromotionRemoval]:
        """
        Revalide la promo manuelle et resynchronise les promos automatiques.
        Retourne les promos retirées d'office pour que l'UI puisse le signaler.
        """
        now = self._clock()
        removed: List[PromotionRemoval] = []

        if self._manual is not None:
            promotion = self._by_id.get(self._manual.promo_id)
            if promotion is None:
                removed.append(self._detach_manual(RemovalReason.NOT_IN_CATALOG))
            elif not is_eligible(promotion, self._lines, now):
                removed.append(self._detach_manual(RemovalReason.INELIGIBLE))

        removed.extend(self._sync_auto(now))
        self._removed = removed
        self._refresh(now)

        for removal in removed:
            logger.info(f"Promo {removal.promo_id} retirée du panier ({removal.reason.value})")
        return removed

    # ── Mutations du panier ───────────────────────────────────────────────────

    def add_item(self, line: CartLine) -> List[PromotionRemoval]:
        existing = self._find_line(line.line_id)
        if existing is not None:
            existing.quantity += line.quantity
        else:
            self._lines.extend(raw_lines([line.model_copy(deep=True)]))
        return self.on_cart_changed()

    def update_quantity(self, line_id: str, quantity: int) -> List[PromotionRemoval]:
        if quantity < 1:
            return self.remove_item(line_id)
        line = self._find_line(line_id)
        if line is None:
            return []
        line.quantity = quantity
        line.free_quantity = min(line.free_quantity, quantity)
        return self.on_cart_changed()

    def remove_item(self, line_id: str) -> List[PromotionRemoval]:
        before = len(self._lines)
        self._lines = [l for l in self._lines if l.line_id != line_id]
        if len(self._lines) == before:
            return []
        return self.on_cart_changed()

    def clear(self) -> None:
        """Vider le panier remet la session dans son état initial."""
        self._lines   = []
        self._manual  = None
        self._auto    = []
        self._removed = []
        self._dismissed = set()
        self._refresh()

    # ── Interne ───────────────────────────────────────────────────────────────

    def _find_line(self, line_id: str) -> Optional[CartLine]:
        return next((l for l in self._lines if l.line_id == line_id), None)

    def _attachment(self, promo_id: str, is_auto_applied: bool) -> AppliedPromotion:
        promotion = self._by_id.get(promo_id)
        return AppliedPromotion(
            promo_id=promo_id,
            is_auto_applied=is_auto_applied,
            code=None if is_auto_applied or promotion is None else promotion.code,
            catalog_position=self._position.get(promo_id, len(self._catalog)),
        )

    def _removal(self, entry: AppliedPromotion, reason: RemovalReason) -> PromotionRemoval:
        return PromotionRemoval(
            promo_id=entry.promo_id,
            code=entry.code,
            is_auto_applied=entry.is_auto_applied,
            reason=reason,
        )

    def _sync_auto(self, now: datetime) -> List[PromotionRemoval]:
        """Détache les promos automatiques devenues invalides, attache les nouvelles."""
        removed: List[PromotionRemoval] = []
        kept: List[AppliedPromotion] = []
        for entry in self._auto:
            promotion = self._by_id.get(entry.promo_id)
            if promotion is None:
                removed.append(self._removal(entry, RemovalReason.NOT_IN_CATALOG))
            elif not promotion.is_auto_candidate or not is_eligible(promotion, self._lines, now):
                removed.append(self._removal(entry, RemovalReason.INELIGIBLE))
            elif not is_usable(promotion, self.user_id, self._usage_records):
                removed.append(self._removal(entry, RemovalReason.USAGE_EXCEEDED))
            else:
                kept.append(entry)

        attached = {a.promo_id for a in kept} | self._dismissed
        if self._manual is not None:
            attached.add(self._manual.promo_id)
        for promotion in self._catalog:
            if promotion.promo_id in attached or not promotion.is_auto_candidate:
                continue
            if is_eligible(promotion, self._lines, now) and is_usable(promotion, self.user_id, self._usage_records):
                kept.append(self._attachment(promotion.promo_id, is_auto_applied=True))
                logger.info(f"Promo automatique {promotion.promo_id} attachée")

        self._auto = sorted(kept, key=lambda a: a.catalog_position)
        return removed

    def _detach_manual(self, reason: RemovalReason) -> PromotionRemoval:
        removal = self._removal(self._manual, reason)
        self._manual = None
        return removal

    def _reject(self, code: str, reason: ApplyFailureReason) -> ApplyResult:
        logger.info(f"Code promo {normalize_code(code)!r} refusé : {reason.value}")
        return ApplyResult(success=False, reason=reason, message=_FAILURE_MESSAGES[reason])

    def _refresh(self, now: Optional[datetime] = None) -> None:
        now = now or self._clock()
        applied = list(self._auto)
        if self._manual is not None:
            applied.append(self._manual)
        self._result = reconcile(self._lines, applied, self._by_id)

        applied_ids = {a.promo_id for a in applied}
        candidates = [
            p for p in self._catalog
            if p.code
            and p.promo_id not in applied_ids
            and is_eligible(p, self._lines, now)
            and is_usable(p, self.user_id, self._usage_records)
        ]
        self._suggested = suggest_code(rank(candidates, self._lines))
