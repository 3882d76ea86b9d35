from datetime import timedelta

from helpers import NOW, buy_x_get_y, cart_total, make_line, make_promotion, quantity_discount, usage
from models.cart import AppliedPromotion, CartSnapshot
from models.common import ApplyFailureReason, PolicyState, RemovalReason
from services.promotion_service import CartSession


def _session(catalog, lines, clock, **kwargs):
    return CartSession(catalog=catalog, lines=lines, clock=clock, **kwargs)


def _manual_count(session):
    return sum(1 for a in session.applied if not a.is_auto_applied)


def test_initial_state(clock):
    session = _session([], [make_line("l1", "10.00", 1)], clock)
    assert session.state == PolicyState.NO_MANUAL_PROMO
    assert session.applied == []
    assert session.totals.final_total_cents == 1000


def test_apply_unknown_code(clock):
    session = _session([], [make_line("l1", "10.00", 1)], clock)
    result = session.apply_code("NOPE")
    assert not result.success
    assert result.reason == ApplyFailureReason.NOT_FOUND
    assert session.state == PolicyState.NO_MANUAL_PROMO


def test_apply_ineligible_code_leaves_cart_unchanged(clock):
    promo = make_promotion("ct", cart_total("100", percentage="10"), code="TEN")
    session = _session([promo], [make_line("l1", "80.00", 1)], clock)
    result = session.apply_code("TEN")
    assert result.reason == ApplyFailureReason.INELIGIBLE
    assert session.state == PolicyState.NO_MANUAL_PROMO
    assert session.totals.final_total_cents == 8000


def test_apply_eligible_cart_total_code(clock):
    promo = make_promotion("ct", cart_total("100", percentage="10"), code="TEN")
    session = _session([promo], [make_line("l1", "150.00", 1)], clock)
    result = session.apply_code("TEN")
    assert result.success
    assert result.applied.discount_cents == 1500
    assert session.state == PolicyState.MANUAL_PROMO_ACTIVE
    assert session.totals.final_total_cents == 13500


def test_apply_code_exhausted_for_user(clock):
    promo = make_promotion("ct", cart_total("0", percentage="10"), code="ONCE", max_usage_per_user=1)
    session = _session([promo], [make_line("l1", "50.00", 1)], clock,
                       user_id="u1", usage_records=usage("ct", "u1"))
    result = session.apply_code("ONCE")
    assert result.reason == ApplyFailureReason.USAGE_EXCEEDED
    assert session.state == PolicyState.NO_MANUAL_PROMO


def test_apply_code_exhausted_globally(clock):
    promo = make_promotion("ct", cart_total("0", percentage="10"), code="GONE",
                           max_usage=100, current_usage=100)
    session = _session([promo], [make_line("l1", "50.00", 1)], clock)
    assert session.apply_code("GONE").reason == ApplyFailureReason.USAGE_EXCEEDED


def test_apply_expired_or_disabled_code(clock):
    expired = make_promotion("old", cart_total("0", percentage="10"), code="OLD",
                             end_date=NOW - timedelta(days=1))
    disabled = make_promotion("off", cart_total("0", percentage="10"), code="OFF", is_active=False)
    session = _session([expired, disabled], [make_line("l1", "50.00", 1)], clock)
    assert session.apply_code("OLD").reason == ApplyFailureReason.EXPIRED
    assert session.apply_code("OFF").reason == ApplyFailureReason.EXPIRED


def test_code_lookup_is_case_insensitive(clock):
    promo = make_promotion("ct", cart_total("0", percentage="10"), code="Summer24")
    session = _session([promo], [make_line("l1", "50.00", 1)], clock)
    assert session.apply_code("  summer24 ").success


def test_new_code_replaces_manual_promotion(clock):
    a = make_promotion("a", cart_total("0", amount="5"), code="AAA")
    b = make_promotion("b", cart_total("0", amount="8"), code="BBB")
    session = _session([a, b], [make_line("l1", "100.00", 1)], clock)
    assert session.apply_code("AAA").success
    assert session.totals.total_discount_cents == 500

    result = session.apply_code("BBB")
    assert result.success
    assert result.replaced.promo_id == "a"
    assert result.replaced.reason == RemovalReason.REPLACED
    assert [a.promo_id for a in session.applied] == ["b"]
    assert session.totals.total_discount_cents == 800
    assert session.state == PolicyState.MANUAL_PROMO_ACTIVE


def test_failed_code_keeps_current_manual_promotion(clock):
    a = make_promotion("a", cart_total("0", amount="5"), code="AAA")
    session = _session([a], [make_line("l1", "100.00", 1)], clock)
    session.apply_code("AAA")
    session.apply_code("UNKNOWN")
    assert session.manual_promotion.promo_id == "a"


def test_remove_manual(clock):
    a = make_promotion("a", cart_total("0", amount="5"), code="AAA")
    session = _session([a], [make_line("l1", "100.00", 1)], clock)
    assert session.remove_manual() is None
    session.apply_code("AAA")
    removal = session.remove_manual()
    assert removal.reason == RemovalReason.REMOVED_BY_USER
    assert session.state == PolicyState.NO_MANUAL_PROMO
    assert session.totals.total_discount_cents == 0


def test_manual_promotion_dropped_when_cart_no_longer_qualifies(clock):
    promo = make_promotion("qd", quantity_discount(3, percentage="10"), code="BULK")
    session = _session([promo], [make_line("l1", "10.00", 3)], clock)
    assert session.apply_code("BULK").success

    removed = session.update_quantity("l1", 2)
    assert [r.promo_id for r in removed] == ["qd"]
    assert removed[0].reason == RemovalReason.INELIGIBLE
    assert session.state == PolicyState.NO_MANUAL_PROMO
    assert session.totals.total_discount_cents == 0

    # Remonter la quantité ne rattache pas une promo manuelle
    session.update_quantity("l1", 5)
    assert session.state == PolicyState.NO_MANUAL_PROMO


def test_auto_promotions_follow_cart_changes(clock):
    auto = make_promotion("auto", buy_x_get_y(2, 1), auto_apply=True, requires_code=False)
    session = _session([auto], [make_line("l1", "10.00", 1)], clock)
    assert session.on_cart_changed() == []
    assert session.applied == []

    session.update_quantity("l1", 4)
    assert [a.promo_id for a in session.applied] == ["auto"]
    assert session.totals.final_total_cents == 2000

    removed = session.update_quantity("l1", 1)
    assert removed[0].is_auto_applied
    assert session.applied == []


def test_auto_apply_requires_no_code_and_usage_left(clock):
    needs_code = make_promotion("coded", cart_total("0", amount="1"), auto_apply=True, requires_code=True)
    used_up = make_promotion("used", cart_total("0", amount="1"), auto_apply=True, requires_code=False,
                             max_usage=1, current_usage=1)
    session = _session([needs_code, used_up], [make_line("l1", "10.00", 1)], clock)
    session.on_cart_changed()
    assert session.applied == []


def test_several_auto_promotions_stack(clock):
    a = make_promotion("a", cart_total("0", amount="1"), auto_apply=True, requires_code=False)
    b = make_promotion("b", quantity_discount(1, amount="2"), auto_apply=True, requires_code=False)
    manual = make_promotion("m", cart_total("0", amount="3"), code="MMM")
    session = _session([a, b, manual], [make_line("l1", "10.00", 1)], clock)
    session.on_cart_changed()
    session.apply_code("MMM")
    assert [x.promo_id for x in session.applied] == ["a", "b", "m"]
    assert session.totals.total_discount_cents == 600


def test_applying_auto_promotion_code_moves_it_to_manual_slot(clock):
    promo = make_promotion("both", cart_total("0", amount="2"), code="BOTH",
                           auto_apply=True, requires_code=False)
    session = _session([promo], [make_line("l1", "10.00", 1)], clock)
    session.on_cart_changed()
    session.apply_code("BOTH")
    assert len(session.applied) == 1
    assert not session.applied[0].is_auto_applied
    assert session.totals.total_discount_cents == 200


def test_suggested_code_is_best_remaining_promotion(clock):
    low = make_promotion("low", quantity_discount(1, amount="9"), code="LOW")
    high = make_promotion("high", cart_total("0", amount="1"), code="HIGH")
    hidden = make_promotion("hidden", cart_total("500", amount="50"), code="HIDDEN")
    session = _session([low, high, hidden], [make_line("l1", "20.00", 1)], clock)
    assert session.suggested_code == "HIGH"
    session.apply_code("HIGH")
    assert session.suggested_code == "LOW"
    session.apply_code("LOW")
    assert session.suggested_code == "HIGH"


def test_single_manual_promotion_over_any_sequence(clock):
    catalog = [
        make_promotion("a", cart_total("0", amount="1"), code="A"),
        make_promotion("b", quantity_discount(2, amount="1"), code="B"),
        make_promotion("c", buy_x_get_y(2, 1), code="C", auto_apply=True, requires_code=False),
    ]
    session = _session(catalog, [make_line("l1", "10.00", 2)], clock)
    steps = [
        lambda: session.apply_code("A"),
        lambda: session.apply_code("B"),
        lambda: session.update_quantity("l1", 1),
        lambda: session.apply_code("C"),
        lambda: session.add_item(make_line("l2", "3.00", 4)),
        lambda: session.apply_code("B"),
        lambda: session.remove_manual(),
        lambda: session.apply_code("A"),
        lambda: session.remove_item("l2"),
    ]
    for step in steps:
        step()
        assert _manual_count(session) <= 1
        assert session.totals.final_total_cents >= 0
        assert session.totals.total_discount_cents <= session.totals.original_total_cents


def test_add_item_merges_same_line(clock):
    session = _session([], [make_line("l1", "10.00", 1)], clock)
    session.add_item(make_line("l1", "10.00", 2))
    assert session.lines[0].quantity == 3


def test_update_quantity_below_one_removes_line(clock):
    session = _session([], [make_line("l1", "10.00", 1), make_line("l2", "1.00", 1)], clock)
    session.update_quantity("l1", 0)
    assert [l.line_id for l in session.lines] == ["l2"]


def test_clear_resets_to_initial_state(clock):
    promo = make_promotion("a", cart_total("0", amount="1"), code="A")
    session = _session([promo], [make_line("l1", "10.00", 1)], clock)
    session.apply_code("A")
    session.clear()
    assert session.state == PolicyState.NO_MANUAL_PROMO
    assert session.lines == []
    assert session.totals.original_total_cents == 0


def test_session_does_not_mutate_caller_lines(clock):
    line = make_line("l1", "10.00", 4)
    session = _session([make_promotion("x", buy_x_get_y(2, 1), auto_apply=True, requires_code=False)],
                       [line], clock)
    session.on_cart_changed()
    session.update_quantity("l1", 6)
    assert line.quantity == 4
    assert line.free_quantity == 0


def test_from_snapshot_revalidates_applied_promotions(now):
    manual = make_promotion("m", cart_total("100", amount="10"), code="BIG")
    auto = make_promotion("auto", cart_total("0", amount="1"), auto_apply=True, requires_code=False)
    snapshot = CartSnapshot(
        lines=[make_line("l1", "50.00", 1)],
        applied=[
            AppliedPromotion(promo_id="m", is_auto_applied=False, code="BIG"),
            AppliedPromotion(promo_id="ghost"),
        ],
        catalog=[manual, auto],
        now=now,
    )
    session = CartSession.from_snapshot(snapshot)
    reasons = {r.promo_id: r.reason for r in session.view().removed}
    assert reasons == {"m": RemovalReason.INELIGIBLE, "ghost": RemovalReason.NOT_IN_CATALOG}
    assert [a.promo_id for a in session.applied] == ["auto"]


def _auto_with_code(promo_id="both", code="BOTH", amount="2"):
    return make_promotion(promo_id, cart_total("0", amount=amount), code=code,
                          auto_apply=True, requires_code=False)


def test_removing_code_of_auto_promotion_keeps_it_as_auto(clock):
    session = _session([_auto_with_code()], [make_line("l1", "10.00", 1)], clock)
    session.on_cart_changed()
    assert session.totals.total_discount_cents == 200

    session.apply_code("BOTH")
    session.remove_manual()
    assert session.state == PolicyState.NO_MANUAL_PROMO
    assert [(a.promo_id, a.is_auto_applied) for a in session.applied] == [("both", True)]
    assert session.totals.total_discount_cents == 200

    # Une réévaluation ne change plus rien
    session.on_cart_changed()
    assert session.totals.total_discount_cents == 200


def test_replaced_code_of_auto_promotion_returns_as_auto(clock):
    other = make_promotion("other", cart_total("0", amount="3"), code="OTHER")
    session = _session([_auto_with_code(), other], [make_line("l1", "10.00", 1)], clock)
    session.apply_code("BOTH")
    result = session.apply_code("OTHER")
    assert result.replaced.promo_id == "both"
    assert [(a.promo_id, a.is_auto_applied) for a in session.applied] == [("both", True), ("other", False)]
    assert session.totals.total_discount_cents == 500


def test_remove_then_evaluate_gives_same_totals(now):
    catalog = [_auto_with_code()]
    lines = [make_line("l1", "10.00", 1)]
    snapshot = CartSnapshot(
        lines=lines, catalog=catalog, now=now,
        applied=[AppliedPromotion(promo_id="both", is_auto_applied=False, code="BOTH")],
    )
    removed = CartSession.from_snapshot(snapshot)
    removed.remove_manual()
    view = removed.view()
    evaluated = CartSession.from_snapshot(CartSnapshot(
        lines=view.lines, applied=view.applied, catalog=catalog, now=now,
    ))
    assert evaluated.totals == view.totals


def test_validate_code_reports_savings_without_applying(clock):
    promo = make_promotion("ct", cart_total("100", percentage="10"), code="TEN")
    session = _session([promo], [make_line("l1", "150.00", 1)], clock)
    result = session.validate_code("ten")
    assert result.success
    assert result.applied.discount_cents == 1500
    assert result.applied.code == "TEN"
    assert session.state == PolicyState.NO_MANUAL_PROMO
    assert session.applied == []
    assert session.totals.total_discount_cents == 0


def test_validate_code_uses_same_checks_as_apply(clock):
    catalog = [
        make_promotion("ct", cart_total("100", percentage="10"), code="TEN"),
        make_promotion("old", cart_total("0", amount="1"), code="OLD", end_date=NOW - timedelta(days=1)),
        make_promotion("used", cart_total("0", amount="1"), code="USED", max_usage=1, current_usage=1),
    ]
    session = _session(catalog, [make_line("l1", "20.00", 1)], clock)
    assert session.validate_code("NOPE").reason == ApplyFailureReason.NOT_FOUND
    assert session.validate_code("OLD").reason == ApplyFailureReason.EXPIRED
    assert session.validate_code("USED").reason == ApplyFailureReason.USAGE_EXCEEDED
    assert session.validate_code("TEN").reason == ApplyFailureReason.INELIGIBLE
    for code in ("NOPE", "OLD", "USED", "TEN"):
        assert session.validate_code(code).reason == session.apply_code(code).reason


def test_remove_all_detaches_every_promotion(clock):
    auto = make_promotion("auto", cart_total("0", amount="1"), auto_apply=True, requires_code=False)
    manual = make_promotion("m", cart_total("0", amount="2"), code="MMM")
    session = _session([auto, manual], [make_line("l1", "10.00", 2)], clock)
    session.on_cart_changed()
    session.apply_code("MMM")

    removed = session.remove_all()
    assert {r.promo_id for r in removed} == {"auto", "m"}
    assert all(r.reason == RemovalReason.REMOVED_BY_USER for r in removed)
    assert session.applied == []
    assert session.state == PolicyState.NO_MANUAL_PROMO
    assert session.totals.final_total_cents == 2000

    # Les promos automatiques écartées ne reviennent pas au prochain changement
    session.update_quantity("l1", 3)
    assert session.applied == []

    # Sauf après avoir vidé le panier
    session.clear()
    session.add_item(make_line("l1", "10.00", 1))
    assert [a.promo_id for a in session.applied] == ["auto"]
