from datetime import datetime
from decimal import Decimal

from factories import make_line, make_rule
from marketplace.services.discount_selector import pick_highest_priority, select_discounts
from marketplace.services.types import (
    Authority,
    CodeType,
    CouponStatus,
    DiscountKind,
    Scope,
)

OLD = datetime(2024, 1, 1)
NEW = datetime(2024, 6, 1)


def seller_rule(**kw):
    kw.setdefault("authority", Authority.SELLER)
    kw.setdefault("seller_id", "s1")
    kw.setdefault("kind", DiscountKind.FLAT)
    kw.setdefault("value", 10)
    return make_rule(**kw)


def coupon(code, **kw):
    return make_rule(code=code, code_type=CodeType.COUPON, **kw)


def free_shipping(**kw):
    kw.setdefault("kind", DiscountKind.FREE_SHIPPING)
    kw.setdefault("scope", Scope.SHIPPING)
    kw.setdefault("value", 0)
    return make_rule(**kw)


# ---- seller tiers ----------------------------------------------------------

def test_higher_priority_seller_discount_wins():
    low = seller_rule(priority=1)
    high = seller_rule(priority=5)
    for rules in ([low, high], [high, low]):
        selection = select_discounts([make_line()], rules)
        assert selection.seller_discounts == (high,)


def test_equal_priority_prefers_most_recently_updated():
    stale = seller_rule(priority=3, updated_at=OLD, created_at=NEW)
    fresh = seller_rule(priority=3, updated_at=NEW, created_at=OLD)
    for rules in ([stale, fresh], [fresh, stale]):
        assert select_discounts([make_line()], rules).seller_discounts == (fresh,)


def test_then_most_recently_created():
    older = seller_rule(updated_at=NEW, created_at=OLD)
    newer = seller_rule(updated_at=NEW, created_at=NEW)
    assert pick_highest_priority([newer, older]) is newer
    assert pick_highest_priority([older, newer]) is newer


def test_product_tier_beats_category_and_store():
    store = seller_rule(scope=Scope.STORE, priority=100)
    category = seller_rule(scope=Scope.CATEGORY, category_ids={"c1"}, priority=50)
    product = seller_rule(scope=Scope.PRODUCT, product_ids={"p1"}, priority=0)

    selection = select_discounts([make_line("p1"), make_line("p2"), make_line("p3", category_id="c9")],
                                 [store, category, product])

    assert selection.seller_discounts == (product, category, store)


def test_seller_discount_only_for_own_lines():
    rule = seller_rule(seller_id="s2")
    selection = select_discounts([make_line(seller_id="s1"), make_line(seller_id=None)], [rule])
    assert selection.seller_discounts == (None, None)


def test_seller_discount_respects_min_subtotal():
    rule = seller_rule(min_cart_subtotal=500)
    assert select_discounts([make_line(price=100)], [rule]).seller_discounts == (None,)
    assert select_discounts([make_line(price=500)], [rule]).seller_discounts == (rule,)


def test_product_scope_without_targets_never_matches():
    rule = seller_rule(scope=Scope.PRODUCT, product_ids=set())
    assert select_discounts([make_line()], [rule]).seller_discounts == (None,)

    campaign = make_rule(scope=Scope.CATEGORY, category_ids=set())
    assert select_discounts([make_line()], [campaign]).price_discount is None


# ---- platform price discount -------------------------------------------------

def test_coupon_preempts_campaign():
    campaign = make_rule(priority=99)
    save10 = coupon("SAVE10", priority=0)

    selection = select_discounts([make_line()], [campaign, save10], coupon_code="SAVE10")

    assert selection.price_discount is save10
    assert selection.coupon.status is CouponStatus.APPLIED
    assert selection.coupon.discount_id == save10.id


def test_campaign_applies_without_coupon():
    low = make_rule(priority=1)
    high = make_rule(priority=2)
    selection = select_discounts([make_line()], [low, high, coupon("SAVE10", priority=50)])

    assert selection.price_discount is high
    assert selection.coupon.status is CouponStatus.NONE


def test_unknown_code_falls_back_to_campaign():
    campaign = make_rule()
    selection = select_discounts([make_line()], [campaign], coupon_code="NOPE")

    assert selection.price_discount is campaign
    assert selection.coupon.status is CouponStatus.NOT_FOUND


def test_coupon_targeting_other_products_is_not_eligible():
    save = coupon("SHOES", scope=Scope.PRODUCT, product_ids={"shoe"})
    selection = select_discounts([make_line("shirt")], [save], coupon_code="SHOES")

    assert selection.price_discount is None
    assert selection.coupon.status is CouponStatus.NOT_ELIGIBLE


def test_coupon_below_min_subtotal_is_treated_as_absent():
    campaign = make_rule()
    save = coupon("BIG", min_cart_subtotal=1000)
    selection = select_discounts([make_line(price=200)], [campaign, save], coupon_code="BIG")

    assert selection.price_discount is campaign
    assert selection.coupon.status is CouponStatus.NOT_ELIGIBLE
    assert "1000.00" in selection.coupon.message


def test_campaign_below_min_subtotal_is_absent():
    campaign = make_rule(min_cart_subtotal=Decimal("100.01"))
    assert select_discounts([make_line(price=100)], [campaign]).price_discount is None


def test_coded_campaign_needs_the_code():
    coded = make_rule(code="HIDDEN", code_type=CodeType.CAMPAIGN)
    assert select_discounts([make_line()], [coded]).price_discount is None


# ---- free shipping -------------------------------------------------------------

def test_free_shipping_alone():
    ship = free_shipping()
    selection = select_discounts([make_line()], [ship])
    assert selection.price_discount is None
    assert selection.free_shipping is ship


def test_free_shipping_dropped_when_price_discount_not_stackable():
    ship = free_shipping()
    campaign = make_rule(stackable_with_free_shipping=False)
    selection = select_discounts([make_line()], [ship, campaign])
    assert selection.price_discount is campaign
    assert selection.free_shipping is None


def test_free_shipping_kept_when_price_discount_stackable():
    ship = free_shipping()
    campaign = make_rule(stackable_with_free_shipping=True)
    selection = select_discounts([make_line()], [ship, campaign])
    assert selection.free_shipping is ship


def test_free_shipping_coupon_goes_to_shipping_slot():
    campaign = make_rule(stackable_with_free_shipping=True)
    shipcode = free_shipping(code="SHIPFREE", code_type=CodeType.COUPON)

    selection = select_discounts([make_line()], [campaign, shipcode], coupon_code="SHIPFREE")

    assert selection.price_discount is campaign
    assert selection.free_shipping is shipcode
    assert selection.coupon.status is CouponStatus.APPLIED


def test_free_shipping_coupon_blocked_by_non_stackable_campaign():
    campaign = make_rule(stackable_with_free_shipping=False)
    shipcode = free_shipping(code="SHIPFREE", code_type=CodeType.COUPON)

    selection = select_discounts([make_line()], [campaign, shipcode], coupon_code="SHIPFREE")

    assert selection.free_shipping is None
    assert selection.coupon.status is CouponStatus.NOT_ELIGIBLE


def test_free_shipping_min_subtotal_uses_pre_discount_subtotal():
    ship = free_shipping(min_cart_subtotal=1000)
    seller = seller_rule(kind=DiscountKind.FLAT, value=500)
    selection = select_discounts([make_line(price=1000)], [ship, seller])
    assert selection.free_shipping is ship


def test_unentered_shipping_coupon_does_not_apply():
    shipcode = free_shipping(code="SHIPFREE", code_type=CodeType.COUPON)
    assert select_discounts([make_line()], [shipcode]).free_shipping is None
