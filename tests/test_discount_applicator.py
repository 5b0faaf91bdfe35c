import random
from decimal import Decimal

import pytest

from factories import make_line, make_rule
from marketplace.services.discount_applicator import (
    apply_discounts,
    flat_amount,
    percentage_amount,
    prorate,
)
from marketplace.services.types import Authority, CodeType, DiscountKind, Scope, Selection

D = Decimal


def selection(lines, seller=None, price=None, free_shipping=None):
    return Selection(
        seller_discounts=tuple(seller or [None] * len(lines)),
        price_discount=price,
        free_shipping=free_shipping,
    )


def assert_conserved(result):
    t = result.totals
    assert sum((lp.final for lp in result.lines), D("0")) == t.discounted_subtotal
    assert t.discounted_subtotal + t.shipping_due == t.grand_total
    for lp in result.lines:
        assert lp.final == lp.base - lp.seller_discount - lp.platform_discount
        assert lp.final >= 0


# ---- amounts -------------------------------------------------------------------

def test_percentage_is_capped_then_clamped():
    assert percentage_amount(D("999.99"), D("10")) == D("100.00")
    assert percentage_amount(D("1000"), D("10"), D("30")) == D("30")
    assert percentage_amount(D("50"), D("150")) == D("50")


def test_flat_is_capped_and_clamped_to_base():
    assert flat_amount(D("100"), D("30"), D("20")) == D("20.00")
    assert flat_amount(D("10"), D("30")) == D("10.00")


# ---- proration -----------------------------------------------------------------

def test_prorate_splits_cents_exactly():
    assert prorate(D("1"), [D("1"), D("1"), D("1")]) == [D("0.33"), D("0.34"), D("0.33")]


def test_prorate_caps_at_the_pool():
    assert prorate(D("100"), [D("1"), D("1"), D("1")]) == [D("1.00"), D("1.00"), D("1.00")]


def test_prorate_skips_zero_weights():
    shares = prorate(D("10"), [D("0"), D("30"), D("0"), D("10")])
    assert shares == [D("0.00"), D("7.50"), D("0.00"), D("2.50")]


def test_prorate_never_exceeds_the_pool():
    assert sum(prorate(D("500"), [D("100"), D("50.55")])) == D("150.55")


def test_prorate_nothing_to_split():
    assert prorate(D("10"), []) == []
    assert prorate(D("0"), [D("5")]) == [D("0.00")]


@pytest.mark.parametrize("seed", range(25))
def test_prorate_is_exact_for_random_carts(seed):
    rng = random.Random(seed)
    weights = [
        D(rng.randint(0, 500_000)) / 100 if rng.random() > 0.15 else D("0")
        for _ in range(rng.randint(1, 12))
    ]
    amount = D(rng.randint(1, 1_000_000)) / 100

    shares = prorate(amount, weights)

    assert sum(shares, D("0")) == min(amount, sum(weights, D("0")))
    for share, weight in zip(shares, weights):
        assert D("0") <= share <= weight


# ---- full application ----------------------------------------------------------

def test_save10_scenario():
    l1 = make_line("p1", price="1000", seller_id="s1")
    l2 = make_line("p2", price="2000", seller_id="s2")
    seller_flat = make_rule(authority=Authority.SELLER, seller_id="s1", kind=DiscountKind.FLAT, value=100)
    save10 = make_rule(code="SAVE10", code_type=CodeType.COUPON, value=10, max_discount=200)

    result = apply_discounts(
        [l1, l2],
        selection([l1, l2], seller=[seller_flat, None], price=save10),
        shipping_fee=D("150"),
    )

    first, second = result.lines
    assert first.seller_discount == D("100.00")
    assert first.platform_discount == D("62.07")
    assert second.platform_discount == D("137.93")

    t = result.totals
    assert t.subtotal == D("3000.00")
    assert t.seller_discount_total == D("100.00")
    assert t.platform_discount_total == D("200.00")
    assert t.discounted_subtotal == D("2700.00")
    assert t.shipping_discount == D("0")
    assert t.grand_total == D("2850.00")
    assert_conserved(result)


def test_uncapped_percentage_is_per_line():
    lines = [make_line("p1", price="33.33"), make_line("p2", price="66.67")]
    result = apply_discounts(lines, selection(lines, price=make_rule(value=15)))
    assert [lp.platform_discount for lp in result.lines] == [D("5.00"), D("10.00")]
    assert_conserved(result)


def test_flat_platform_discount_prorated_over_eligible_lines_only():
    lines = [
        make_line("p1", price="100", category_id="c1"),
        make_line("p2", price="300", category_id="c2"),
        make_line("p3", price="100", category_id="c1"),
    ]
    rule = make_rule(kind=DiscountKind.FLAT, value=50, scope=Scope.CATEGORY, category_ids={"c1"})

    result = apply_discounts(lines, selection(lines, price=rule))

    assert [lp.platform_discount for lp in result.lines] == [D("25.00"), D("0"), D("25.00")]
    assert result.lines[1].applied_platform is None
    assert result.lines[0].applied_platform.discount_id == rule.id
    assert_conserved(result)


def test_flat_platform_discount_capped_by_max_discount():
    lines = [make_line(price="1000")]
    rule = make_rule(kind=DiscountKind.FLAT, value=300, max_discount=120)
    assert apply_discounts(lines, selection(lines, price=rule)).totals.platform_discount_total == D("120.00")


def test_platform_discount_works_on_the_seller_remainder():
    lines = [make_line(price="100")]
    seller = make_rule(authority=Authority.SELLER, seller_id="s1", kind=DiscountKind.FLAT, value=100)
    platform = make_rule(kind=DiscountKind.FLAT, value=50)

    result = apply_discounts(lines, selection(lines, seller=[seller], price=platform))

    only = result.lines[0]
    assert only.seller_discount == D("100.00")
    assert only.platform_discount == D("0")
    assert only.final == D("0")
    assert only.applied_seller.authority is Authority.SELLER


def test_free_shipping_zeroes_the_fee():
    lines = [make_line(price="500")]
    ship = make_rule(kind=DiscountKind.FREE_SHIPPING, scope=Scope.SHIPPING, value=0)
    result = apply_discounts(lines, selection(lines, free_shipping=ship), shipping_fee=D("150"))

    assert result.totals.shipping_fee == D("150.00")
    assert result.totals.shipping_discount == D("150.00")
    assert result.totals.shipping_due == D("0")
    assert result.totals.grand_total == D("500.00")
    assert result.free_shipping.discount_id == ship.id


@pytest.mark.parametrize("seed", range(10))
def test_conservation_for_random_carts(seed):
    rng = random.Random(1000 + seed)
    lines = [
        make_line(f"p{i}", price=D(rng.randint(1, 99_999)) / 100, quantity=rng.randint(1, 4),
                  seller_id=rng.choice(["s1", "s2"]))
        for i in range(rng.randint(1, 8))
    ]
    seller = [
        make_rule(authority=Authority.SELLER, seller_id=l.seller_id,
                  kind=rng.choice([DiscountKind.FLAT, DiscountKind.PERCENTAGE]),
                  value=rng.randint(1, 60))
        if rng.random() > 0.5 else None
        for l in lines
    ]
    price = make_rule(kind=rng.choice([DiscountKind.FLAT, DiscountKind.PERCENTAGE]),
                      value=rng.randint(1, 90), max_discount=rng.choice([None, 25, 400]))

    result = apply_discounts(lines, selection(lines, seller=seller, price=price), shipping_fee=D("150"))

    assert_conserved(result)
    assert result.totals.platform_discount_total <= (price.max_discount or result.totals.subtotal)
