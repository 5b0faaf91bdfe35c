# marketplace/services/coupon_reservation.py
"""
Coupon reservation at order creation.

Runs inside the caller's order transaction, as three conditional writes:

  1) idempotency claim   insert (discount, customer, order) event; a duplicate
                         means this order already holds the coupon -> replay
  2) global slot         UPDATE discount SET used_count = used_count + 1
                         WHERE <live, in window, min subtotal, under cap>
  3) per-customer slot   bump or create the customer's redemption counter
                         WHERE used_count < per_user_limit

A failing step undoes the previous ones (reverse order) before the error
reaches the caller. ``used_count`` is never written anywhere else.
"""
from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError

from ..errors import CouponNotEligible, CouponNotFound, InvalidCouponFormat, PerUserLimitReached
from ..extensions import begin_write, db
from ..model import CouponRedemption, CouponRedemptionEvent, Discount
from ..utils.dates import as_naive_utc, isoformat_or_none, utcnow
from ..utils.money import parse_money, to_float_money
from .discount_catalog import (
    MalformedDiscount,
    code_clause,
    find_coupon_row,
    find_coupon_rows,
    is_live,
    live_clause,
    minimum_subtotal,
    platform_clause,
    to_rule,
)
from .pricing_service import validate_coupon_code
from .saga import Saga

logger = structlog.get_logger()


@dataclass(frozen=True)
class ReservationOutcome:
    discount_id: str
    code: str
    customer_id: str
    order_reference: str
    snapshot: dict
    replayed: bool = False

    @property
    def kind(self):
        return self.snapshot.get("kind")

    @property
    def value(self):
        return self.snapshot.get("value")


class _AlreadyReserved(Exception):
    def __init__(self, event):
        super().__init__("coupon already reserved for this order")
        self.event = event


def coupon_snapshot(row: Discount, code: str, now) -> dict:
    """Frozen copy of the coupon terms, stored with the order."""
    rule = to_rule(row)
    return {
        "discount_id": rule.id,
        "code": code,
        "authority": rule.authority.value,
        "code_type": rule.code_type.value,
        "kind": rule.kind.value,
        "value": float(rule.value),
        "max_discount": float(rule.max_discount) if rule.max_discount is not None else None,
        "min_cart_subtotal": float(rule.min_cart_subtotal),
        "priority": rule.priority,
        "stackable_with_free_shipping": rule.stackable_with_free_shipping,
        "start_at": isoformat_or_none(row.start_at or row.starts_at),
        "end_at": isoformat_or_none(row.end_at or row.ends_at),
        "reserved_at": now.isoformat(),
    }


def _ineligibility_reason(row: Discount, subtotal, now) -> str:
    db.session.refresh(row)
    start = as_naive_utc(row.start_at or row.starts_at)
    end = as_naive_utc(row.end_at or row.ends_at)
    if start and start > now:
        return "Coupon is not started yet"
    if end and end < now:
        return "Coupon has expired"
    if not is_live(row, now):
        return "Coupon is not active"
    minimum = minimum_subtotal(row)
    if subtotal < minimum:
        return f"Cart subtotal must be at least {to_float_money(minimum):.2f}"
    if row.usage_limit_total is not None and (row.used_count or 0) >= row.usage_limit_total:
        return "Coupon usage limit reached"
    return CouponNotEligible.default_message


# ---- step 1: idempotency claim ---------------------------------------------

def _claim(discount_id, customer_id, order_reference, code, snapshot):
    event = CouponRedemptionEvent(
        discount_id=discount_id,
        customer_id=customer_id,
        order_reference=order_reference,
        code=code,
        outcome=snapshot,
    )
    try:
        with db.session.begin_nested():
            db.session.add(event)
    except IntegrityError:
        prior = (
            db.session.query(CouponRedemptionEvent)
            .filter_by(discount_id=discount_id, customer_id=customer_id, order_reference=order_reference)
            .first()
        )
        raise _AlreadyReserved(prior)
    return event


def _release_claim(event):
    deleted = (
        db.session.query(CouponRedemptionEvent)
        .filter_by(
            discount_id=event.discount_id,
            customer_id=event.customer_id,
            order_reference=event.order_reference,
        )
        .delete(synchronize_session="fetch")
    )
    if deleted != 1:
        raise RuntimeError(f"idempotency claim for order {event.order_reference} was not found")


# ---- step 2: global usage slot ---------------------------------------------

def _take_global_slot(row: Discount, code: str, subtotal, now):
    stmt = (
        update(Discount)
        .where(
            Discount.id == row.id,
            code_clause(code),
            platform_clause(),
            live_clause(now),
            func.coalesce(Discount.min_cart_subtotal, 0) <= subtotal,
            or_(
                Discount.usage_limit_total.is_(None),
                func.coalesce(Discount.used_count, 0) < Discount.usage_limit_total,
            ),
        )
        .values(used_count=func.coalesce(Discount.used_count, 0) + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        raise CouponNotEligible(_ineligibility_reason(row, subtotal, now), discount_id=str(row.id))
    return row.id


def _release_global_slot(discount_id, now):
    stmt = (
        update(Discount)
        .where(Discount.id == discount_id, Discount.used_count > 0)
        .values(used_count=Discount.used_count - 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        raise RuntimeError(f"could not release usage slot of discount {discount_id}")


# ---- step 3: per-customer slot ---------------------------------------------

def _take_customer_slot(row: Discount, customer_id, order_reference, code, now):
    limit = row.per_user_limit
    filters = [
        CouponRedemption.discount_id == row.id,
        CouponRedemption.customer_id == customer_id,
    ]
    if limit is not None:
        filters.append(CouponRedemption.used_count < limit)
    bump = (
        update(CouponRedemption)
        .where(*filters)
        .values(
            used_count=CouponRedemption.used_count + 1,
            last_order_reference=order_reference,
            last_code=code,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(bump).rowcount == 1:
        return True

    existing = (
        db.session.query(CouponRedemption.id)
        .filter_by(discount_id=row.id, customer_id=customer_id)
        .first()
    )
    if existing is None and (limit is None or limit >= 1):
        try:
            with db.session.begin_nested():
                db.session.add(CouponRedemption(
                    discount_id=row.id,
                    customer_id=customer_id,
                    used_count=1,
                    last_order_reference=order_reference,
                    last_code=code,
                ))
            return True
        except IntegrityError:
            # the same customer's other order created the counter first
            if db.session.execute(bump).rowcount == 1:
                return True

    raise PerUserLimitReached(discount_id=str(row.id), per_user_limit=limit)


# ---- entry point -------------------------------------------------------------

def _pick_coupon_row(rows, now):
    for row in rows:
        if is_live(row, now):
            return row
    return rows[0]


def reserve_coupon(coupon_code, customer_id, order_reference, cart_subtotal, now=None,
                   discount_id=None) -> ReservationOutcome:
    """
    Claim one use of a coupon for one order. Must run inside the transaction
    that persists the order; the caller commits or rolls back.

    ``discount_id`` pins the coupon record the order was priced with; without
    it the best record carrying the code is used.

    Raises CouponNotFound, CouponNotEligible or PerUserLimitReached with any
    partial reservation already undone.
    """
    code = validate_coupon_code(coupon_code)
    if not code:
        raise InvalidCouponFormat("Coupon code is required")
    customer_id = str(customer_id or "").strip()
    order_reference = str(order_reference or "").strip()
    if not customer_id or not order_reference:
        raise ValueError("customer_id and order_reference are required for coupon reservation")
    subtotal = parse_money(cart_subtotal)
    if subtotal is None:
        raise ValueError("Invalid cart subtotal for coupon reservation")
    now = now or utcnow()

    begin_write(db.session)
    if discount_id is not None:
        row = find_coupon_row(discount_id, code)
        if row is None:
            raise CouponNotFound(code=code, discount_id=str(discount_id))
    else:
        rows = find_coupon_rows(code)
        if not rows:
            raise CouponNotFound(code=code)
        row = _pick_coupon_row(rows, now)
    try:
        snapshot = coupon_snapshot(row, code, now)
    except MalformedDiscount as e:
        logger.warning("discount_record_skipped", discount_id=row.id, reason=str(e))
        raise CouponNotEligible("Coupon is not active", discount_id=str(row.id))

    log = logger.bind(discount_id=row.id, customer_id=customer_id, order_reference=order_reference)
    saga = (
        Saga("coupon_reservation", discount_id=row.id, order_reference=order_reference)
        .step(
            "idempotency_claim",
            lambda _: _claim(row.id, customer_id, order_reference, code, snapshot),
            compensate=_release_claim,
        )
        .step(
            "global_slot",
            lambda _: _take_global_slot(row, code, subtotal, now),
            compensate=lambda discount_id: _release_global_slot(discount_id, now),
        )
        .step(
            "per_customer_slot",
            lambda _: _take_customer_slot(row, customer_id, order_reference, code, now),
        )
    )

    try:
        saga.run()
    except _AlreadyReserved as replay:
        recorded = replay.event.outcome if replay.event is not None and replay.event.outcome else snapshot
        log.info("coupon_reservation_replayed")
        return ReservationOutcome(
            discount_id=str(row.id),
            code=code,
            customer_id=customer_id,
            order_reference=order_reference,
            snapshot=recorded,
            replayed=True,
        )
    except (CouponNotEligible, PerUserLimitReached) as e:
        log.info("coupon_reservation_rejected", reason=e.message, rollback_complete=saga.report.rollback_complete)
        raise

    log.info("coupon_reserved", code=code)
    return ReservationOutcome(
        discount_id=str(row.id),
        code=code,
        customer_id=customer_id,
        order_reference=order_reference,
        snapshot=snapshot,
    )
