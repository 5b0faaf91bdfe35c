# marketplace/cli.py
import click
from flask.cli import with_appcontext
from sqlalchemy import func

from .extensions import db
from .model import CouponRedemption, CouponRedemptionEvent, Discount


def usage_mismatches():
    """
    Coupons whose ``used_count`` disagrees with the recorded redemption events
    or with the per-customer counters. Read-only.
    """
    events = dict(
        db.session.query(CouponRedemptionEvent.discount_id, func.count(CouponRedemptionEvent.id))
        .group_by(CouponRedemptionEvent.discount_id)
        .all()
    )
    per_customer = dict(
        db.session.query(CouponRedemption.discount_id, func.coalesce(func.sum(CouponRedemption.used_count), 0))
        .group_by(CouponRedemption.discount_id)
        .all()
    )
    ids = set(events) | set(per_customer)
    rows = db.session.query(Discount).filter(
        (Discount.used_count > 0) | Discount.id.in_(ids or [0])
    ).order_by(Discount.id.asc()).all()

    out = []
    for d in rows:
        used = d.used_count or 0
        recorded = int(events.get(d.id, 0))
        customers = int(per_customer.get(d.id, 0))
        if used != recorded or used != customers:
            out.append({
                "discount_id": d.id,
                "code": d.code,
                "used_count": used,
                "events": recorded,
                "per_customer_total": customers,
            })
    return out


@click.command("coupon-usage-report")
@with_appcontext
def coupon_usage_report():
    """List coupons whose usage counters need manual reconciliation."""
    mismatches = usage_mismatches()
    if not mismatches:
        click.echo("All coupon usage counters match their redemption events")
        return
    for m in mismatches:
        click.echo(
            f"{m['discount_id']} {m['code'] or '-'}: used_count={m['used_count']} "
            f"events={m['events']} per_customer={m['per_customer_total']}"
        )
    click.echo(f"{len(mismatches)} coupon(s) need reconciliation")


def register_cli(app):
    app.cli.add_command(coupon_usage_report)
