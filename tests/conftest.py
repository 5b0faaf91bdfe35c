"""Shared fixtures: an app bound to a throwaway SQLite file plus row factories."""
from decimal import Decimal
from itertools import count

import pytest
from flask_jwt_extended import create_access_token

from marketplace import create_app
from marketplace.config import TestingConfig
from marketplace.extensions import db
from marketplace.model import Cart, CartItem, Discount, Product

_names = count(1)


@pytest.fixture
def app(tmp_path):
    app = create_app(TestingConfig, {
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
    })
    ctx = app.app_context()
    ctx.push()
    try:
        yield app
    finally:
        db.session.remove()
        db.engine.dispose()
        ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def _headers(customer_id="cust-1"):
        token = create_access_token(identity=str(customer_id))
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def make_discount(app):
    """Persist a platform percentage campaign unless told otherwise."""
    def _make(**kw):
        fields = dict(
            authority="platform",
            kind="percentage",
            value=Decimal("10"),
            priority=0,
            is_active=True,
            status="active",
        )
        fields.update(kw)
        d = Discount(**fields)
        db.session.add(d)
        db.session.commit()
        return d
    return _make


@pytest.fixture
def make_coupon(make_discount):
    def _make(code, **kw):
        fields = dict(code=code, code_type="coupon", scope="store")
        fields.update(kw)
        return make_discount(**fields)
    return _make


@pytest.fixture
def make_product(app):
    def _make(price, seller_id="seller-a", category_id="cat-1", name=None, **kw):
        p = Product(
            name=name or f"Product {next(_names)}",
            price=Decimal(str(price)),
            seller_id=seller_id,
            category_id=category_id,
            **kw,
        )
        db.session.add(p)
        db.session.commit()
        return p
    return _make


@pytest.fixture
def make_cart(app):
    def _make(customer_id, products, quantities=None, coupon_code=None):
        cart = Cart(customer_id=str(customer_id), status="active", coupon_code=coupon_code)
        for i, p in enumerate(products):
            cart.items.append(CartItem(
                product_id=str(p.id),
                quantity=(quantities or {}).get(i, 1),
                price=p.price,
                seller_id=p.seller_id,
                category_id=p.category_id,
            ))
        db.session.add(cart)
        db.session.commit()
        return cart
    return _make


