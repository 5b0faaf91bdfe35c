# marketplace/model/product.py
from ..extensions import db
from sqlalchemy.sql import func


class Product(db.Model):
    __tablename__ = "product"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)

    price = db.Column(db.Numeric(12, 2), nullable=True)
    selling_price = db.Column(db.Numeric(12, 2), nullable=True)  # older listings only carry this

    # the seller is the payee for every line of this product
    seller_id = db.Column(db.String(64), nullable=True, index=True)
    category_id = db.Column(db.String(64), nullable=True, index=True)
    status = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "price": float(self.price) if self.price is not None else None,
            "selling_price": float(self.selling_price) if self.selling_price is not None else None,
            "seller_id": self.seller_id,
            "category_id": self.category_id,
            "status": self.status,
        }
