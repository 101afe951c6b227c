from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class AttributeType(db.Model):
    """
    A variation axis such as size or color, with its allowed options.

    Deactivating a type hides it from grid generation; existing variants
    keep their options.
    """
    __tablename__ = "attribute_types"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    options = db.relationship(
        "AttributeOption",
        back_populates="attribute_type",
        order_by="AttributeOption.position",
        cascade="all, delete-orphan",
    )

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "options": [option.to_dict() for option in self.options],
            "created_at": to_utc_z(self.created_at),
        }


class AttributeOption(db.Model):
    __tablename__ = "attribute_options"
    __table_args__ = (
        db.UniqueConstraint("attribute_type_id", "value", name="uq_attribute_options_type_value"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    attribute_type_id = db.Column(db.Integer, db.ForeignKey("attribute_types.id"), nullable=False, index=True)
    value = db.Column(db.String(64), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    attribute_type = db.relationship("AttributeType", back_populates="options")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "attribute_type_id": self.attribute_type_id,
            "value": self.value,
            "position": self.position,
        }


variant_options = db.Table(
    "variant_options",
    db.Column("variant_id", db.Integer, db.ForeignKey("product_variants.id"), primary_key=True),
    db.Column("option_id", db.Integer, db.ForeignKey("attribute_options.id"), primary_key=True),
)


class ProductVariant(db.Model):
    """
    One sellable combination of attribute options for a product.

    stock_quantity is the variant's own counter. Like Product.stock_quantity
    it only moves together with a StockMovement row carrying variant_id.

    price_cents is optional; None means the product price applies.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.Index("ix_product_variants_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)

    price_cents = db.Column(db.Integer, nullable=True)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    product = db.relationship("Product", backref=db.backref("variants", lazy="dynamic"))
    options = db.relationship("AttributeOption", secondary=variant_options, lazy="selectin")

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"

    @property
    def effective_price_cents(self) -> int:
        if self.price_cents is not None:
            return self.price_cents
        return self.product.price_cents

    @property
    def option_key(self) -> frozenset:
        return frozenset(option.id for option in self.options)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "barcode": self.barcode,
            "price_cents": self.price_cents,
            "effective_price_cents": self.effective_price_cents,
            "stock_quantity": self.stock_quantity,
            "status": self.status,
            "options": [
                {
                    "option_id": option.id,
                    "attribute_type_id": option.attribute_type_id,
                    "attribute": option.attribute_type.name,
                    "value": option.value,
                }
                for option in sorted(self.options, key=lambda o: (o.attribute_type_id, o.position, o.id))
            ],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
