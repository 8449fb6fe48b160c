from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Promotion(db.Model):
    """
    Promotions and discounts.

    Store-wide (branch_id=NULL) or limited to one branch. A promotion with
    no linked products is bill-level; otherwise it applies to the linked
    products only.

    Config columns are interpreted per promo_type:
    - PERCENT_DISCOUNT: percent_bps
    - FLAT_DISCOUNT: amount_cents
    - FIXED_SET_PRICE: old_set_total_cents, new_set_total_cents
    - THRESHOLD_PERCENT: min_quantity, percent_bps
    - THRESHOLD_FLAT: min_quantity, amount_cents
    """
    __tablename__ = "promotions"
    __table_args__ = (
        db.Index("ix_promotions_store_active", "store_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    promo_type = db.Column(db.String(32), nullable=False)

    percent_bps = db.Column(db.Integer, nullable=True)  # 1000 = 10%
    amount_cents = db.Column(db.Integer, nullable=True)
    old_set_total_cents = db.Column(db.Integer, nullable=True)
    new_set_total_cents = db.Column(db.Integer, nullable=True)
    min_quantity = db.Column(db.Integer, nullable=True)

    starts_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    products = db.relationship("PromotionProduct", backref="promotion", lazy=True, cascade="all, delete-orphan")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def product_ids(self) -> frozenset:
        return frozenset(link.product_id for link in self.products)

    @property
    def is_bill_level(self) -> bool:
        return not self.products

    def to_rule(self):
        """Build the pure evaluation rule for this row."""
        from ..services.promotion_engine import rule_from_columns

        return rule_from_columns(
            promo_type=self.promo_type,
            percent_bps=self.percent_bps,
            amount_cents=self.amount_cents,
            old_set_total_cents=self.old_set_total_cents,
            new_set_total_cents=self.new_set_total_cents,
            min_quantity=self.min_quantity,
            product_ids=self.product_ids,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "branch_id": self.branch_id,
            "name": self.name,
            "description": self.description,
            "promo_type": self.promo_type,
            "percent_bps": self.percent_bps,
            "amount_cents": self.amount_cents,
            "old_set_total_cents": self.old_set_total_cents,
            "new_set_total_cents": self.new_set_total_cents,
            "min_quantity": self.min_quantity,
            "product_ids": sorted(self.product_ids),
            "is_bill_level": self.is_bill_level,
            "starts_at": to_utc_z(self.starts_at),
            "ends_at": to_utc_z(self.ends_at),
            "is_active": self.is_active,
        }


class PromotionProduct(db.Model):
    __tablename__ = "promotion_products"
    __table_args__ = (
        db.UniqueConstraint("promotion_id", "product_id", name="uq_promotion_products"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
