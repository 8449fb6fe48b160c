from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


POINTS_EARN = "EARN"
POINTS_REDEEM = "REDEEM"
POINTS_REVERSE = "REVERSE"


class Customer(db.Model):
    """
    Loyalty member of a store.

    Registration and editing live outside this service; the engine only
    looks customers up and attaches them to orders.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("store_id", "customer_code", name="uq_customers_store_code"),
        db.Index("ix_customers_store_active", "store_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    customer_code = db.Column(db.String(64), nullable=True)
    full_name = db.Column(db.String(255), nullable=False)
    phone_last4 = db.Column(db.String(4), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "customer_code": self.customer_code,
            "full_name": self.full_name,
            "phone_last4": self.phone_last4,
            "is_active": self.is_active,
        }


class CustomerProductPoints(db.Model):
    """
    Points balance of one customer for one product.

    points is the spendable balance; total_points is lifetime earned and
    only ever grows.
    """
    __tablename__ = "customer_product_points"
    __table_args__ = (
        db.UniqueConstraint("store_id", "customer_id", "product_id", name="uq_customer_product_points"),
        db.CheckConstraint("points >= 0", name="ck_customer_product_points_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    points = db.Column(db.Integer, nullable=False, default=0)
    total_points = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "product_name": self.product.product_name if self.product else None,
            "points_to_redeem": self.product.points_to_redeem if self.product else None,
            "points": self.points,
            "total_points": self.total_points,
            "updated_at": to_utc_z(self.updated_at),
        }


class PointTransaction(db.Model):
    """
    Immutable ledger entry paired with every balance change.

    points_change is signed: EARN positive, REDEEM and REVERSE negative.
    """
    __tablename__ = "point_transactions"
    __table_args__ = (
        db.Index("ix_point_transactions_customer", "store_id", "customer_id"),
        db.Index("ix_point_transactions_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    transaction_type = db.Column(db.String(16), nullable=False)  # EARN, REDEEM, REVERSE
    points_change = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "transaction_type": self.transaction_type,
            "points_change": self.points_change,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "staff_id": self.staff_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


class PointRedemption(db.Model):
    __tablename__ = "point_redemptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    points_used = db.Column(db.Integer, nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "points_used": self.points_used,
            "staff_id": self.staff_id,
            "created_at": to_utc_z(self.created_at),
        }
