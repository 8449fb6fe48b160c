from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# Movement kinds
MOVEMENT_SALE = "SALE"
MOVEMENT_CANCEL_SALE = "CANCEL_SALE"
MOVEMENT_RECEIVE = "RECEIVE"
MOVEMENT_ISSUE = "ISSUE"
MOVEMENT_ADJUST = "ADJUST"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_DAMAGE = "DAMAGE"

MOVEMENT_TYPES = frozenset({
    MOVEMENT_SALE,
    MOVEMENT_CANCEL_SALE,
    MOVEMENT_RECEIVE,
    MOVEMENT_ISSUE,
    MOVEMENT_ADJUST,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_DAMAGE,
})


class Product(db.Model):
    """Catalog entry. Prices are in cents; the catalog is read-only to the core."""
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_store_name", "store_id", "product_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    category_name = db.Column(db.String(128), nullable=True)
    base_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Points a customer must hold for this product to redeem one unit.
    # NULL or 0 means the product is not redeemable.
    points_to_redeem = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_name": self.product_name,
            "category_name": self.category_name,
            "base_price_cents": self.base_price_cents,
            "points_to_redeem": self.points_to_redeem,
            "is_active": self.is_active,
        }


class StockLevel(db.Model):
    """
    On-hand quantity of one product at one branch.

    INVARIANTS:
    - on_hand >= 0 at rest (over-deduction clamps to zero)
    - on_hand == SUM(stock_movements.quantity_change) for the same key
    - Only stock_ledger_service.adjust() writes this row
    """
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "product_id", name="uq_stock_levels_branch_product"),
        db.CheckConstraint("on_hand >= 0", name="ck_stock_levels_on_hand_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    on_hand = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "on_hand": self.on_hand,
            "reorder_level": self.reorder_level,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of a stock level change.

    requested_change is the delta the caller asked for; quantity_change is
    what was applied (they differ only when a deduction was clamped at zero).
    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_branch_product", "branch_id", "product_id"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    requested_change = db.Column(db.Integer, nullable=False)
    quantity_change = db.Column(db.Integer, nullable=False)
    from_stock_count = db.Column(db.Integer, nullable=False)
    to_stock_count = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    note = db.Column(db.Text, nullable=True)
    changed_by = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True, index=True)

    # What caused the change, e.g. ("orders", 12) or ("stock_transfers", 3)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "product_name": self.product.product_name if self.product else None,
            "movement_type": self.movement_type,
            "requested_change": self.requested_change,
            "quantity_change": self.quantity_change,
            "from_stock_count": self.from_stock_count,
            "to_stock_count": self.to_stock_count,
            "reason": self.reason,
            "note": self.note,
            "changed_by": self.changed_by,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
        }


class StockCount(db.Model):
    """
    Physical count taken at shift close.

    Audit only: recording a count never changes stock levels.
    """
    __tablename__ = "stock_counts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)
    counted_by = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship("StockCountLine", backref="stock_count", lazy=True, order_by="StockCountLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "shift_id": self.shift_id,
            "counted_by": self.counted_by,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class StockCountLine(db.Model):
    __tablename__ = "stock_count_lines"
    __table_args__ = (
        db.UniqueConstraint("stock_count_id", "product_id", name="uq_stock_count_lines_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_count_id = db.Column(db.Integer, db.ForeignKey("stock_counts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    expected_quantity = db.Column(db.Integer, nullable=False)  # ledger on-hand at close
    actual_quantity = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)  # actual - expected

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "expected_quantity": self.expected_quantity,
            "actual_quantity": self.actual_quantity,
            "difference": self.difference,
        }
