from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


TRANSFER_STATUS_CREATED = "CREATED"
TRANSFER_STATUS_SENT = "SENT"
TRANSFER_STATUS_RECEIVED = "RECEIVED"
TRANSFER_STATUS_CANCELLED = "CANCELLED"


class StockTransfer(db.Model):
    """
    Request to move stock into a branch.

    from_branch_id NULL means the central warehouse. Source stock leaves at
    SENT and destination stock arrives at RECEIVED, never at CREATED.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.Index("ix_stock_transfers_to_status", "to_branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    from_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    to_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_CREATED, index=True)
    note = db.Column(db.Text, nullable=True)

    requested_by = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    sent_by = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_by = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship("StockTransferItem", backref="transfer", lazy=True, order_by="StockTransferItem.id")
    from_branch = db.relationship("Branch", foreign_keys=[from_branch_id])
    to_branch = db.relationship("Branch", foreign_keys=[to_branch_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_from_central(self) -> bool:
        return self.from_branch_id is None

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "from_branch_id": self.from_branch_id,
            "from_branch_name": self.from_branch.branch_name if self.from_branch else None,
            "to_branch_id": self.to_branch_id,
            "to_branch_name": self.to_branch.branch_name if self.to_branch else None,
            "status": self.status,
            "note": self.note,
            "requested_by": self.requested_by,
            "sent_by": self.sent_by,
            "sent_at": to_utc_z(self.sent_at),
            "received_by": self.received_by,
            "received_at": to_utc_z(self.received_at),
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class StockTransferItem(db.Model):
    __tablename__ = "stock_transfer_items"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "product_id", name="uq_stock_transfer_items_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    send_count = db.Column(db.Integer, nullable=False)
    receive_count = db.Column(db.Integer, nullable=True)  # set on receive; may differ from send_count

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.product_name if self.product else None,
            "send_count": self.send_count,
            "receive_count": self.receive_count,
        }
