from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


CASH_MOVEMENT_PAID_OUT = "PAID_OUT"
CASH_MOVEMENT_PAID_IN = "PAID_IN"

DIRECTION_IN = "IN"
DIRECTION_OUT = "OUT"


class Shift(db.Model):
    """
    Cash-drawer session at a branch.

    LIFECYCLE:
    - Created on open with is_active=True
    - Updated exactly once on close (is_active=False, end fields set)
    - Never deleted

    At most one active shift per branch, enforced by the partial unique index.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_branch_active",
            "branch_id",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    # Cash tracking (all amounts in cents)
    starting_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    ending_cash_cents = db.Column(db.Integer, nullable=True)  # counted at close
    expected_cash_cents = db.Column(db.Integer, nullable=True)  # computed at close
    variance_cents = db.Column(db.Integer, nullable=True)  # ending - expected

    opened_by = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    closed_by = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    note = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch", backref=db.backref("shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "branch_id": self.branch_id,
            "branch_name": self.branch.branch_name if self.branch else None,
            "starting_cash_cents": self.starting_cash_cents,
            "ending_cash_cents": self.ending_cash_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "variance_cents": self.variance_cents,
            "opened_by": self.opened_by,
            "closed_by": self.closed_by,
            "started_at": to_utc_z(self.started_at),
            "ended_at": to_utc_z(self.ended_at),
            "is_active": self.is_active,
            "note": self.note,
        }


class ShiftCashMovement(db.Model):
    """
    Cash entering or leaving the drawer outside of a customer payment.

    Change handed back on a sale is recorded here as PAID_OUT for audit.
    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "shift_cash_movements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False)
    direction = db.Column(db.String(3), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)
    created_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "movement_type": self.movement_type,
            "direction": self.direction,
            "amount_cents": self.amount_cents,
            "order_id": self.order_id,
            "note": self.note,
            "created_by_staff_id": self.created_by_staff_id,
            "created_at": to_utc_z(self.created_at),
        }
