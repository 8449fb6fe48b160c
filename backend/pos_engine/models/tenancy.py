from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Store(db.Model):
    """
    Tenant. Every branch, product, customer, promotion and transfer belongs
    to exactly one store.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Branch(db.Model):
    """
    Physical location of a store.

    is_shift_open is the per-branch shift state record. It is flipped only
    by the shift service, together with the Shift row, in one transaction.
    The partial unique index on shifts backs it up at the storage level.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("store_id", "branch_name", name="uq_branches_store_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    branch_name = db.Column(db.String(128), nullable=False)

    is_shift_open = db.Column(db.Boolean, nullable=False, default=False)
    shift_opened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shift_closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("branches", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "branch_name": self.branch_name,
            "is_shift_open": self.is_shift_open,
            "shift_opened_at": to_utc_z(self.shift_opened_at),
            "shift_closed_at": to_utc_z(self.shift_closed_at),
            "is_active": self.is_active,
        }


class Staff(db.Model):
    """Staff account. Identity is verified outside this service."""
    __tablename__ = "staff"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    display_name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("staff", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "display_name": self.display_name,
            "email": self.email,
            "is_active": self.is_active,
        }
