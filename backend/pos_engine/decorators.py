# Overview: Request decorators that establish the store/branch/staff identity context.

from functools import wraps
from flask import request, jsonify, g

from .errors import BranchNotSelected, ValidationError, error_response
from .extensions import db
from .models import Branch, Staff, Store


STORE_HEADER = "X-Store-Id"
BRANCH_HEADER = "X-Branch-Id"
STAFF_HEADER = "X-Staff-Id"


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", details={"header": name})


def require_context(f):
    """
    Establish the identity context supplied by the session layer.

    Sets the following Flask g attributes:
    - g.store_id: tenant id - REQUIRED
    - g.branch_id: selected branch (None until a branch is selected)
    - g.staff_id: PIN-verified staff (None until verified)

    Returns 401 when the store header is missing or names no active store.
    A branch that is not part of the store is treated the same way.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            store_id = _header_int(STORE_HEADER)
            branch_id = _header_int(BRANCH_HEADER)
            staff_id = _header_int(STAFF_HEADER)
        except ValidationError as e:
            return error_response(e)

        if store_id is None:
            return jsonify({"error": "Store context required"}), 401

        store = db.session.query(Store).filter_by(id=store_id, is_active=True).first()
        if not store:
            return jsonify({"error": "Invalid store context"}), 401

        if branch_id is not None:
            branch = db.session.query(Branch).filter_by(id=branch_id, store_id=store_id).first()
            if not branch:
                return jsonify({"error": "Branch does not belong to this store"}), 401

        if staff_id is not None:
            staff = db.session.query(Staff).filter_by(id=staff_id, store_id=store_id, is_active=True).first()
            if not staff:
                return jsonify({"error": "Staff does not belong to this store"}), 401

        g.store_id = store_id
        g.branch_id = branch_id
        g.staff_id = staff_id

        return f(*args, **kwargs)

    return decorated_function


def require_branch(f):
    """Require a selected branch. Must be applied after @require_context."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if getattr(g, "branch_id", None) is None:
            return error_response(BranchNotSelected("Select a branch first"))
        return f(*args, **kwargs)
    return decorated_function
