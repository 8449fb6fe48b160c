# Overview: Read-only tenant and catalog lookups used by the commerce services.

from __future__ import annotations

from ..errors import NotFound
from ..extensions import db
from ..models import Branch, Customer, Product, StockLevel, Store


def get_store(store_id: int) -> Store:
    store = db.session.query(Store).filter_by(id=store_id, is_active=True).first()
    if not store:
        raise NotFound(f"Store {store_id} not found", details={"store_id": store_id})
    return store


def get_branch(store_id: int, branch_id: int) -> Branch:
    branch = db.session.query(Branch).filter_by(id=branch_id, store_id=store_id).first()
    if not branch:
        raise NotFound(f"Branch {branch_id} not found", details={"branch_id": branch_id})
    return branch


def get_product(store_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, store_id=store_id).first()
    if not product:
        raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def get_products(store_id: int, product_ids) -> dict[int, Product]:
    """Resolve several products at once; NotFound names the first missing id."""
    wanted = {int(pid) for pid in product_ids}
    if not wanted:
        return {}
    rows = (
        db.session.query(Product)
        .filter(Product.store_id == store_id, Product.id.in_(wanted))
        .all()
    )
    found = {p.id: p for p in rows}
    missing = sorted(wanted - set(found))
    if missing:
        raise NotFound(f"Product {missing[0]} not found", details={"product_ids": missing})
    return found


def get_customer(store_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, store_id=store_id).first()
    if not customer:
        raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def list_branch_products(store_id: int, branch_id: int) -> list[dict]:
    """Active products of the store with the branch's on-hand (0 without a stock row)."""
    get_branch(store_id, branch_id)

    rows = (
        db.session.query(Product, StockLevel)
        .outerjoin(
            StockLevel,
            (StockLevel.product_id == Product.id) & (StockLevel.branch_id == branch_id),
        )
        .filter(Product.store_id == store_id, Product.is_active.is_(True))
        .order_by(Product.product_name.asc())
        .all()
    )

    results = []
    for product, level in rows:
        data = product.to_dict()
        data["on_hand"] = level.on_hand if level else 0
        data["reorder_level"] = level.reorder_level if level else 0
        results.append(data)
    return results
