"""
Product catalog: master data CRUD and the stock status derived from balances.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_service import ledger, models
from stock_service.exceptions import DuplicateSku, InvalidInput
from stock_service.models import StockStatus
from stock_service.utils import matches, normalize, page_window

logger = logging.getLogger(__name__)

INITIAL_STOCK_NOTE = "Initial stock"
UPDATABLE_FIELDS = ("name", "sku", "description", "min_stock")
SORT_KEYS = {
    "name": lambda view: normalize(view["name"]),
    "sku": lambda view: normalize(view["sku"]),
    "balance": lambda view: view["balance"],
}
SORT_DIRECTIONS = ("asc", "desc")


def status_for(balance: int, min_stock: int) -> StockStatus:
    """Classify a balance against the product's minimum stock threshold."""
    if balance <= 0:
        return StockStatus.OUT
    if balance < min_stock:
        return StockStatus.ATTN
    return StockStatus.OK


def to_view(product: models.Product, balance: int) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "sku": product.sku,
        "description": product.description,
        "min_stock": product.min_stock,
        "created_at": product.created_at,
        "updated_at": product.updated_at,
        "balance": balance,
        "status": status_for(balance, product.min_stock),
    }


def _require_text(value, field):
    if value is None or not str(value).strip():
        raise InvalidInput(f"{field} is required.")
    return str(value).strip()


def _require_count(value, field):
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInput(f"{field} must be a non-negative integer, got {value!r}.")
    return value


def _sku_owner(db: Session, sku: str):
    return db.query(models.Product).filter(models.Product.sku == sku).first()


def _is_sku_conflict(exc: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed: products.sku"; PostgreSQL names the index
    message = str(exc.orig).lower()
    return "sku" in message and ("unique" in message or "duplicate" in message)


def get_product(db: Session, product_id: int) -> dict:
    product = ledger.get_product(db, product_id)
    return to_view(product, ledger.compute_balance(db, product.id))


def create_product(
    db: Session,
    name,
    sku,
    min_stock=0,
    description=None,
    initial_stock=0,
) -> dict:
    """
    Create a product, optionally seeded with an IN movement for ``initial_stock``.

    Product and seed movement are written in one transaction.
    """
    name = _require_text(name, "name")
    sku = _require_text(sku, "sku")
    min_stock = _require_count(min_stock, "min_stock")
    initial_stock = _require_count(initial_stock or 0, "initial_stock")

    if _sku_owner(db, sku) is not None:
        logger.warning(f"Rejected product creation: SKU {sku} already registered")
        raise DuplicateSku(sku)

    product = models.Product(name=name, sku=sku, description=description, min_stock=min_stock)
    try:
        db.add(product)
        db.flush()
        if initial_stock > 0:
            ledger.append_movement(
                db, product, models.MovementType.IN, initial_stock, note=INITIAL_STOCK_NOTE
            )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not _is_sku_conflict(exc):
            raise
        raise DuplicateSku(sku) from None
    except Exception:
        db.rollback()
        raise

    db.refresh(product)
    logger.info(f"Created product {product.id} ({product.sku}) with initial stock {initial_stock}")
    return to_view(product, initial_stock)


def update_product(db: Session, product_id: int, fields: dict) -> dict:
    """Apply a partial update of name, sku, description and min_stock."""
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise InvalidInput(f"Cannot update field(s): {', '.join(sorted(unknown))}.")

    product = ledger.get_product(db, product_id)

    changes = {}
    if "name" in fields:
        changes["name"] = _require_text(fields["name"], "name")
    if "sku" in fields:
        changes["sku"] = _require_text(fields["sku"], "sku")
        owner = _sku_owner(db, changes["sku"])
        if owner is not None and owner.id != product.id:
            logger.warning(f"Rejected update of product {product_id}: SKU {changes['sku']} in use")
            raise DuplicateSku(changes["sku"], f"SKU '{changes['sku']}' already in use.")
    if "description" in fields:
        changes["description"] = fields["description"]
    if "min_stock" in fields:
        changes["min_stock"] = _require_count(fields["min_stock"], "min_stock")

    for key, value in changes.items():
        setattr(product, key, value)

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not _is_sku_conflict(exc):
            raise
        raise DuplicateSku(changes.get("sku", product.sku)) from None
    except Exception:
        db.rollback()
        raise

    db.refresh(product)
    logger.info(f"Updated product {product_id}: {', '.join(sorted(changes)) or 'no changes'}")
    return to_view(product, ledger.compute_balance(db, product.id))


def delete_product(db: Session, product_id: int) -> None:
    """Delete a product together with its movements, all or nothing."""
    product = ledger.get_product(db, product_id)
    try:
        removed = (
            db.query(models.StockMovement)
            .filter(models.StockMovement.product_id == product.id)
            .delete(synchronize_session=False)
        )
        db.delete(product)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Deleting product {product_id} failed, nothing was removed")
        raise
    logger.info(f"Deleted product {product_id} and {removed} movement(s)")


def list_products(
    db: Session,
    search=None,
    statuses=None,
    sort_by: str = "name",
    sort_dir: str = "asc",
    page: int = 1,
    page_size: int = 10,
):
    """
    Return ``(items, total)`` of products with their balance and status.

    Search matches name or SKU ignoring case and accents. The status filter
    runs on the derived status, so it is applied after balances are computed
    and before sorting and paging. Equal sort keys keep ascending id order.
    """
    if sort_by not in SORT_KEYS:
        raise InvalidInput(f"sort_by must be one of {', '.join(SORT_KEYS)}.")
    if sort_dir not in SORT_DIRECTIONS:
        raise InvalidInput("sort_dir must be asc or desc.")
    try:
        wanted = {StockStatus(s) for s in statuses or ()}
    except ValueError:
        raise InvalidInput("status must be one of OK, ATTN, OUT.") from None

    products = db.query(models.Product).order_by(models.Product.id).all()
    term = (search or "").strip()
    if term:
        products = [p for p in products if matches(term, p.name, p.sku)]

    balances = ledger.balances_for(db, [p.id for p in products])
    views = [to_view(p, balances[p.id]) for p in products]
    if wanted:
        views = [v for v in views if v["status"] in wanted]

    views.sort(key=SORT_KEYS[sort_by], reverse=sort_dir == "desc")

    offset, limit = page_window(page, page_size)
    return views[offset:offset + limit], len(views)
