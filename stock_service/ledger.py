"""
Stock ledger: append-only movements and the balance derived from them.

The balance of a product is never stored. It is always recomputed from the
full movement history as sum(IN) - sum(OUT).
"""
import logging

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from stock_service import models
from stock_service.exceptions import (
    InsufficientBalance,
    InvalidInput,
    InvalidQuantity,
    NotFound,
)
from stock_service.utils import as_utc, matches, page_window, utcnow

logger = logging.getLogger(__name__)

QUICK_OUT_NOTE = "Quick out - {quantity} un."
ZERO_OUT_NOTE = "Zero out"


def _signed_quantity():
    return case(
        (models.StockMovement.type == models.MovementType.IN, models.StockMovement.quantity),
        else_=-models.StockMovement.quantity,
    )


def _check_quantity(quantity):
    # bool is an int subclass; True must not count as 1
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(f"Quantity must be a positive integer, got {quantity!r}.")


def _coerce_type(movement_type):
    try:
        return models.MovementType(movement_type)
    except ValueError:
        raise InvalidInput(f"Movement type must be IN or OUT, got {movement_type!r}.") from None


def _clean_note(note):
    if note is None:
        return None
    note = str(note).strip()
    return note or None


def get_product(db: Session, product_id: int, lock: bool = False) -> models.Product:
    """Fetch a product or raise NotFound. ``lock`` takes a row lock for the transaction."""
    query = db.query(models.Product).filter(models.Product.id == product_id)
    if lock:
        query = query.with_for_update()
    product = query.first()
    if product is None:
        logger.warning(f"Product with ID {product_id} not found")
        raise NotFound(f"Product {product_id} not found.")
    return product


def compute_balance(db: Session, product_id: int) -> int:
    total = (
        db.query(func.coalesce(func.sum(_signed_quantity()), 0))
        .filter(models.StockMovement.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def balances_for(db: Session, product_ids) -> dict:
    """Balances for many products in one grouped query; products without movements get 0."""
    ids = list(product_ids)
    balances = dict.fromkeys(ids, 0)
    if not ids:
        return balances
    rows = (
        db.query(models.StockMovement.product_id, func.sum(_signed_quantity()))
        .filter(models.StockMovement.product_id.in_(ids))
        .group_by(models.StockMovement.product_id)
        .all()
    )
    for product_id, total in rows:
        balances[product_id] = int(total or 0)
    return balances


def append_movement(db: Session, product: models.Product, movement_type, quantity, date=None, note=None):
    """
    Add a movement for ``product`` to the current transaction without committing.

    OUT movements are checked against the balance over all existing movements;
    nothing is added to the session when the check fails.
    """
    _check_quantity(quantity)
    movement_type = _coerce_type(movement_type)

    if movement_type is models.MovementType.OUT:
        available = compute_balance(db, product.id)
        if quantity > available:
            logger.warning(
                f"OUT of {quantity} rejected for product {product.id} ({product.sku}): balance is {available}"
            )
            raise InsufficientBalance(quantity, available)

    movement = models.StockMovement(
        product_id=product.id,
        type=movement_type,
        quantity=quantity,
        date=as_utc(date) if date is not None else utcnow(),
        note=_clean_note(note),
    )
    db.add(movement)
    db.flush()
    return movement


def record_movement(db: Session, product_id: int, movement_type, quantity, date=None, note=None):
    """Record one IN or OUT movement for a product and return the persisted row."""
    _check_quantity(quantity)
    movement_type = _coerce_type(movement_type)

    try:
        product = get_product(db, product_id, lock=True)
        movement = append_movement(db, product, movement_type, quantity, date=date, note=note)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(movement)
    logger.info(f"Recorded {movement_type.value} of {quantity} for product {product_id} (movement {movement.id})")
    return movement


def list_movements(
    db: Session,
    product_id: int,
    movement_type=None,
    date_from=None,
    date_to=None,
    note_contains=None,
    page: int = 1,
    page_size: int = 20,
):
    """Return ``(items, total)`` for one product's movements, newest first."""
    get_product(db, product_id)

    query = db.query(models.StockMovement).filter(models.StockMovement.product_id == product_id)
    if movement_type:
        query = query.filter(models.StockMovement.type == _coerce_type(movement_type))
    if date_from is not None:
        query = query.filter(models.StockMovement.date >= as_utc(date_from))
    if date_to is not None:
        query = query.filter(models.StockMovement.date <= as_utc(date_to))
    query = query.order_by(models.StockMovement.date.desc(), models.StockMovement.id.desc())
    offset, limit = page_window(page, page_size)

    if note_contains:
        # same accent-insensitive rule as quick_out_history; SQL LIKE only folds ASCII
        rows = [m for m in query.all() if matches(note_contains, m.note)]
        return rows[offset:offset + limit], len(rows)

    total = query.order_by(None).count()
    items = query.offset(offset).limit(limit).all()
    return items, total


def quick_out(db: Session, product_id: int, quantity, note=None) -> dict:
    """Single-step OUT dated now. Also reports the balance left afterwards."""
    _check_quantity(quantity)

    try:
        product = get_product(db, product_id, lock=True)
        movement = append_movement(
            db,
            product,
            models.MovementType.OUT,
            quantity,
            note=_clean_note(note) or QUICK_OUT_NOTE.format(quantity=quantity),
        )
        product.updated_at = func.now()
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(movement)
    db.refresh(product)
    new_balance = compute_balance(db, product.id)
    logger.info(f"Quick out of {quantity} for product {product.id}, balance now {new_balance}")
    return {
        "success": True,
        "movement": movement,
        "new_balance": new_balance,
        "product": product,
    }


def zero_out(db: Session, product_id: int):
    """
    Bring a product's balance to 0 with a single OUT for the whole balance.

    Returns the compensating movement, or None when there was nothing to zero.
    """
    try:
        product = get_product(db, product_id, lock=True)
        balance = compute_balance(db, product.id)
        movement = None
        if balance > 0:
            movement = append_movement(db, product, models.MovementType.OUT, balance, note=ZERO_OUT_NOTE)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if movement is None:
        logger.info(f"Product {product_id} already has no stock, nothing to zero")
        return None
    db.refresh(movement)
    logger.info(f"Zeroed product {product_id}: OUT of {movement.quantity}")
    return movement


def quick_out_history(db: Session, q=None, date_from=None, date_to=None, page: int = 1, page_size: int = 20):
    """OUT movements across all products, newest first, as ``(items, total)``."""
    query = (
        db.query(models.StockMovement, models.Product)
        .join(models.Product, models.Product.id == models.StockMovement.product_id)
        .filter(models.StockMovement.type == models.MovementType.OUT)
    )
    if date_from is not None:
        query = query.filter(models.StockMovement.date >= as_utc(date_from))
    if date_to is not None:
        query = query.filter(models.StockMovement.date <= as_utc(date_to))

    rows = query.order_by(models.StockMovement.date.desc(), models.StockMovement.id.desc()).all()
    # name/sku/note matching ignores accents, which SQL LIKE cannot do portably
    if q:
        rows = [(m, p) for m, p in rows if matches(q, p.name, p.sku, m.note)]

    offset, limit = page_window(page, page_size)
    items = [
        {
            "id": movement.id,
            "product_id": product.id,
            "product_name": product.name,
            "product_sku": product.sku,
            "quantity": movement.quantity,
            "date": movement.date,
            "note": movement.note,
        }
        for movement, product in rows[offset:offset + limit]
    ]
    return items, len(rows)
