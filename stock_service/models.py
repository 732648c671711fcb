import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from stock_service.database import Base


class MovementType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class StockStatus(str, enum.Enum):
    OK = "OK"
    ATTN = "ATTN"
    OUT = "OUT"


class Product(Base):
    """Product master data. Balance is never stored, see ledger.compute_balance."""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    sku = Column(String(64), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    min_stock = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    movements = relationship("StockMovement", back_populates="product", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("min_stock >= 0", name="chk_products_min_stock"),
    )

    def __repr__(self):
        return f"<Product {self.id}: {self.sku}>"


class StockMovement(Base):
    """Append-only ledger entry for a product"""
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = Column(Enum(MovementType, name="movement_type"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)
    note = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    product = relationship("Product", back_populates="movements")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_stock_movements_quantity"),
        Index("ix_stock_movements_product_date", "product_id", "date"),
    )

    def __repr__(self):
        return f"<StockMovement {self.id}: {self.type.value} {self.quantity} on product {self.product_id}>"
