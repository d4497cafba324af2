"""
Product model

Only the catalog fields the checkout needs plus the two stock counters.
stock_quantity is authoritative; blocked_stock is the part of it currently
held by pending orders.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, CheckConstraint
from sqlalchemy.orm import relationship

from stockhold.core.database import Base
from stockhold.core.utils import utcnow


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_quantity_nonnegative"),
        CheckConstraint("blocked_stock >= 0", name="ck_products_blocked_stock_nonnegative"),
        CheckConstraint("blocked_stock <= stock_quantity", name="ck_products_blocked_within_stock"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)

    # Inventory
    stock_quantity = Column(Integer, nullable=False, default=0)
    blocked_stock = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    stock_blocks = relationship("StockBlock", back_populates="product")

    @property
    def available_stock(self) -> int:
        """Units that can still be reserved."""
        return (self.stock_quantity or 0) - (self.blocked_stock or 0)

    def __repr__(self):
        return f"<Product {self.id}: {self.sku} stock={self.stock_quantity} blocked={self.blocked_stock}>"
