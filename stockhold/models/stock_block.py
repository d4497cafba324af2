"""
Stock Block model

Ledger of active reservations. One row per (product, order) line, created when
checkout blocks stock and deleted when the payment outcome commits or releases
it. Expired rows are released by the stock sweep.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship

from stockhold.core.database import Base
from stockhold.core.utils import utcnow


class StockBlock(Base):
    """
    Temporary stock reservation owned by an order.

    Lifecycle:
    1. Created by block() (products.blocked_stock incremented)
    2. Deleted by commit() (stock_quantity and blocked_stock decremented)
       or release() (blocked_stock decremented)
    """
    __tablename__ = "stock_blocks"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_blocks_quantity_positive"),
        UniqueConstraint("product_id", "order_id", name="uq_stock_blocks_product_order"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    order_id = Column(String(64), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    product = relationship("Product", back_populates="stock_blocks")

    def __repr__(self):
        return f"<StockBlock {self.id}: order={self.order_id} product={self.product_id} qty={self.quantity}>"
