"""
Order model

Owned by checkout intake and payment outcome handling. The reservation
manager never reads or writes it; stock_blocks.order_id refers to Order.id.
"""
import uuid

from sqlalchemy import Column, String, Float, DateTime, JSON, CheckConstraint

from stockhold.core.database import Base
from stockhold.core.utils import utcnow


class OrderStatus:
    PENDING = "pending"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"

    TERMINAL = (PAID, PAYMENT_FAILED, CANCELLED)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'paid', 'payment_failed', 'cancelled')",
            name="chk_order_status"
        ),
    )

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_ref = Column(String(255), nullable=True, index=True)
    status = Column(String(30), nullable=False, default=OrderStatus.PENDING, index=True)

    # Line snapshot: [{"product_id", "sku", "name", "quantity", "unit_price", "total_price"}]
    items = Column(JSON, nullable=False, default=list)
    total_amount = Column(Float, nullable=False, default=0.0)

    # Payment provider reference, set by the outcome notifier
    payment_id = Column(String(255), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in OrderStatus.TERMINAL

    def __repr__(self):
        return f"<Order {self.id}: {self.status}>"
