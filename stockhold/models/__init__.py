from stockhold.models.product import Product
from stockhold.models.stock_block import StockBlock
from stockhold.models.order import Order, OrderStatus

__all__ = [
    "Product",
    "StockBlock",
    "Order",
    "OrderStatus",
]
