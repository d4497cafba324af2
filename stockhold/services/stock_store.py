"""
Stock Store Contract

The reservation manager never touches the database directly. It talks to a
StockStore, which hands out StockTransaction objects. Everything done through
one transaction commits together or not at all: leaving the
``async with store.transaction()`` block normally commits, raising rolls back.

Implementations:
- SqlAlchemyStockStore (services/sql_stock_store.py): production, async SQLAlchemy
- InMemoryStockStore (services/memory_stock_store.py): tests and local runs

Required semantics:
- try_block is a single compare-and-increment. It must not be split into a
  read followed by a write.
- claim_blocks deletes and returns an order's ledger rows in one step. Only
  the transaction that actually deleted a row may apply its counter change,
  so racing commit()/release() calls on the same order apply it once.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncContextManager, List, Optional, Protocol


@dataclass(frozen=True)
class StockItem:
    """One requested reservation line."""
    product_id: int
    quantity: int


@dataclass(frozen=True)
class StockLevel:
    """Snapshot of a product's counters."""
    product_id: int
    stock_quantity: int
    blocked_stock: int

    @property
    def available(self) -> int:
        return self.stock_quantity - self.blocked_stock


@dataclass(frozen=True)
class BlockRecord:
    """One ledger row as seen by the manager."""
    product_id: int
    order_id: str
    quantity: int
    expires_at: datetime


@dataclass(frozen=True)
class BlockSummary:
    """Ledger counts for monitoring."""
    total: int
    active: int
    expired: int
    expiring_soon: int


class StockTransaction(Protocol):

    async def try_block(self, product_id: int, quantity: int) -> bool:
        """Add quantity to blocked_stock iff available >= quantity."""
        ...

    async def get_stock_level(self, product_id: int) -> Optional[StockLevel]:
        """Current counters, or None if the product does not exist."""
        ...

    async def add_block(self, block: BlockRecord) -> None:
        ...

    async def list_blocks(self, order_id: str) -> List[BlockRecord]:
        """Read an order's ledger rows without claiming them."""
        ...

    async def claim_blocks(self, order_id: str) -> List[BlockRecord]:
        """Delete an order's ledger rows and return what was deleted."""
        ...

    async def consume_blocked(self, product_id: int, quantity: int) -> bool:
        """Subtract quantity from both stock_quantity and blocked_stock."""
        ...

    async def unblock(self, product_id: int, quantity: int) -> bool:
        """Subtract quantity from blocked_stock only."""
        ...

    async def expired_order_ids(self, now: datetime, limit: int) -> List[str]:
        """Distinct orders holding rows with expires_at < now, oldest first."""
        ...

    async def summarize_blocks(self, now: datetime, soon: datetime) -> BlockSummary:
        """Ledger counts; expired means expires_at < now, as in expired_order_ids."""
        ...


class StockStore(Protocol):

    def transaction(self) -> AsyncContextManager[StockTransaction]:
        ...
