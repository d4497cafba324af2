"""
In-Memory Stock Store

StockStore for tests and local runs without a database. Transactions are
serialized by an asyncio.Lock and work on a private copy of the state, which
replaces the shared state only when the transaction block exits cleanly. An
exception inside the block discards the copy (rollback).
"""
import asyncio
import copy
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Tuple

from stockhold.services.stock_store import BlockRecord, BlockSummary, StockLevel


class _State:
    def __init__(self):
        # product_id -> [stock_quantity, blocked_stock]
        self.products: Dict[int, List[int]] = {}
        # (product_id, order_id) -> BlockRecord
        self.blocks: Dict[Tuple[int, str], BlockRecord] = {}


class InMemoryStockTransaction:

    def __init__(self, state: _State):
        self.state = state

    async def try_block(self, product_id: int, quantity: int) -> bool:
        counters = self.state.products.get(product_id)
        if counters is None or counters[0] - counters[1] < quantity:
            return False
        counters[1] += quantity
        return True

    async def get_stock_level(self, product_id: int) -> Optional[StockLevel]:
        counters = self.state.products.get(product_id)
        if counters is None:
            return None
        return StockLevel(product_id, counters[0], counters[1])

    async def add_block(self, block: BlockRecord) -> None:
        key = (block.product_id, block.order_id)
        if key in self.state.blocks:
            raise ValueError(f"Duplicate ledger row for product {block.product_id}, order {block.order_id}")
        self.state.blocks[key] = block

    async def list_blocks(self, order_id: str) -> List[BlockRecord]:
        return sorted(
            (b for b in self.state.blocks.values() if b.order_id == order_id),
            key=lambda b: b.product_id,
        )

    async def claim_blocks(self, order_id: str) -> List[BlockRecord]:
        claimed = await self.list_blocks(order_id)
        for block in claimed:
            del self.state.blocks[(block.product_id, block.order_id)]
        return claimed

    async def consume_blocked(self, product_id: int, quantity: int) -> bool:
        counters = self.state.products.get(product_id)
        if counters is None or counters[1] < quantity or counters[0] < quantity:
            return False
        counters[0] -= quantity
        counters[1] -= quantity
        return True

    async def unblock(self, product_id: int, quantity: int) -> bool:
        counters = self.state.products.get(product_id)
        if counters is None or counters[1] < quantity:
            return False
        counters[1] -= quantity
        return True

    async def expired_order_ids(self, now: datetime, limit: int) -> List[str]:
        oldest: Dict[str, datetime] = {}
        for block in self.state.blocks.values():
            if block.expires_at < now:
                current = oldest.get(block.order_id)
                if current is None or block.expires_at < current:
                    oldest[block.order_id] = block.expires_at
        return sorted(oldest, key=oldest.get)[:limit]

    async def summarize_blocks(self, now: datetime, soon: datetime) -> BlockSummary:
        blocks = list(self.state.blocks.values())
        expired = sum(1 for b in blocks if b.expires_at < now)
        expiring = sum(1 for b in blocks if now <= b.expires_at <= soon)
        return BlockSummary(
            total=len(blocks),
            active=len(blocks) - expired,
            expired=expired,
            expiring_soon=expiring,
        )


class InMemoryStockStore:
    """Serialized, copy-on-write StockStore."""

    def __init__(self):
        self._state = _State()
        self._lock = asyncio.Lock()

    def add_product(self, product_id: int, stock_quantity: int, blocked_stock: int = 0) -> None:
        if not 0 <= blocked_stock <= stock_quantity:
            raise ValueError("blocked_stock must be between 0 and stock_quantity")
        self._state.products[product_id] = [stock_quantity, blocked_stock]

    def stock_level(self, product_id: int) -> Optional[StockLevel]:
        counters = self._state.products.get(product_id)
        if counters is None:
            return None
        return StockLevel(product_id, counters[0], counters[1])

    @property
    def blocks(self) -> List[BlockRecord]:
        return sorted(self._state.blocks.values(), key=lambda b: (b.order_id, b.product_id))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryStockTransaction]:
        async with self._lock:
            working = copy.deepcopy(self._state)
            yield InMemoryStockTransaction(working)
            self._state = working
