"""
SQLAlchemy Stock Store

Production StockStore over async SQLAlchemy sessions. Each transaction() call
opens its own session and runs inside session.begin(), so the store's
transaction is a real database transaction:

- block: conditional UPDATE ... WHERE stock_quantity - blocked_stock >= :qty
  (no read-then-write window, the row lock is taken by the UPDATE itself)
- commit/release: DELETE FROM stock_blocks ... RETURNING claims the ledger
  rows; a racing transaction waits on the row locks and then sees nothing
- counter decrements are guarded so a mismatch surfaces as rowcount 0
  instead of violating the table CHECK constraints
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional

from sqlalchemy import select, insert, update, delete, func, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockhold.core.database import AsyncSessionLocal
from stockhold.core.utils import ensure_utc
from stockhold.models import Product, StockBlock
from stockhold.services.stock_store import BlockRecord, BlockSummary, StockLevel


def _to_record(row) -> BlockRecord:
    return BlockRecord(
        product_id=row.product_id,
        order_id=row.order_id,
        quantity=row.quantity,
        expires_at=ensure_utc(row.expires_at),
    )


class SqlAlchemyStockTransaction:
    """StockTransaction bound to one AsyncSession inside session.begin()."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def try_block(self, product_id: int, quantity: int) -> bool:
        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .where(Product.stock_quantity - Product.blocked_stock >= quantity)
            .values(blocked_stock=Product.blocked_stock + quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_stock_level(self, product_id: int) -> Optional[StockLevel]:
        result = await self.session.execute(
            select(Product.id, Product.stock_quantity, Product.blocked_stock)
            .where(Product.id == product_id)
        )
        row = result.first()
        if row is None:
            return None
        return StockLevel(
            product_id=row.id,
            stock_quantity=row.stock_quantity,
            blocked_stock=row.blocked_stock,
        )

    async def add_block(self, block: BlockRecord) -> None:
        await self.session.execute(
            insert(StockBlock).values(
                product_id=block.product_id,
                order_id=block.order_id,
                quantity=block.quantity,
                expires_at=block.expires_at,
            )
        )

    async def list_blocks(self, order_id: str) -> List[BlockRecord]:
        result = await self.session.execute(
            select(
                StockBlock.product_id,
                StockBlock.order_id,
                StockBlock.quantity,
                StockBlock.expires_at,
            )
            .where(StockBlock.order_id == order_id)
            .order_by(StockBlock.product_id)
        )
        return [_to_record(row) for row in result.all()]

    async def claim_blocks(self, order_id: str) -> List[BlockRecord]:
        result = await self.session.execute(
            delete(StockBlock)
            .where(StockBlock.order_id == order_id)
            .returning(
                StockBlock.product_id,
                StockBlock.order_id,
                StockBlock.quantity,
                StockBlock.expires_at,
            )
            .execution_options(synchronize_session=False)
        )
        records = [_to_record(row) for row in result.all()]
        # Apply counter updates in product order to keep lock order stable
        return sorted(records, key=lambda r: r.product_id)

    async def consume_blocked(self, product_id: int, quantity: int) -> bool:
        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .where(Product.blocked_stock >= quantity)
            .where(Product.stock_quantity >= quantity)
            .values(
                stock_quantity=Product.stock_quantity - quantity,
                blocked_stock=Product.blocked_stock - quantity,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def unblock(self, product_id: int, quantity: int) -> bool:
        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .where(Product.blocked_stock >= quantity)
            .values(blocked_stock=Product.blocked_stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def expired_order_ids(self, now: datetime, limit: int) -> List[str]:
        result = await self.session.execute(
            select(StockBlock.order_id)
            .where(StockBlock.expires_at < now)
            .group_by(StockBlock.order_id)
            .order_by(func.min(StockBlock.expires_at))
            .limit(limit)
        )
        return [row.order_id for row in result.all()]

    async def summarize_blocks(self, now: datetime, soon: datetime) -> BlockSummary:
        stmt = select(
            func.count(StockBlock.id),
            func.count(StockBlock.id).filter(StockBlock.expires_at < now),
            func.count(StockBlock.id).filter(StockBlock.expires_at >= now),
            func.count(StockBlock.id).filter(
                and_(StockBlock.expires_at >= now, StockBlock.expires_at <= soon)
            ),
        )
        total, expired, active, expiring = (await self.session.execute(stmt)).one()
        return BlockSummary(
            total=int(total or 0),
            active=int(active or 0),
            expired=int(expired or 0),
            expiring_soon=int(expiring or 0),
        )


class SqlAlchemyStockStore:
    """StockStore opening one session + transaction per manager call."""

    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlAlchemyStockTransaction]:
        async with self._session_factory() as session:
            async with session.begin():
                yield SqlAlchemyStockTransaction(session)
