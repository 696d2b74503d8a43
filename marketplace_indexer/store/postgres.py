"""
PostgreSQL document store.

Every document lives in a single JSONB table keyed by (collection, doc_id):
auctions under "auctiondata", user bid lists under "userbids" and the two
singleton checkpoints under "checkpoints".
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, MetaData, String, Table, func, or_, select, text
from sqlalchemy.dialects.postgresql import JSONB, insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from web3 import Web3

from ..constants import (
    CHECKPOINT_CRAWLER,
    CHECKPOINT_CRON,
    COLLNAME_AUCTION,
    COLLNAME_CHECKPOINTS,
    COLLNAME_USERBIDS,
)
from ..models import AuctionQuery, AuctionRecord, CrawlerCheckpoint, CronCheckpoint, UserBids
from .base import ORDER_FIELDS, AuctionStateStore

logger = logging.getLogger(__name__)

metadata = MetaData()

documents = Table(
    "documents",
    metadata,
    Column("collection", String(64), primary_key=True),
    Column("doc_id", String(128), primary_key=True),
    Column("body", JSONB, nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)


class PostgresAuctionStore(AuctionStateStore):
    """SQLAlchemy async store on top of asyncpg"""

    def __init__(self, database_url: str, echo: bool = False):
        self.engine = create_async_engine(
            database_url,
            echo=echo,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,  # Recycle connections after 1 hour
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    async def init(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Document store ready")

    async def close(self) -> None:
        await self.engine.dispose()

    async def check_connection(self) -> bool:
        try:
            async with self.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            return False

    async def _get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(documents.c.body).where(
                    documents.c.collection == collection,
                    documents.c.doc_id == doc_id,
                )
            )
            return result.scalar_one_or_none()

    async def _put_document(self, collection: str, doc_id: str, body: Dict[str, Any]) -> None:
        stmt = pg_insert(documents).values(collection=collection, doc_id=doc_id, body=body)
        stmt = stmt.on_conflict_do_update(
            index_elements=[documents.c.collection, documents.c.doc_id],
            set_={"body": stmt.excluded.body, "updated_at": func.now()},
        )
        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def get(self, auction_id: int) -> Optional[AuctionRecord]:
        body = await self._get_document(COLLNAME_AUCTION, str(int(auction_id)))
        return AuctionRecord.model_validate(body) if body is not None else None

    async def put(self, record: AuctionRecord) -> None:
        await self._put_document(COLLNAME_AUCTION, str(record.auction_id), record.to_document())

    async def query_by_nft_identity(self, nft_token: str, nft_token_id: int) -> List[AuctionRecord]:
        stmt = (
            select(documents.c.body)
            .where(documents.c.collection == COLLNAME_AUCTION)
            .where(documents.c.body.contains({
                "nftToken": Web3.to_checksum_address(nft_token),
                "nftTokenId": int(nft_token_id),
            }))
            .order_by(documents.c.body["auctionId"].as_integer())
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [AuctionRecord.model_validate(body) for body in result.scalars()]

    async def get_user_bids(self, address: str) -> UserBids:
        address = Web3.to_checksum_address(address)
        body = await self._get_document(COLLNAME_USERBIDS, address)
        if body is None:
            return UserBids(address=address)
        return UserBids.model_validate(body)

    async def put_user_bids(self, user_bids: UserBids) -> None:
        address = Web3.to_checksum_address(user_bids.address)
        await self._put_document(COLLNAME_USERBIDS, address, user_bids.to_document())

    async def get_crawler_checkpoint(self) -> Optional[CrawlerCheckpoint]:
        body = await self._get_document(COLLNAME_CHECKPOINTS, CHECKPOINT_CRAWLER)
        return CrawlerCheckpoint.model_validate(body) if body is not None else None

    async def set_crawler_checkpoint(self, checkpoint: CrawlerCheckpoint) -> None:
        await self._put_document(COLLNAME_CHECKPOINTS, CHECKPOINT_CRAWLER, checkpoint.to_document())

    async def get_cron_checkpoint(self) -> CronCheckpoint:
        body = await self._get_document(COLLNAME_CHECKPOINTS, CHECKPOINT_CRON)
        return CronCheckpoint.model_validate(body) if body is not None else CronCheckpoint()

    async def set_cron_checkpoint(self, checkpoint: CronCheckpoint) -> None:
        await self._put_document(COLLNAME_CHECKPOINTS, CHECKPOINT_CRON, checkpoint.to_document())

    async def list_auctions(self, query: AuctionQuery) -> List[AuctionRecord]:
        body = documents.c.body
        stmt = select(body).where(documents.c.collection == COLLNAME_AUCTION)

        if query.equals:
            stmt = stmt.where(body.contains(query.equals))
        for field, expected in query.nft_equals.items():
            if isinstance(expected, (list, tuple, set)):
                stmt = stmt.where(or_(*[body.contains({"nftData": {field: item}}) for item in expected]))
            else:
                stmt = stmt.where(body.contains({"nftData": {field: expected}}))
        if query.ends_before is not None:
            stmt = stmt.where(body["endTime"].as_float() < query.ends_before)
        if query.ends_after is not None:
            stmt = stmt.where(body["endTime"].as_float() > query.ends_after)

        path = ORDER_FIELDS[query.order_by or "auctionId"]
        order_expr = body[path].as_float() if len(path) > 1 else body[path[0]].as_float()
        if query.start_after is not None:
            if query.direction == "desc":
                stmt = stmt.where(order_expr < query.start_after)
            else:
                stmt = stmt.where(order_expr > query.start_after)

        if query.direction == "desc":
            stmt = stmt.order_by(order_expr.desc().nulls_last(), body["auctionId"].as_integer().desc())
        else:
            stmt = stmt.order_by(order_expr.asc().nulls_last(), body["auctionId"].as_integer().asc())
        stmt = stmt.limit(query.limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [AuctionRecord.model_validate(row) for row in result.scalars()]
