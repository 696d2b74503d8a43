from .base import AuctionStateStore
from .memory import InMemoryAuctionStore

__all__ = ["AuctionStateStore", "InMemoryAuctionStore", "build_store"]


def build_store(settings, mock: bool = False) -> AuctionStateStore:
    """In-memory store in mock mode, PostgreSQL otherwise"""
    if mock or settings.is_mock_mode():
        return InMemoryAuctionStore()

    # asyncpg is only needed outside mock mode
    from .postgres import PostgresAuctionStore
    return PostgresAuctionStore(settings.get_effective_database_url(), echo=settings.sql_debug)
