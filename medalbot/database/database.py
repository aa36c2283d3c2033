from typing import Optional, List
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import select, func
from contextlib import asynccontextmanager

from medalbot.config import Config
from medalbot.database.models import (
    Base, Player, Event, Medal, EventTotals, LedgerTransaction
)
from medalbot.utils.logger import setup_logger

DEFAULT_MEDALS = [
    {'name': 'Gold', 'value': 100, 'color': '#FFD700', 'icon': 'trophy'},
    {'name': 'Silver', 'value': 50, 'color': '#C0C0C0', 'icon': 'medal'},
    {'name': 'Bronze', 'value': 25, 'color': '#CD7F32', 'icon': 'award'},
]

def to_async_url(database_url: str) -> str:
    """Rewrite sync driver URLs to their async equivalents"""
    if database_url.startswith('sqlite:///'):
        return database_url.replace('sqlite:///', 'sqlite+aiosqlite:///', 1)
    if database_url.startswith('postgresql://'):
        return database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    if database_url.startswith('postgres://'):
        return database_url.replace('postgres://', 'postgresql+asyncpg://', 1)
    return database_url

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        self.engine = create_async_engine(
            to_async_url(self.database_url),
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

        await self.initialize_default_data()

    @property
    def session_factory(self):
        return self.async_session

    async def initialize_default_data(self):
        """Seed the default medal types"""
        async with self.transaction() as session:
            result = await session.execute(select(func.count(Medal.id)))
            medal_count = result.scalar()

            if medal_count == 0:
                self.logger.info("Initializing default medals...")
                for medal_data in DEFAULT_MEDALS:
                    session.add(Medal(**medal_data))
                self.logger.info(f"Added {len(DEFAULT_MEDALS)} default medals")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure. Exceptions must be allowed to
        propagate out of the context for rollback to occur.

        Usage:
            async with db.transaction() as session:
                await score_ops.commit_scores(rows, session=session)
                await distribution.run_distribution(...)
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Player lookups
    async def get_player_by_id(self, player_id: int) -> Optional[Player]:
        async with self.get_session() as session:
            return await session.get(Player, player_id)

    async def get_all_players(self, include_deleted: bool = False) -> List[Player]:
        """Get all players ordered by canonical name"""
        async with self.get_session() as session:
            query = select(Player)
            if not include_deleted:
                query = query.where(Player.deleted_at.is_(None))
            result = await session.execute(query.order_by(Player.canonical_name))
            return result.scalars().all()

    # Event lookups
    async def get_event_by_name(self, name: str) -> Optional[Event]:
        """Get a non-deleted event by name (case insensitive)"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Event)
                .where(func.lower(Event.name) == func.lower(name), Event.deleted_at.is_(None))
                .order_by(Event.id.desc())
            )
            return result.scalars().first()

    # Medal lookups
    async def get_medal_by_name(self, name: str) -> Optional[Medal]:
        """Get a medal by name (case insensitive)"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Medal).where(func.lower(Medal.name) == func.lower(name))
            )
            return result.scalar_one_or_none()

    # Score and totals lookups
    async def get_event_totals(self, event_id: int, medal_id: int) -> Optional[EventTotals]:
        async with self.get_session() as session:
            result = await session.execute(
                select(EventTotals).where(
                    EventTotals.event_id == event_id,
                    EventTotals.medal_id == medal_id
                )
            )
            return result.scalar_one_or_none()

    async def get_event_ledger(self, event_id: int) -> List[LedgerTransaction]:
        """Get all ledger rows tied to an event, oldest first"""
        async with self.get_session() as session:
            result = await session.execute(
                select(LedgerTransaction)
                .where(LedgerTransaction.event_id == event_id)
                .order_by(LedgerTransaction.id)
            )
            return result.scalars().all()
