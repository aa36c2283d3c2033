"""
Player Operations Module

Business logic for the player roster: creation with aliases, name lookup
against canonical names and aliases, alt/main linking and soft deletion.

Alt links are one level deep: a main is never itself an alt, so score
aggregation only ever follows a single main_player_id hop.
"""

from typing import List, Optional
from datetime import datetime
from contextlib import asynccontextmanager
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from medalbot.database.models import Player, PlayerStatus
from medalbot.utils.exceptions import NotFoundError, PlayerLinkError
from medalbot.utils.logger import setup_logger

logger = setup_logger(__name__)


class PlayerOperationError(Exception):
    """Base exception for player operation errors"""
    pass


class PlayerValidationError(PlayerOperationError):
    """Raised when player data validation fails"""
    pass


class PlayerOperations:
    """Business logic operations for Player management."""

    def __init__(self, database):
        """Initialize with database instance"""
        self.db = database
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise opens a transaction that commits on success.
        """
        if session:
            # If a session is provided, we do not manage its lifecycle
            yield session
        else:
            async with self.db.transaction() as new_session:
                yield new_session

    async def create_player(
        self,
        canonical_name: str,
        aliases: Optional[List[str]] = None,
        session: Optional[AsyncSession] = None
    ) -> Player:
        """
        Create a player.

        Raises:
            PlayerValidationError: Empty name, or name already taken
        """
        name = (canonical_name or '').strip()
        if not name:
            raise PlayerValidationError("Player name cannot be empty")

        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Player).where(func.lower(Player.canonical_name) == name.lower())
            )
            if result.scalar_one_or_none():
                raise PlayerValidationError(f"Player '{name}' already exists")

            player = Player(canonical_name=name, status=PlayerStatus.ACTIVE)
            player.alias_list = aliases or []
            s.add(player)
            await s.flush()
            self.logger.info(f"Created player {player.id} '{name}'")
            return player

    async def find_player_by_name(
        self,
        name: str,
        session: Optional[AsyncSession] = None
    ) -> Optional[Player]:
        """
        Find a non-deleted player whose canonical name or any alias matches,
        case-insensitively. Canonical name matches win over alias matches.
        """
        if not name or not name.strip():
            return None

        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Player).where(Player.deleted_at.is_(None)).order_by(Player.id)
            )
            players = result.scalars().all()

        normalized = name.strip().lower()
        for player in players:
            if player.canonical_name.lower() == normalized:
                return player
        for player in players:
            if player.matches_name(name):
                return player
        return None

    async def link_alt(
        self,
        alt_id: int,
        main_id: int,
        session: Optional[AsyncSession] = None
    ) -> Player:
        """
        Mark alt_id as an alt of main_id.

        Raises:
            NotFoundError: Either player missing or deleted
            PlayerLinkError: Self link, main is an alt, or the alt has alts of its own
        """
        if alt_id == main_id:
            raise PlayerLinkError("A player cannot be its own alt")

        async with self._get_session_context(session) as s:
            alt = await self._get_live_player(s, alt_id)
            main = await self._get_live_player(s, main_id)

            if main.is_alt:
                raise PlayerLinkError(f"{main.canonical_name} is itself an alt and cannot be a main")

            result = await s.execute(
                select(func.count(Player.id)).where(
                    Player.main_player_id == alt_id,
                    Player.deleted_at.is_(None)
                )
            )
            if result.scalar():
                raise PlayerLinkError(f"{alt.canonical_name} has alts of its own and cannot become an alt")

            alt.is_alt = True
            alt.main_player_id = main.id
            await s.flush()
            self.logger.info(f"Linked alt {alt.id} '{alt.canonical_name}' to main {main.id} '{main.canonical_name}'")
            return alt

    async def unlink_alt(self, alt_id: int, session: Optional[AsyncSession] = None) -> Player:
        async with self._get_session_context(session) as s:
            alt = await self._get_live_player(s, alt_id)
            alt.is_alt = False
            alt.main_player_id = None
            await s.flush()
            self.logger.info(f"Unlinked alt {alt.id} '{alt.canonical_name}'")
            return alt

    async def set_status(
        self,
        player_id: int,
        status: PlayerStatus,
        session: Optional[AsyncSession] = None
    ) -> Player:
        async with self._get_session_context(session) as s:
            player = await self._get_live_player(s, player_id)
            player.status = status
            await s.flush()
            return player

    async def soft_delete_player(self, player_id: int, session: Optional[AsyncSession] = None) -> Player:
        """
        Soft delete a player. Their scores stop counting, and so do the scores
        of any alts still linked to them.
        """
        async with self._get_session_context(session) as s:
            player = await self._get_live_player(s, player_id)
            player.deleted_at = datetime.utcnow()
            await s.flush()
            self.logger.info(f"Soft deleted player {player.id} '{player.canonical_name}'")
            return player

    async def get_alts(self, main_id: int, session: Optional[AsyncSession] = None) -> List[Player]:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Player)
                .where(Player.main_player_id == main_id, Player.deleted_at.is_(None))
                .order_by(Player.id)
            )
            return result.scalars().all()

    async def _get_live_player(self, session: AsyncSession, player_id: int) -> Player:
        player = await session.get(Player, player_id)
        if player is None or player.deleted_at is not None:
            raise NotFoundError("Player", player_id)
        return player
