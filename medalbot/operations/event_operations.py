"""
Event Operations Module

Event lifecycle and pot setup. The pot of an (event, medal) pair lives in
EventTotals; this module only ever sets total_amount and the qualifying
threshold. The consumed columns belong to the raffle and distribution
settlements.
"""

from typing import Optional
from datetime import date, datetime
from contextlib import asynccontextmanager
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medalbot.database.models import Event, Medal, EventTotals
from medalbot.services.settlement_locks import SettlementLockManager, settlement_locks
from medalbot.utils.exceptions import NotFoundError, InvalidPotError
from medalbot.utils.logger import setup_logger

logger = setup_logger(__name__)


class EventOperationError(Exception):
    """Base exception for event operation errors"""
    pass


class EventValidationError(EventOperationError):
    """Raised when event data validation fails"""
    pass


class EventOperations:
    """Business logic operations for Event management."""

    def __init__(self, database, locks: SettlementLockManager = None):
        """Initialize with database instance"""
        self.db = database
        self.locks = locks or settlement_locks
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise opens a transaction that commits on success.
        """
        if session:
            yield session
        else:
            async with self.db.transaction() as new_session:
                yield new_session

    async def create_event(
        self,
        name: str,
        event_date: Optional[date] = None,
        created_by: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> Event:
        name = (name or '').strip()
        if not name:
            raise EventValidationError("Event name cannot be empty")

        async with self._get_session_context(session) as s:
            event = Event(name=name, event_date=event_date or date.today(), created_by=created_by)
            s.add(event)
            await s.flush()
            self.logger.info(f"Created event {event.id} '{name}' ({event.event_date})")
            return event

    async def set_event_pot(
        self,
        event_id: int,
        medal_id: int,
        total_amount: int,
        min_score_for_raffle: int = 0,
        created_by: Optional[int] = None
    ) -> EventTotals:
        """
        Create or update the pot for an (event, medal).

        Held under the settlement lock so the consumed amounts cannot move
        while the new total is checked against them.

        Raises:
            NotFoundError: Unknown or deleted event, unknown medal
            EventValidationError: Negative amount or threshold
            InvalidPotError: total_amount below what raffle and distribution already used
        """
        if total_amount < 0:
            raise EventValidationError("Pot cannot be negative")
        if min_score_for_raffle < 0:
            raise EventValidationError("Minimum score cannot be negative")

        async with self.locks.hold(event_id, medal_id):
            async with self.db.transaction() as s:
                event = await s.get(Event, event_id)
                if event is None or event.deleted_at is not None:
                    raise NotFoundError("Event", event_id)
                if await s.get(Medal, medal_id) is None:
                    raise NotFoundError("Medal", medal_id)

                result = await s.execute(
                    select(EventTotals)
                    .where(EventTotals.event_id == event_id, EventTotals.medal_id == medal_id)
                    .with_for_update()
                )
                totals = result.scalar_one_or_none()

                if totals is None:
                    totals = EventTotals(
                        event_id=event_id,
                        medal_id=medal_id,
                        raffle_amount_used=0,
                        distributed_amount=0,
                        created_by=created_by,
                    )
                    s.add(totals)
                else:
                    consumed = (totals.raffle_amount_used or 0) + (totals.distributed_amount or 0)
                    if total_amount < consumed:
                        raise InvalidPotError(total_amount, consumed)

                totals.total_amount = total_amount
                totals.min_score_for_raffle = min_score_for_raffle
                await s.flush()
                self.logger.info(
                    f"Pot for event {event_id} medal {medal_id} set to {total_amount} "
                    f"(min score {min_score_for_raffle})"
                )
                return totals

    async def soft_delete_event(self, event_id: int, session: Optional[AsyncSession] = None) -> Event:
        async with self._get_session_context(session) as s:
            event = await s.get(Event, event_id)
            if event is None or event.deleted_at is not None:
                raise NotFoundError("Event", event_id)
            event.deleted_at = datetime.utcnow()
            await s.flush()
            self.logger.info(f"Soft deleted event {event.id} '{event.name}'")
            return event
