"""
Ledger Operations Module

The ledger is append-only: balances are always derived by summing a
player's rows, and corrections are new rows (reversals, deductions), never
updates. Amount columns hold exact integers that SQLite stores as text, so
sums are taken in Python rather than with SQL SUM().
"""

from typing import Dict, List, Optional
from contextlib import asynccontextmanager
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medalbot.database.models import Player, Medal, LedgerTransaction, TransactionType
from medalbot.utils.exceptions import NotFoundError
from medalbot.utils.logger import setup_logger

logger = setup_logger(__name__)


class LedgerOperationError(Exception):
    """Base exception for ledger operation errors"""
    pass


class LedgerValidationError(LedgerOperationError):
    """Raised when a ledger request is invalid"""
    pass


class LedgerOperations:
    """Append-only ledger writes and derived balances."""

    def __init__(self, database):
        self.db = database
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

    async def record_transaction(
        self,
        player_id: int,
        medal_id: int,
        amount: int,
        transaction_type: str,
        created_by: int,
        event_id: Optional[int] = None,
        description: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> LedgerTransaction:
        """
        Append one ledger row.

        Raises:
            NotFoundError: Unknown player or medal
            LedgerValidationError: Zero amount
        """
        if amount == 0:
            raise LedgerValidationError("Ledger amount cannot be zero")

        async with self._get_session_context(session) as s:
            if await s.get(Player, player_id) is None:
                raise NotFoundError("Player", player_id)
            if await s.get(Medal, medal_id) is None:
                raise NotFoundError("Medal", medal_id)

            transaction = LedgerTransaction(
                player_id=player_id,
                medal_id=medal_id,
                amount=amount,
                transaction_type=transaction_type,
                event_id=event_id,
                description=description,
                created_by=created_by,
            )
            s.add(transaction)
            await s.flush()
            self.logger.info(
                f"Ledger {transaction_type}: player {player_id} medal {medal_id} {amount:+} by {created_by}"
            )
            return transaction

    async def grant(self, player_id: int, medal_id: int, amount: int, created_by: int,
                    description: Optional[str] = None, session: Optional[AsyncSession] = None) -> LedgerTransaction:
        if amount <= 0:
            raise LedgerValidationError("Grant amount must be positive")
        return await self.record_transaction(
            player_id, medal_id, amount, TransactionType.ADMIN_GRANT, created_by,
            description=description or "Manual grant", session=session
        )

    async def deduct(self, player_id: int, medal_id: int, amount: int, created_by: int,
                     description: Optional[str] = None, session: Optional[AsyncSession] = None) -> LedgerTransaction:
        """Record a deduction. amount is the positive quantity to remove."""
        if amount <= 0:
            raise LedgerValidationError("Deduction amount must be positive")
        return await self.record_transaction(
            player_id, medal_id, -amount, TransactionType.DEDUCTION, created_by,
            description=description or "Manual deduction", session=session
        )

    async def reverse_transaction(
        self,
        transaction_id: int,
        created_by: int,
        reason: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> LedgerTransaction:
        """
        Offset a transaction with a new row of the opposite amount.

        Raises:
            NotFoundError: Unknown transaction
            LedgerValidationError: Transaction is a reversal or already reversed
        """
        async with self._get_session_context(session) as s:
            original = await s.get(LedgerTransaction, transaction_id)
            if original is None:
                raise NotFoundError("Transaction", transaction_id)
            if original.transaction_type == TransactionType.REVERSAL:
                raise LedgerValidationError("Reversals cannot be reversed")

            result = await s.execute(
                select(LedgerTransaction.id).where(LedgerTransaction.reverses_transaction_id == transaction_id)
            )
            if result.first() is not None:
                raise LedgerValidationError(f"Transaction {transaction_id} is already reversed")

            reversal = LedgerTransaction(
                player_id=original.player_id,
                medal_id=original.medal_id,
                amount=-original.amount,
                transaction_type=TransactionType.REVERSAL,
                event_id=original.event_id,
                raffle_id=original.raffle_id,
                reverses_transaction_id=original.id,
                description=reason or f"Reversal of transaction {original.id}",
                created_by=created_by,
            )
            s.add(reversal)
            await s.flush()
            self.logger.info(f"Reversed transaction {original.id} ({original.amount}) by {created_by}")
            return reversal

    async def get_balance(self, player_id: int, medal_id: int, session: Optional[AsyncSession] = None) -> int:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(LedgerTransaction.amount).where(
                    LedgerTransaction.player_id == player_id,
                    LedgerTransaction.medal_id == medal_id
                )
            )
            return sum(result.scalars().all())

    async def get_balances(self, player_id: int, session: Optional[AsyncSession] = None) -> Dict[str, int]:
        """Balance per medal name, including medals with a zero balance."""
        async with self._get_session_context(session) as s:
            medals = (await s.execute(select(Medal).order_by(Medal.value.desc()))).scalars().all()
            result = await s.execute(
                select(LedgerTransaction.medal_id, LedgerTransaction.amount)
                .where(LedgerTransaction.player_id == player_id)
            )
            by_medal: Dict[int, int] = {}
            for medal_id, amount in result.all():
                by_medal[medal_id] = by_medal.get(medal_id, 0) + amount

        return {medal.name: by_medal.get(medal.id, 0) for medal in medals}

    async def get_history(self, player_id: int, limit: int = 25,
                          session: Optional[AsyncSession] = None) -> List[LedgerTransaction]:
        """Most recent ledger rows of a player, newest first."""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(LedgerTransaction)
                .where(LedgerTransaction.player_id == player_id)
                .order_by(LedgerTransaction.id.desc())
                .limit(limit)
            )
            return result.scalars().all()
