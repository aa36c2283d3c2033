"""
Raffle draws against an event's medal pot.

A raffle pays a fixed prize to each of a handful of winners drawn from the
mains that qualify for the event (same aggregation and threshold as the
weighted distribution). Every qualifying main gets one base entry plus its
carry-over entries for the event; qualified non-winners gain one carry-over
entry per draw and winners reset to zero. The medals paid out are added to
the pot's raffle_amount_used under the same (event, medal) settlement lock
the weighted distribution takes.
"""

import logging
import random
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select

from medalbot.config import Config
from medalbot.services.base import BaseService
from medalbot.services.score_aggregation import ScoreAggregationService
from medalbot.services.settlement_locks import SettlementLockManager, settlement_locks
from medalbot.database.models import (
    Event, Medal, EventTotals, LedgerTransaction, TransactionType,
    Raffle, RaffleEntry, RaffleStatus, RaffleWeight
)
from medalbot.utils.exceptions import NotFoundError, InsufficientPotError, RaffleStateError

logger = logging.getLogger(__name__)

class RaffleService(BaseService):
    """Creates raffles and draws them under the settlement lock."""

    def __init__(self, session_factory, locks: SettlementLockManager = None):
        super().__init__(session_factory)
        self.locks = locks or settlement_locks
        self.aggregator = ScoreAggregationService(session_factory)

    async def create_raffle(self, event_id: int, medal_id: int, name: str, total_prizes: int,
                            actor_id: int, prize_amount: Optional[int] = None,
                            description: Optional[str] = None) -> Raffle:
        """
        Create a pending raffle for an (event, medal) pot.

        Args:
            total_prizes: Number of winners to draw
            prize_amount: Medals per winner (defaults to Config.RAFFLE_WIN_AMOUNT)
        """
        if total_prizes < 1:
            raise ValueError("A raffle needs at least one prize")
        prize_amount = Config.RAFFLE_WIN_AMOUNT if prize_amount is None else prize_amount
        if prize_amount < 0:
            raise ValueError("Prize amount cannot be negative")

        async with self.get_session() as session:
            event = await session.get(Event, event_id)
            if event is None or event.deleted_at is not None:
                raise NotFoundError("Event", event_id)
            if await session.get(Medal, medal_id) is None:
                raise NotFoundError("Medal", medal_id)

            raffle = Raffle(
                event_id=event_id,
                medal_id=medal_id,
                name=name.strip(),
                description=description,
                total_prizes=total_prizes,
                prize_amount=prize_amount,
                status=RaffleStatus.PENDING,
                created_by=actor_id,
            )
            session.add(raffle)
            await session.flush()
            logger.info(f"Created raffle {raffle.id} '{raffle.name}' for event {event_id}: "
                        f"{total_prizes} x {prize_amount} medal {medal_id}")
            return raffle

    async def draw_raffle(self, raffle_id: int, actor_id: int,
                          rng: Optional[random.Random] = None) -> Dict[str, Any]:
        """
        Draw the winners of a pending raffle and pay them.

        Args:
            raffle_id: Raffle to draw
            actor_id: Discord user ID recorded on ledger rows and weights
            rng: Random source (a seeded random.Random makes draws reproducible)

        Returns:
            {'status': 'ok', 'winners': [player ids in draw order], 'entrants': n,
             'amount_used': medals paid}
            or {'status': 'noop', 'reason': 'no_scores'} when nobody qualifies

        Raises:
            NotFoundError: Unknown raffle or no pot for its (event, medal)
            RaffleStateError: Raffle already drawn
            InsufficientPotError: Prizes would exceed the remaining pot
        """
        rng = rng or random.Random()

        async with self.get_session() as session:
            raffle = await session.get(Raffle, raffle_id)
            if raffle is None:
                raise NotFoundError("Raffle", raffle_id)
            event_id, medal_id = raffle.event_id, raffle.medal_id

        async with self.locks.hold(event_id, medal_id):
            async with self.get_session() as session:
                result = await session.execute(
                    select(Raffle).where(Raffle.id == raffle_id).with_for_update()
                )
                raffle = result.scalar_one()
                if raffle.status != RaffleStatus.PENDING:
                    raise RaffleStateError(raffle_id, raffle.status)

                result = await session.execute(
                    select(EventTotals)
                    .where(EventTotals.event_id == event_id, EventTotals.medal_id == medal_id)
                    .with_for_update()
                )
                totals = result.scalar_one_or_none()
                if totals is None:
                    raise NotFoundError("Event totals", f"event={event_id}, medal={medal_id}")

                scores = await self.aggregator.aggregate(
                    event_id, totals.min_score_for_raffle or 0, session=session
                )
                if not scores:
                    logger.info(f"Raffle {raffle_id} not drawn: no qualifying players for event {event_id}")
                    return {'status': 'noop', 'reason': 'no_scores'}

                weights = await self._load_weights(session, event_id, list(scores))
                entries = {
                    player_id: Config.RAFFLE_BASE_ENTRIES + (weights[player_id].entries_next if player_id in weights else 0)
                    for player_id in scores
                }

                winner_count = min(raffle.total_prizes, len(entries))
                amount_used = winner_count * raffle.prize_amount
                remaining = totals.remaining
                if amount_used > remaining:
                    raise InsufficientPotError(amount_used, remaining)

                winners = self.pick_winners(entries, winner_count, rng)
                winner_set = set(winners)

                for player_id, weight in entries.items():
                    is_winner = player_id in winner_set
                    session.add(RaffleEntry(
                        raffle_id=raffle_id,
                        player_id=player_id,
                        weight=weight,
                        is_winner=is_winner,
                        prize_amount=raffle.prize_amount if is_winner else None,
                    ))

                    carry = weights.get(player_id)
                    previous = carry.entries_next if carry else 0
                    if carry is None:
                        carry = RaffleWeight(player_id=player_id, event_id=event_id)
                        session.add(carry)
                    carry.entries_before = previous
                    carry.entries_next = 0 if is_winner else previous + 1
                    carry.updated_by = actor_id

                for player_id in winners:
                    session.add(LedgerTransaction(
                        player_id=player_id,
                        medal_id=medal_id,
                        amount=raffle.prize_amount,
                        transaction_type=TransactionType.RAFFLE_PRIZE,
                        event_id=event_id,
                        raffle_id=raffle_id,
                        description=f"Raffle prize: {raffle.name}",
                        created_by=actor_id,
                    ))

                raffle.status = RaffleStatus.COMPLETED
                raffle.drawn_at = datetime.utcnow()
                totals.raffle_amount_used = (totals.raffle_amount_used or 0) + amount_used
                await session.flush()

        logger.info(f"Raffle {raffle_id} drawn: {len(winners)} winners of {len(entries)} entrants, "
                    f"{amount_used} medals used from event {event_id}")
        return {
            'status': 'ok',
            'winners': winners,
            'entrants': len(entries),
            'amount_used': amount_used,
        }

    @staticmethod
    def pick_winners(entries: Dict[int, int], count: int, rng: random.Random) -> List[int]:
        """Weighted draw without replacement: each player can win at most once."""
        pool = dict(entries)
        winners = []
        while pool and len(winners) < count:
            candidates = list(pool)
            chosen = rng.choices(candidates, weights=[pool[c] for c in candidates], k=1)[0]
            winners.append(chosen)
            del pool[chosen]
        return winners

    async def _load_weights(self, session, event_id: int, player_ids: List[int]) -> Dict[int, RaffleWeight]:
        result = await session.execute(
            select(RaffleWeight).where(
                RaffleWeight.event_id == event_id,
                RaffleWeight.player_id.in_(player_ids)
            )
        )
        return {weight.player_id: weight for weight in result.scalars().all()}

    async def get_raffle_entries(self, raffle_id: int) -> List[RaffleEntry]:
        async with self.get_session() as session:
            result = await session.execute(
                select(RaffleEntry).where(RaffleEntry.raffle_id == raffle_id).order_by(RaffleEntry.player_id)
            )
            return result.scalars().all()
