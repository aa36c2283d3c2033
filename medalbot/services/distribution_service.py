"""
Weighted distribution of an event's remaining medal pot.

One run settles a single (event, medal) pot: it locks the EventTotals row,
splits whatever the raffle and earlier runs left over between qualifying
mains in proportion to their aggregated score (capped per player), writes
one ledger row per paid player and bumps distributed_amount. Everything
happens in one transaction; any failure leaves the pot and ledger untouched.

Re-running is safe. An exhausted pot or an event without qualifying scores
returns a no-op result instead of raising.
"""

import logging
from typing import Any, Dict
from sqlalchemy import select

from medalbot.config import Config
from medalbot.services.base import BaseService
from medalbot.services.score_aggregation import ScoreAggregationService
from medalbot.services.settlement_locks import SettlementLockManager, settlement_locks
from medalbot.database.models import EventTotals, LedgerTransaction, TransactionType
from medalbot.utils.allocation import AllocationResult, allocate_weighted_shares
from medalbot.utils.exceptions import NotFoundError, InvariantViolationError

logger = logging.getLogger(__name__)

DISTRIBUTION_DESCRIPTION = "Score-based distribution (alts counted toward main, capped)"

class WeightedDistributionService(BaseService):
    """Settles the remaining pot of an (event, medal) pair by weighted score."""

    def __init__(self, session_factory, locks: SettlementLockManager = None,
                 cap_percent: int = None, max_rounds: int = None):
        super().__init__(session_factory)
        self.locks = locks or settlement_locks
        self.cap_percent = cap_percent if cap_percent is not None else Config.DISTRIBUTION_CAP_PERCENT
        self.max_rounds = max_rounds if max_rounds is not None else Config.MAX_REALLOCATION_ROUNDS
        self.aggregator = ScoreAggregationService(session_factory)

    async def run_distribution(self, event_id: int, medal_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Distribute the remaining pot of one (event, medal).

        Args:
            event_id: Event whose pot is settled
            medal_id: Medal type of the pot
            actor_id: Discord user ID recorded as author of the ledger rows

        Returns:
            {'status': 'noop', 'reason': 'no_remaining' | 'no_scores', 'remaining': n}
            or {'status': 'ok', 'players', 'remaining_before', 'distributed_now',
                'remaining_after', 'capped_players'}

        Raises:
            NotFoundError: No EventTotals row for the pair
            InvariantViolationError: Computed payouts do not fit the pot (nothing is written)
        """
        logger.info(f"Distribution requested for event {event_id} medal {medal_id} by {actor_id}")

        async with self.locks.hold(event_id, medal_id):
            async with self.get_session() as session:
                result = await session.execute(
                    select(EventTotals)
                    .where(EventTotals.event_id == event_id, EventTotals.medal_id == medal_id)
                    .with_for_update()
                )
                totals = result.scalar_one_or_none()
                if totals is None:
                    raise NotFoundError("Event totals", f"event={event_id}, medal={medal_id}")

                remaining = totals.remaining
                if remaining <= 0:
                    logger.info(f"Distribution no-op for event {event_id} medal {medal_id}: nothing remaining")
                    return {'status': 'noop', 'reason': 'no_remaining', 'remaining': 0}

                scores = await self.aggregator.aggregate(
                    event_id, totals.min_score_for_raffle or 0, session=session
                )
                if not scores:
                    logger.info(f"Distribution no-op for event {event_id} medal {medal_id}: no qualifying scores")
                    return {'status': 'noop', 'reason': 'no_scores', 'remaining': remaining}

                allocation = allocate_weighted_shares(
                    scores, remaining, cap_percent=self.cap_percent, max_rounds=self.max_rounds
                )
                if allocation is None:
                    # Every qualifying score is zero: nothing to weight by
                    logger.info(f"Distribution no-op for event {event_id} medal {medal_id}: all scores are zero")
                    return {'status': 'noop', 'reason': 'no_scores', 'remaining': remaining}

                self._check_invariants(allocation, remaining)

                paid = allocation.paid_lines()
                for line in paid:
                    session.add(LedgerTransaction(
                        player_id=line.player_id,
                        medal_id=medal_id,
                        amount=line.share,
                        transaction_type=TransactionType.WEIGHTED_DISTRIBUTION,
                        event_id=event_id,
                        description=DISTRIBUTION_DESCRIPTION,
                        created_by=actor_id,
                    ))

                distributed_now = allocation.total_allocated
                totals.distributed_amount = (totals.distributed_amount or 0) + distributed_now
                await session.flush()

                summary = {
                    'status': 'ok',
                    'players': len(paid),
                    'remaining_before': remaining,
                    'distributed_now': distributed_now,
                    'remaining_after': remaining - distributed_now,
                    'capped_players': allocation.capped_players,
                }

        logger.info(
            f"Distributed {distributed_now} of {remaining} (cap {allocation.cap}) to {len(paid)} players "
            f"for event {event_id} medal {medal_id}; {summary['capped_players']} capped, "
            f"{allocation.reallocation_rounds} reallocation rounds"
        )
        return summary

    def _check_invariants(self, allocation: AllocationResult, remaining: int):
        """Abort rather than clamp: any violation here is a bug in the allocation."""
        if allocation.total_allocated > remaining:
            raise InvariantViolationError(
                f"allocated {allocation.total_allocated} exceeds remaining {remaining}"
            )
        for line in allocation.lines:
            if line.share < 0:
                raise InvariantViolationError(f"negative share {line.share} for player {line.player_id}")
            if line.share > allocation.cap:
                raise InvariantViolationError(
                    f"share {line.share} for player {line.player_id} exceeds cap {allocation.cap}"
                )
