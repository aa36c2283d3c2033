"""
Score aggregation shared by raffle draws and weighted distribution.

Reads the verified scores of one event and sums them per payout-eligible
player: alt accounts roll up into their main, and only mains are returned.
"""

import logging
from typing import Dict, Optional
from sqlalchemy import select
from sqlalchemy.orm import aliased
from sqlalchemy.ext.asyncio import AsyncSession

from medalbot.services.base import BaseService
from medalbot.database.models import Score, Player

logger = logging.getLogger(__name__)

class ScoreAggregationService(BaseService):
    """Resolves alts to mains and sums qualifying scores per main."""

    async def aggregate(self, event_id: int, min_score: int = 0,
                        session: Optional[AsyncSession] = None) -> Dict[int, int]:
        """
        Aggregate verified scores of an event by payout-eligible player.

        Args:
            event_id: Event to aggregate
            min_score: Inclusive threshold; rows below it are ignored
            session: Optional session to read within (e.g. a settlement transaction)

        Returns:
            Ordered mapping of resolved player id -> summed score, sorted by
            player id. Empty when nothing qualifies.
        """
        main = aliased(Player)
        query = (
            select(Score.score, Player.id, Player.is_alt, Player.main_player_id, main.deleted_at)
            .join(Player, Player.id == Score.player_id)
            .outerjoin(main, main.id == Player.main_player_id)
            .where(
                Score.event_id == event_id,
                Score.verified == True,
                Player.deleted_at.is_(None),
            )
        )

        async with self.session_scope(session) as s:
            result = await s.execute(query)
            rows = result.all()

        totals: Dict[int, int] = {}
        for score, player_id, is_alt, main_player_id, main_deleted_at in rows:
            # Threshold compared in Python: score columns hold exact integers
            if score is None or score < min_score:
                continue

            resolved_id = player_id
            if is_alt and main_player_id is not None:
                if main_deleted_at is not None:
                    logger.debug(f"Skipping score of alt {player_id}: main {main_player_id} is deleted")
                    continue
                resolved_id = main_player_id

            totals[resolved_id] = totals.get(resolved_id, 0) + score

        logger.debug(f"Aggregated {len(rows)} verified scores of event {event_id} into {len(totals)} players")
        return dict(sorted(totals.items()))
