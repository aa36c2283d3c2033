"""Shared fixtures: a fresh SQLite database per test and small data factories."""

import os

# Keep test runs from writing daily log files
os.environ.setdefault('LOG_TO_FILE', 'false')

from typing import Dict, Optional

import pytest
from sqlalchemy import select

from medalbot.database.database import Database
from medalbot.database.models import Event, EventTotals, Medal, Player, Score
from medalbot.services.settlement_locks import SettlementLockManager


@pytest.fixture
async def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'medals.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def locks():
    """Per-test lock manager so no lock outlives its event loop."""
    return SettlementLockManager()


class Factory:
    def __init__(self, db: Database):
        self.db = db

    async def medal(self, name: str = 'Gold') -> Medal:
        return await self.db.get_medal_by_name(name)

    async def player(self, name: str, main: Optional[Player] = None, aliases=None) -> Player:
        async with self.db.transaction() as session:
            player = Player(canonical_name=name)
            player.alias_list = aliases or []
            if main is not None:
                player.is_alt = True
                player.main_player_id = main.id
            session.add(player)
            await session.flush()
            return player

    async def event(self, name: str = 'Guild War') -> Event:
        async with self.db.transaction() as session:
            event = Event(name=name)
            session.add(event)
            await session.flush()
            return event

    async def pot(self, event: Event, total: int, min_score: int = 0, medal: str = 'Gold',
                  raffle_used: int = 0, distributed: int = 0) -> EventTotals:
        medal_obj = await self.medal(medal)
        async with self.db.transaction() as session:
            totals = EventTotals(
                event_id=event.id,
                medal_id=medal_obj.id,
                total_amount=total,
                raffle_amount_used=raffle_used,
                distributed_amount=distributed,
                min_score_for_raffle=min_score,
            )
            session.add(totals)
            await session.flush()
            return totals

    async def scores(self, event: Event, scores: Dict[Player, int], verified: bool = True):
        async with self.db.transaction() as session:
            for player, value in scores.items():
                session.add(Score(
                    event_id=event.id,
                    player_id=player.id,
                    score=value,
                    raw_score=value,
                    verified=verified,
                ))

    async def players_with_scores(self, event: Event, values, prefix: str = 'Player'):
        players = [await self.player(f"{prefix} {i + 1}") for i in range(len(values))]
        await self.scores(event, dict(zip(players, values)))
        return players

    async def totals(self, event: Event, medal: str = 'Gold') -> EventTotals:
        medal_obj = await self.medal(medal)
        return await self.db.get_event_totals(event.id, medal_obj.id)

    async def ledger(self, event: Event):
        return await self.db.get_event_ledger(event.id)

    async def score_for(self, event: Event, player: Player) -> Optional[Score]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Score).where(Score.event_id == event.id, Score.player_id == player.id)
            )
            return result.scalar_one_or_none()


@pytest.fixture
def factory(db):
    return Factory(db)
