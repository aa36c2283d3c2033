import random

import pytest
from sqlalchemy import select

from medalbot.database.models import RaffleWeight, RaffleStatus, TransactionType
from medalbot.services.distribution_service import WeightedDistributionService
from medalbot.services.raffle_service import RaffleService
from medalbot.utils.exceptions import InsufficientPotError, NotFoundError, RaffleStateError

ACTOR = 777


@pytest.fixture
def raffles(db, locks):
    return RaffleService(db.session_factory, locks=locks)


async def _weights(db, event):
    async with db.get_session() as session:
        result = await session.execute(select(RaffleWeight).where(RaffleWeight.event_id == event.id))
        return {weight.player_id: weight for weight in result.scalars().all()}


def test_pick_winners_is_without_replacement():
    entries = {1: 1, 2: 5, 3: 1, 4: 2}

    winners = RaffleService.pick_winners(entries, 3, random.Random(3))

    assert len(winners) == 3
    assert len(set(winners)) == 3
    assert set(winners) <= set(entries)
    assert len(RaffleService.pick_winners(entries, 10, random.Random(3))) == 4


def test_pick_winners_is_reproducible():
    entries = {player_id: player_id for player_id in range(1, 20)}

    assert RaffleService.pick_winners(entries, 5, random.Random(11)) == \
        RaffleService.pick_winners(entries, 5, random.Random(11))


@pytest.mark.asyncio
async def test_draw_pays_winners_and_updates_carryover(raffles, factory, db):
    event = await factory.event()
    medal = await factory.medal()
    await factory.pot(event, 100_000_000, min_score=10)
    players = await factory.players_with_scores(event, [50, 40, 30, 20, 5])
    raffle = await raffles.create_raffle(event.id, medal.id, 'Weekly', 2, ACTOR, prize_amount=1_000_000)

    result = await raffles.draw_raffle(raffle.id, ACTOR, rng=random.Random(1))

    assert result['status'] == 'ok'
    assert result['entrants'] == 4
    assert result['amount_used'] == 2_000_000
    winners = set(result['winners'])
    assert len(winners) == 2
    assert players[4].id not in winners

    ledger = await factory.ledger(event)
    assert {row.player_id for row in ledger} == winners
    assert all(row.transaction_type == TransactionType.RAFFLE_PRIZE for row in ledger)
    assert all(row.amount == 1_000_000 and row.raffle_id == raffle.id for row in ledger)

    totals = await factory.totals(event)
    assert totals.raffle_amount_used == 2_000_000
    assert totals.distributed_amount == 0

    weights = await _weights(db, event)
    assert set(weights) == {p.id for p in players[:4]}
    for player_id, weight in weights.items():
        assert weight.entries_next == (0 if player_id in winners else 1)

    entries = await raffles.get_raffle_entries(raffle.id)
    assert {entry.player_id for entry in entries if entry.is_winner} == winners
    assert all(entry.weight == 1 for entry in entries)


@pytest.mark.asyncio
async def test_carryover_grows_entries_on_next_draw(raffles, factory, db):
    event = await factory.event()
    medal = await factory.medal()
    await factory.pot(event, 10_000)
    await factory.players_with_scores(event, [10, 10, 10])

    first = await raffles.create_raffle(event.id, medal.id, 'First', 1, ACTOR, prize_amount=100)
    drawn = await raffles.draw_raffle(first.id, ACTOR, rng=random.Random(5))
    second = await raffles.create_raffle(event.id, medal.id, 'Second', 1, ACTOR, prize_amount=100)
    await raffles.draw_raffle(second.id, ACTOR, rng=random.Random(5))

    entries = {entry.player_id: entry.weight for entry in await raffles.get_raffle_entries(second.id)}
    first_winner = drawn['winners'][0]
    assert entries[first_winner] == 1
    assert all(weight == 2 for player_id, weight in entries.items() if player_id != first_winner)
    assert (await factory.totals(event)).raffle_amount_used == 200


@pytest.mark.asyncio
async def test_raffle_cannot_be_drawn_twice(raffles, factory):
    event = await factory.event()
    medal = await factory.medal()
    await factory.pot(event, 1000)
    await factory.players_with_scores(event, [10])
    raffle = await raffles.create_raffle(event.id, medal.id, 'Once', 1, ACTOR, prize_amount=10)

    await raffles.draw_raffle(raffle.id, ACTOR)

    with pytest.raises(RaffleStateError):
        await raffles.draw_raffle(raffle.id, ACTOR)


@pytest.mark.asyncio
async def test_raffle_cannot_exceed_remaining_pot(raffles, factory):
    event = await factory.event()
    medal = await factory.medal()
    await factory.pot(event, 1000, distributed=900)
    await factory.players_with_scores(event, [10, 10])
    raffle = await raffles.create_raffle(event.id, medal.id, 'Too big', 2, ACTOR, prize_amount=60)

    with pytest.raises(InsufficientPotError):
        await raffles.draw_raffle(raffle.id, ACTOR)

    assert await factory.ledger(event) == []
    assert (await factory.totals(event)).raffle_amount_used == 0


@pytest.mark.asyncio
async def test_no_qualified_players(raffles, factory):
    event = await factory.event()
    medal = await factory.medal()
    await factory.pot(event, 1000, min_score=100)
    await factory.players_with_scores(event, [10])
    raffle = await raffles.create_raffle(event.id, medal.id, 'Empty', 1, ACTOR, prize_amount=10)

    assert await raffles.draw_raffle(raffle.id, ACTOR) == {'status': 'noop', 'reason': 'no_scores'}


@pytest.mark.asyncio
async def test_unknown_raffle_and_default_prize(raffles, factory):
    event = await factory.event()
    medal = await factory.medal()

    with pytest.raises(NotFoundError):
        await raffles.draw_raffle(12345, ACTOR)

    raffle = await raffles.create_raffle(event.id, medal.id, 'Default', 1, ACTOR)
    assert raffle.prize_amount == 25_000_000
    assert raffle.status == RaffleStatus.PENDING


@pytest.mark.asyncio
async def test_distribution_after_raffle_spends_the_rest(raffles, factory, db, locks):
    event = await factory.event()
    medal = await factory.medal()
    await factory.pot(event, 1100)
    await factory.players_with_scores(event, [7] * 11)
    raffle = await raffles.create_raffle(event.id, medal.id, 'Warmup', 1, ACTOR, prize_amount=100)
    await raffles.draw_raffle(raffle.id, ACTOR, rng=random.Random(2))

    distribution = WeightedDistributionService(db.session_factory, locks=locks)
    result = await distribution.run_distribution(event.id, medal.id, ACTOR)

    assert result['remaining_before'] == 1000
    assert result['distributed_now'] == 1000
    totals = await factory.totals(event)
    assert totals.raffle_amount_used + totals.distributed_amount == totals.total_amount
