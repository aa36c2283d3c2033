import pytest

from medalbot.database.models import PlayerStatus
from medalbot.operations.player_operations import PlayerOperations
from medalbot.services.score_aggregation import ScoreAggregationService


@pytest.fixture
def aggregator(db):
    return ScoreAggregationService(db.session_factory)


@pytest.mark.asyncio
async def test_alts_roll_up_into_main(aggregator, factory):
    event = await factory.event()
    main = await factory.player('Main')
    alt_one = await factory.player('Alt One', main=main)
    alt_two = await factory.player('Alt Two', main=main)
    other = await factory.player('Other')
    await factory.scores(event, {main: 100, alt_one: 50, alt_two: 25, other: 10})

    totals = await aggregator.aggregate(event.id)

    assert totals == {main.id: 175, other.id: 10}


@pytest.mark.asyncio
async def test_alt_counts_even_when_main_has_no_score(aggregator, factory):
    event = await factory.event()
    main = await factory.player('Main')
    alt = await factory.player('Alt', main=main)
    await factory.scores(event, {alt: 80})

    assert await aggregator.aggregate(event.id) == {main.id: 80}


@pytest.mark.asyncio
async def test_threshold_is_inclusive_and_per_row(aggregator, factory):
    event = await factory.event()
    main = await factory.player('Main')
    alt = await factory.player('Alt', main=main)
    await factory.scores(event, {main: 100, alt: 99})

    # the alt row is below the threshold on its own, so it does not add up
    assert await aggregator.aggregate(event.id, min_score=100) == {main.id: 100}
    assert await aggregator.aggregate(event.id, min_score=99) == {main.id: 199}


@pytest.mark.asyncio
async def test_unverified_and_deleted_are_ignored(aggregator, factory, db):
    event = await factory.event()
    kept = await factory.player('Kept')
    deleted = await factory.player('Deleted')
    orphan_main = await factory.player('Gone Main')
    orphan_alt = await factory.player('Orphan Alt', main=orphan_main)
    pending = await factory.player('Pending')
    await factory.scores(event, {kept: 10, deleted: 20, orphan_alt: 30})
    await factory.scores(event, {pending: 40}, verified=False)

    player_ops = PlayerOperations(db)
    await player_ops.soft_delete_player(deleted.id)
    await player_ops.soft_delete_player(orphan_main.id)

    assert await aggregator.aggregate(event.id) == {kept.id: 10}


@pytest.mark.asyncio
async def test_exact_sums_and_ordering(aggregator, factory):
    event = await factory.event()
    first = await factory.player('First')
    second = await factory.player('Second')
    alt = await factory.player('Second Alt', main=second)
    huge = 10 ** 24 + 7
    await factory.scores(event, {second: huge, alt: huge, first: 1})

    totals = await aggregator.aggregate(event.id)

    assert list(totals) == [first.id, second.id]
    assert totals[second.id] == 2 * huge


@pytest.mark.asyncio
async def test_empty_event(aggregator, factory):
    event = await factory.event()

    assert await aggregator.aggregate(event.id) == {}


@pytest.mark.asyncio
async def test_inactive_player_still_counts(aggregator, factory, db):
    event = await factory.event()
    resting = await factory.player('Resting')
    await factory.scores(event, {resting: 40})

    player = await PlayerOperations(db).set_status(resting.id, PlayerStatus.INACTIVE)

    assert player.status == PlayerStatus.INACTIVE
    assert await aggregator.aggregate(event.id) == {resting.id: 40}
