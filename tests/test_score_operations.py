import pytest

from medalbot.operations.score_operations import (
    ReviewRow,
    ScoreOperations,
    approve_high_confidence,
    build_commit_payload,
    build_review_rows,
    merge_duplicates,
    parse_score_value,
)
from medalbot.utils.exceptions import ScoreValidationError
from medalbot.utils.numeric_ocr import OCRScoreLine


@pytest.fixture
def score_ops(db):
    return ScoreOperations(db)


def test_parse_score_value():
    assert parse_score_value(12) == 12
    assert parse_score_value(" 1,250,000 ") == 1_250_000
    assert parse_score_value(10 ** 28) == 10 ** 28
    for bad in (-1, "12a", 1.5, None, True, "", 10 ** 30):
        with pytest.raises(ScoreValidationError):
            parse_score_value(bad)


@pytest.mark.asyncio
async def test_commit_upserts_last_write_wins(score_ops, factory):
    event = await factory.event()
    alice = await factory.player('Alice')

    first = await score_ops.commit_scores([
        {'event_id': event.id, 'player_id': alice.id, 'score': 100, 'actor_id': 1},
    ])
    second = await score_ops.commit_scores([
        {'event_id': event.id, 'player_id': alice.id, 'score': 250, 'raw_score': 205, 'actor_id': 2},
        {'event_id': event.id, 'player_id': alice.id, 'score': 300, 'actor_id': 2},
    ])

    assert first == {'committed': 1, 'skipped': 0}
    assert second == {'committed': 2, 'skipped': 0}
    score = await factory.score_for(event, alice)
    assert score.score == 300
    assert score.raw_score == 300
    assert score.verified is True
    assert score.created_by == 2


@pytest.mark.asyncio
async def test_malformed_rows_are_skipped_not_fatal(score_ops, factory):
    event = await factory.event()
    alice = await factory.player('Alice')
    bob = await factory.player('Bob')

    result = await score_ops.commit_scores([
        {'event_id': event.id, 'player_id': alice.id, 'score': '1,500'},
        {'event_id': 'abc', 'player_id': alice.id, 'score': 5},
        {'event_id': event.id, 'player_id': bob.id, 'score': -5},
        {'event_id': event.id, 'player_id': bob.id, 'score': 2.5},
        {'event_id': event.id, 'player_id': 9999, 'score': 5},
        {'event_id': 9999, 'player_id': bob.id, 'score': 5},
        {'player_id': bob.id, 'score': 5},
        {'event_id': event.id, 'player_id': bob.id, 'score': 700, 'verified': False},
        {'event_id': event.id, 'player_id': bob.id, 'score': 900, 'verified': 'yes'},
        {'event_id': event.id, 'player_id': bob.id, 'score': 900, 'actor_id': 'abc'},
    ])

    assert result == {'committed': 2, 'skipped': 8}
    assert (await factory.score_for(event, alice)).score == 1500
    assert (await factory.score_for(event, bob)).verified is False


def _line(name, score, confidence):
    return OCRScoreLine(parsed_name=name, parsed_score=score, raw_text=f"{name} {score}",
                        corrected_value=None, confidence=confidence)


@pytest.mark.asyncio
async def test_review_pipeline(score_ops, factory, db):
    event = await factory.event()
    alice = await factory.player('Alice', aliases=['Ali'])
    bob = await factory.player('Bob')
    players = await db.get_all_players()

    rows = build_review_rows([
        _line('ali', 1200, 0.95),
        _line('Alice', 1500, 0.97),
        _line('Bob', 900, 0.60),
        _line('Stranger', 100, 0.99),
    ], players)

    assert [row.linked_player_id for row in rows] == [alice.id, alice.id, bob.id, None]

    assert approve_high_confidence(rows) == 2
    payload = build_commit_payload(rows, event.id, actor_id=7)

    assert payload == [{
        'event_id': event.id, 'player_id': alice.id, 'score': 1500,
        'raw_score': 1500, 'verified': True, 'actor_id': 7,
    }]
    assert await score_ops.commit_scores(payload) == {'committed': 1, 'skipped': 0}


def test_merge_duplicates_keeps_highest_and_drops_unlinked():
    rows = [
        ReviewRow(parsed_name='a', score=10, confidence=1.0, linked_player_id=1),
        ReviewRow(parsed_name='a2', score=30, confidence=0.5, linked_player_id=1),
        ReviewRow(parsed_name='b', score=5, confidence=1.0, linked_player_id=2),
        ReviewRow(parsed_name='?', score=99, confidence=1.0),
    ]

    merged = merge_duplicates(rows)

    assert [(row.linked_player_id, row.score) for row in merged] == [(1, 30), (2, 5)]


@pytest.mark.asyncio
async def test_verified_text_and_actor_id_are_parsed(score_ops, factory):
    event = await factory.event()
    alice = await factory.player('Alice')
    bob = await factory.player('Bob')

    result = await score_ops.commit_scores([
        {'event_id': event.id, 'player_id': alice.id, 'score': 500, 'verified': 'false', 'actor_id': '42'},
        {'event_id': event.id, 'player_id': bob.id, 'score': 600, 'verified': ' TRUE '},
    ])

    assert result == {'committed': 2, 'skipped': 0}
    alice_score = await factory.score_for(event, alice)
    assert alice_score.verified is False
    assert alice_score.created_by == 42
    bob_score = await factory.score_for(event, bob)
    assert bob_score.verified is True
    assert bob_score.created_by is None
