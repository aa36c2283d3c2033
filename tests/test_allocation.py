"""Capped proportional allocation, no database involved."""

from fractions import Fraction

import pytest

from medalbot.utils.allocation import (
    ShareLine,
    allocate_weighted_shares,
    compute_cap,
    largest_remainder_finish,
    water_fill,
)


def test_cap_is_ten_percent_floored():
    assert compute_cap(1000, 10) == 100
    assert compute_cap(999, 10) == 99
    assert compute_cap(9, 10) == 0


def test_everyone_capped_leaves_leftover():
    result = allocate_weighted_shares({1: 50, 2: 30, 3: 20}, 1000)

    assert result.cap == 100
    assert result.shares == {1: 100, 2: 100, 3: 100}
    assert result.total_allocated == 300
    assert result.leftover == 700
    assert result.capped_players == 3


def test_second_round_uses_cap_of_what_remains():
    result = allocate_weighted_shares({1: 50, 2: 30, 3: 20}, 700)

    assert result.cap == 70
    assert result.shares == {1: 70, 2: 70, 3: 70}
    assert result.total_allocated == 210


def test_rounding_dust_goes_to_earliest_on_equal_remainders():
    # 1000 / 11 = 90.909...: ten units of dust, one per player in order
    scores = {player_id: 7 for player_id in range(1, 12)}
    result = allocate_weighted_shares(scores, 1000)

    assert result.total_allocated == 1000
    assert [result.shares[p] for p in range(1, 11)] == [91] * 10
    assert result.shares[11] == 90
    assert result.capped_players == 0


def test_three_equal_scores_without_binding_cap():
    result = allocate_weighted_shares({1: 1, 2: 1, 3: 1}, 100, cap_percent=100)

    assert result.shares == {1: 34, 2: 33, 3: 33}


def test_largest_remainder_wins_over_position():
    # exact shares 3.33 and 6.67: the single unit of dust goes to player 2
    result = allocate_weighted_shares({1: 1, 2: 2}, 10, cap_percent=100)

    assert result.shares == {1: 3, 2: 7}


def test_capped_overflow_fills_highest_scores_first():
    # player 1 is capped at 100; the 400 overflow fills score-5 players in order
    scores = {1: 50}
    scores.update({player_id: 5 for player_id in range(2, 12)})
    result = allocate_weighted_shares(scores, 1000)

    assert result.total_allocated == 1000
    assert result.shares[1] == 100
    assert [result.shares[p] for p in range(2, 10)] == [100] * 8
    assert result.shares[10] == 50
    assert result.shares[11] == 50


def test_fractional_then_overflow():
    scores = {1: 2}
    scores.update({player_id: 1 for player_id in range(2, 13)})
    result = allocate_weighted_shares(scores, 1000)

    assert result.total_allocated == 1000
    assert result.shares[1] == 100
    assert result.shares[2] == 100
    assert result.shares[3] == 100
    assert result.shares[4] == 84
    assert [result.shares[p] for p in range(5, 13)] == [77] * 8
    assert result.capped_players == 3


@pytest.mark.parametrize("scores,pot", [
    ({1: 3, 2: 5, 3: 7, 4: 11, 5: 13, 6: 17, 7: 19, 8: 23, 9: 29, 10: 31, 11: 37}, 12_345),
    ({i: i * i for i in range(1, 31)}, 1_000_003),
    ({i: 10 ** 20 + i for i in range(1, 16)}, 987_654_321_987),
    ({1: 1, 2: 10 ** 25, 3: 3}, 50),
])
def test_conservation_and_cap(scores, pot):
    result = allocate_weighted_shares(scores, pot)

    assert all(0 <= share <= result.cap for share in result.shares.values())
    if len(scores) * result.cap >= pot:
        assert result.total_allocated == pot
    else:
        assert result.total_allocated == len(scores) * result.cap


def test_small_pot_with_zero_cap_pays_nothing():
    result = allocate_weighted_shares({1: 5, 2: 5}, 9)

    assert result.cap == 0
    assert result.total_allocated == 0
    assert result.paid_lines() == []


def test_no_scores_or_zero_scores():
    assert allocate_weighted_shares({}, 1000) is None
    assert allocate_weighted_shares({1: 0, 2: 0}, 1000) is None


def test_invalid_input():
    with pytest.raises(ValueError):
        allocate_weighted_shares({1: 10}, 0)
    with pytest.raises(ValueError):
        allocate_weighted_shares({1: 10, 2: -1}, 100)


def test_water_fill_spreads_by_headroom_and_stops_on_zero_round():
    lines = [
        ShareLine(player_id=1, score=8, raw_share=80, share=40, fractional=Fraction(0), position=0),
        ShareLine(player_id=2, score=3, raw_share=30, share=10, fractional=Fraction(0), position=1),
    ]

    leftover, rounds = water_fill(lines, 50, cap=100, max_rounds=10)

    # round 1: headroom 40 and 20 -> 33 and 16; round 2 grants nothing
    assert (lines[0].share, lines[1].share) == (73, 26)
    assert leftover == 1
    assert rounds == 2


def test_water_fill_respects_round_bound():
    lines = [
        ShareLine(player_id=1, score=1, raw_share=1000, share=0, fractional=Fraction(0), position=0),
        ShareLine(player_id=2, score=1, raw_share=1000, share=0, fractional=Fraction(0), position=1),
    ]

    leftover, rounds = water_fill(lines, 31, cap=500, max_rounds=1)

    assert rounds == 1
    assert leftover == 1
    assert lines[0].share == 15


def test_finisher_stops_when_everyone_capped():
    lines = [
        ShareLine(player_id=1, score=1, raw_share=9, share=9, fractional=Fraction(1, 2), position=0),
        ShareLine(player_id=2, score=1, raw_share=10, share=10, fractional=Fraction(0), is_capped=True, position=1),
    ]

    leftover = largest_remainder_finish(lines, 5, cap=10)

    assert leftover == 4
    assert lines[0].share == 10
    assert lines[0].is_capped
