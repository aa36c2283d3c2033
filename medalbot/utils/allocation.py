"""
Capped proportional allocation of a medal pot.

Splits an integer pot between players in proportion to their aggregated
scores with a hard per-player cap, then spends what the cap left over:

1. Proportional shares, floored and capped.
2. Water-filling: leftover is handed out in proportion to each player's
   remaining headroom, for a bounded number of rounds.
3. Largest-remainder finisher: any leftover is handed out one unit at a
   time, largest fractional remainder first (then larger score, then
   insertion order), until the pot is spent or everyone is at the cap.

All arithmetic is exact (int and Fraction). The sum of shares never exceeds
the pot and equals it whenever at least one player still has headroom.
"""

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, List, Optional, Tuple
import logging
import math

logger = logging.getLogger(__name__)

@dataclass
class ShareLine:
    """One recipient's working state during allocation"""
    player_id: int
    score: int
    raw_share: int          # floor(score / total * pot)
    share: int              # amount actually granted so far
    fractional: Fraction    # fractional part of the capped exact share, for tie-breaking
    is_capped: bool = False
    position: int = 0       # insertion order, last tie-breaker

@dataclass
class AllocationResult:
    """Outcome of one allocation run"""
    pot: int
    cap: int
    lines: List[ShareLine] = field(default_factory=list)
    reallocation_rounds: int = 0

    @property
    def total_allocated(self) -> int:
        return sum(line.share for line in self.lines)

    @property
    def leftover(self) -> int:
        return self.pot - self.total_allocated

    @property
    def capped_players(self) -> int:
        return sum(1 for line in self.lines if line.is_capped)

    @property
    def shares(self) -> Dict[int, int]:
        return {line.player_id: line.share for line in self.lines}

    def paid_lines(self) -> List[ShareLine]:
        return [line for line in self.lines if line.share > 0]

def compute_cap(pot: int, cap_percent: int) -> int:
    """Per-player ceiling: floor(pot * cap_percent / 100)"""
    return (pot * cap_percent) // 100

def initial_shares(scores: Dict[int, int], pot: int, cap: int) -> List[ShareLine]:
    """Proportional floor shares, clamped to the cap."""
    total = sum(scores.values())
    lines = []
    for position, (player_id, score) in enumerate(scores.items()):
        numerator = score * pot
        raw_share = numerator // total
        exact_capped = min(Fraction(numerator, total), Fraction(cap))
        lines.append(ShareLine(
            player_id=player_id,
            score=score,
            raw_share=raw_share,
            share=min(raw_share, cap),
            fractional=exact_capped - math.floor(exact_capped),
            is_capped=raw_share > cap,
            position=position,
        ))
    return lines

def water_fill(lines: List[ShareLine], leftover: int, cap: int, max_rounds: int) -> Tuple[int, int]:
    """
    Hand leftover to players below both the cap and their own raw share.

    Each round splits leftover in proportion to headroom
    min(cap - share, raw_share - share), floored and clamped to the cap.
    Stops after max_rounds, or early when nobody has headroom or a round
    grants nothing.

    Returns:
        (leftover, rounds) after reallocation
    """
    rounds = 0
    while leftover > 0 and rounds < max_rounds:
        eligible = [line for line in lines if line.share < cap and line.share < line.raw_share]
        residuals = {
            line.player_id: min(cap - line.share, min(line.raw_share, cap) - line.share)
            for line in eligible
        }
        total_residual = sum(residuals.values())
        if total_residual == 0:
            break

        allocated = 0
        for line in eligible:
            delta = (leftover * residuals[line.player_id]) // total_residual
            delta = min(delta, cap - line.share)
            if delta > 0:
                line.share += delta
                line.is_capped = line.share >= cap
                allocated += delta

        leftover -= allocated
        rounds += 1
        logger.debug(f"Water-fill round {rounds}: allocated {allocated}, leftover {leftover}")

        if allocated == 0:
            break

    return leftover, rounds

def largest_remainder_finish(lines: List[ShareLine], leftover: int, cap: int) -> int:
    """
    Spend rounding dust one unit at a time.

    Picks the under-cap player with the largest fractional remainder (ties:
    larger score, then earlier position), grants one unit and zeroes its
    fractional. Once every remainder is zero the same rule keeps picking the
    highest-scoring under-cap player until it reaches the cap, so that phase
    is granted in bulk.

    Returns:
        leftover that could not be placed (everyone at cap)
    """
    def grant(line: ShareLine, amount: int):
        line.share += amount
        line.fractional = Fraction(0)
        if line.share >= cap:
            line.is_capped = True

    with_remainder = sorted(
        (line for line in lines if line.share < cap and line.fractional > 0),
        key=lambda line: (-line.fractional, -line.score, line.position)
    )
    for line in with_remainder:
        if leftover == 0:
            return 0
        grant(line, 1)
        leftover -= 1

    by_score = sorted(
        (line for line in lines if line.share < cap),
        key=lambda line: (-line.score, line.position)
    )
    for line in by_score:
        if leftover == 0:
            break
        amount = min(leftover, cap - line.share)
        grant(line, amount)
        leftover -= amount

    return leftover

def allocate_weighted_shares(scores: Dict[int, int], pot: int, cap_percent: int = 10,
                             max_rounds: int = 10) -> Optional[AllocationResult]:
    """
    Allocate pot across players proportionally to score with a per-player cap.

    Args:
        scores: player_id -> aggregated score, in tie-break order
        pot: medals available for this run (must be positive)
        cap_percent: per-player ceiling as a percentage of pot
        max_rounds: water-filling round bound

    Returns:
        AllocationResult, or None when there is nothing to allocate against
        (no scores or all scores zero)
    """
    if pot <= 0:
        raise ValueError(f"Pot must be positive, got {pot}")
    if not scores or sum(scores.values()) <= 0:
        return None
    if any(score < 0 for score in scores.values()):
        raise ValueError("Scores must be non-negative")

    cap = compute_cap(pot, cap_percent)
    lines = initial_shares(scores, pot, cap)
    result = AllocationResult(pot=pot, cap=cap, lines=lines)

    leftover = result.leftover
    leftover, result.reallocation_rounds = water_fill(lines, leftover, cap, max_rounds)
    leftover = largest_remainder_finish(lines, leftover, cap)

    if leftover > 0:
        logger.debug(f"{leftover} medals left unspent: all {len(lines)} players at cap {cap}")

    return result
