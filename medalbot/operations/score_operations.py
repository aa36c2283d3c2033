"""
Score Operations Module

The ingestion boundary between score review (OCR or manual entry) and the
verified scores that raffles and distributions read.

Review helpers work on in-memory rows: match parsed names to players,
bulk-approve confident rows, merge duplicates and build the commit payload.
commit_scores then upserts the payload keyed by (event, player). A
malformed row is skipped and counted, never allowed to abort the batch.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence
from contextlib import asynccontextmanager
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medalbot.config import Config
from medalbot.database.models import Event, Player, Score
from medalbot.utils.exceptions import ScoreValidationError
from medalbot.utils.numeric_ocr import OCRScoreLine
from medalbot.utils.logger import setup_logger

logger = setup_logger(__name__)

# NUMERIC(30,0) upper bound
MAX_SCORE = 10 ** 30 - 1


def parse_score_value(value: Any) -> int:
    """
    Validate a score as a non-negative exact integer.

    Accepts ints and digit strings with optional thousands commas.

    Raises:
        ScoreValidationError: Anything else, negatives and out-of-range values
    """
    if isinstance(value, bool):
        raise ScoreValidationError(value, "Score must be a whole number")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        cleaned = value.strip().replace(',', '')
        if not cleaned.isdigit():
            raise ScoreValidationError(value, "Score must be a whole number")
        parsed = int(cleaned)
    else:
        raise ScoreValidationError(value, "Score must be a whole number")

    if parsed < 0:
        raise ScoreValidationError(value, "Score cannot be negative")
    if parsed > MAX_SCORE:
        raise ScoreValidationError(value, "Score is out of range")
    return parsed


def _parse_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid id {value!r}")
    parsed = int(value)
    if parsed <= 0:
        raise ValueError(f"Invalid id {value!r}")
    return parsed


def _parse_optional_id(value: Any) -> Optional[int]:
    return None if value is None else _parse_id(value)


def parse_verified(value: Any) -> bool:
    """Accept a real bool or the text "true"/"false"; anything else is malformed."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise ScoreValidationError(value, "Verified flag must be true or false")


@dataclass
class ReviewRow:
    """A parsed score line under review"""
    parsed_name: str
    score: int
    confidence: float
    linked_player_id: Optional[int] = None
    is_verified: bool = False
    corrected_value: Optional[int] = None


def match_player(name: str, players: Sequence[Player]) -> Optional[Player]:
    """First live player whose canonical name or an alias matches, case-insensitively."""
    for player in players:
        if player.deleted_at is None and player.matches_name(name):
            return player
    return None


def build_review_rows(lines: Iterable[OCRScoreLine], players: Sequence[Player]) -> List[ReviewRow]:
    """Turn parsed lines into unverified review rows with suggested player links."""
    rows = []
    for line in lines:
        player = match_player(line.parsed_name, players)
        rows.append(ReviewRow(
            parsed_name=line.parsed_name,
            score=line.parsed_score,
            confidence=line.confidence,
            linked_player_id=player.id if player else None,
            corrected_value=line.corrected_value,
        ))
    return rows


def approve_high_confidence(rows: List[ReviewRow], threshold: float = None) -> int:
    """Verify every linked row at or above the threshold. Returns how many were newly approved."""
    threshold = Config.HIGH_CONFIDENCE_THRESHOLD if threshold is None else threshold
    approved = 0
    for row in rows:
        if row.linked_player_id and row.confidence >= threshold and not row.is_verified:
            row.is_verified = True
            approved += 1
    return approved


def merge_duplicates(rows: List[ReviewRow]) -> List[ReviewRow]:
    """
    Keep one row per linked player, the one with the highest score.
    Unlinked rows are dropped.
    """
    best: Dict[int, ReviewRow] = {}
    for row in rows:
        if not row.linked_player_id:
            continue
        current = best.get(row.linked_player_id)
        if current is None or row.score > current.score:
            best[row.linked_player_id] = row
    return list(best.values())


def build_commit_payload(rows: Iterable[ReviewRow], event_id: int, actor_id: int) -> List[Dict[str, Any]]:
    """Commit rows for the verified, linked review rows: highest score per player."""
    verified = merge_duplicates([row for row in rows if row.is_verified])
    return [
        {
            'event_id': event_id,
            'player_id': row.linked_player_id,
            'score': row.score,
            'raw_score': row.score,
            'verified': True,
            'actor_id': actor_id,
        }
        for row in verified
    ]


class ScoreOperations:
    """Upserts reviewed score rows into the score store."""

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

    async def commit_scores(
        self,
        rows: Iterable[Dict[str, Any]],
        session: Optional[AsyncSession] = None
    ) -> Dict[str, int]:
        """
        Upsert score rows keyed by (event_id, player_id), last write wins.

        Each row: {event_id, player_id, score, raw_score?, verified?, actor_id?}.
        verified defaults to True and must be a bool or "true"/"false" text;
        actor_id may be omitted. Rows with unparseable ids, invalid scores,
        a malformed verified flag or an unknown or deleted event or player are skipped.

        Returns:
            {'committed': n, 'skipped': n}
        """
        committed = 0
        skipped = 0

        async with self._get_session_context(session) as s:
            known_events: Dict[int, bool] = {}
            known_players: Dict[int, bool] = {}
            pending: Dict[tuple, Score] = {}

            for index, row in enumerate(rows):
                try:
                    event_id = _parse_id(row.get('event_id'))
                    player_id = _parse_id(row.get('player_id'))
                    score = parse_score_value(row.get('score'))
                    raw_value = row.get('raw_score')
                    raw_score = parse_score_value(raw_value) if raw_value is not None else score
                    verified = parse_verified(row.get('verified', True))
                    actor_id = _parse_optional_id(row.get('actor_id'))
                except (ScoreValidationError, ValueError, TypeError, AttributeError) as e:
                    self.logger.warning(f"Skipping score row {index}: {e}")
                    skipped += 1
                    continue

                if event_id not in known_events:
                    event = await s.get(Event, event_id)
                    known_events[event_id] = event is not None and event.deleted_at is None
                if player_id not in known_players:
                    player = await s.get(Player, player_id)
                    known_players[player_id] = player is not None and player.deleted_at is None
                if not known_events[event_id] or not known_players[player_id]:
                    self.logger.warning(
                        f"Skipping score row {index}: unknown event {event_id} or player {player_id}"
                    )
                    skipped += 1
                    continue

                key = (event_id, player_id)
                existing = pending.get(key)
                if existing is None:
                    result = await s.execute(
                        select(Score).where(Score.event_id == event_id, Score.player_id == player_id)
                    )
                    existing = result.scalar_one_or_none()
                if existing is None:
                    existing = Score(event_id=event_id, player_id=player_id)
                    s.add(existing)

                existing.score = score
                existing.raw_score = raw_score
                existing.verified = verified
                existing.created_by = actor_id
                pending[key] = existing
                committed += 1

            await s.flush()

        self.logger.info(f"Score commit: {committed} committed, {skipped} skipped")
        return {'committed': committed, 'skipped': skipped}
