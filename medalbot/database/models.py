from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Boolean, Text, Numeric,
    ForeignKey, Enum as SQLEnum, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator
from decimal import Decimal
from enum import Enum
from typing import List
import json

Base = declarative_base()

class ExactAmount(TypeDecorator):
    """
    Arbitrary-precision integer column for scores and medal quantities.

    PostgreSQL stores NUMERIC(30,0). SQLite has no exact wide numeric type,
    so values are stored as decimal text there. Either way Python code only
    ever sees int. Comparisons and sums on these columns happen in Python.
    """
    impl = Numeric(30, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'sqlite':
            return dialect.type_descriptor(String(40))
        return dialect.type_descriptor(Numeric(30, 0))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value)
        if dialect.name == 'sqlite':
            return str(value)
        return Decimal(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)

class PlayerStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"

class TransactionType:
    """Ledger transaction_type values"""
    WEIGHTED_DISTRIBUTION = "weighted_distribution"
    RAFFLE_PRIZE = "raffle_prize"
    ADMIN_GRANT = "admin_grant"
    DEDUCTION = "deduction"
    REVERSAL = "reversal"

class RaffleStatus:
    PENDING = "pending"
    COMPLETED = "completed"

class Player(Base):
    __tablename__ = 'players'

    id = Column(Integer, primary_key=True)
    canonical_name = Column(String(100), nullable=False, unique=True)
    aliases = Column(Text, default='[]')  # JSON list of alternative spellings

    # Alt accounts roll their scores up to main_player_id (one level only)
    is_alt = Column(Boolean, default=False, nullable=False)
    main_player_id = Column(Integer, ForeignKey('players.id', ondelete='SET NULL'), nullable=True)

    status = Column(SQLEnum(PlayerStatus), default=PlayerStatus.ACTIVE, nullable=False)

    # Metadata
    joined_at = Column(DateTime, default=func.now())
    deleted_at = Column(DateTime, nullable=True)  # Soft delete
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    main_player = relationship("Player", remote_side=[id], foreign_keys=[main_player_id])

    @property
    def alias_list(self) -> List[str]:
        if not self.aliases:
            return []
        return json.loads(self.aliases)

    @alias_list.setter
    def alias_list(self, values: List[str]):
        self.aliases = json.dumps([v.strip() for v in values if v and v.strip()])

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def matches_name(self, name: str) -> bool:
        """Case-insensitive match against the canonical name or any alias"""
        normalized = name.strip().lower()
        if self.canonical_name.lower() == normalized:
            return True
        return any(alias.lower() == normalized for alias in self.alias_list)

    def __repr__(self):
        return f"<Player(id={self.id}, name='{self.canonical_name}', alt={self.is_alt})>"

class Event(Base):
    __tablename__ = 'events'

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    event_date = Column(Date, nullable=True)

    # Metadata
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now())
    deleted_at = Column(DateTime, nullable=True)

    scores = relationship("Score", back_populates="event", cascade="all, delete-orphan")
    totals = relationship("EventTotals", back_populates="event", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Event(id={self.id}, name='{self.name}', date={self.event_date})>"

class Medal(Base):
    __tablename__ = 'medals'

    id = Column(Integer, primary_key=True)
    name = Column(String(50), nullable=False, unique=True)
    value = Column(Integer, nullable=False)  # Display-only cross-medal value
    color = Column(String(20))
    icon = Column(String(50))

    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<Medal(name='{self.name}', value={self.value})>"

class Score(Base):
    """
    Verified per-event score. One row per (event, player), overwritten on re-commit.

    raw_score keeps the pre-correction value for audit. Only verified rows take
    part in raffles and weighted distribution.
    """
    __tablename__ = 'scores'

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey('events.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = Column(Integer, ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)

    score = Column(ExactAmount, nullable=False)
    raw_score = Column(ExactAmount, nullable=True)
    verified = Column(Boolean, default=False, nullable=False)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    event = relationship("Event", back_populates="scores")
    player = relationship("Player")

    __table_args__ = (
        UniqueConstraint('event_id', 'player_id', name='uq_scores_event_player'),
    )

    def __repr__(self):
        return f"<Score(event_id={self.event_id}, player_id={self.player_id}, score={self.score}, verified={self.verified})>"

class EventTotals(Base):
    """
    The medal pot for one (event, medal) pair.

    Only the raffle and distribution settlements mutate raffle_amount_used and
    distributed_amount, always while holding the (event, medal) settlement lock.
    raffle_amount_used + distributed_amount <= total_amount after every settlement.
    """
    __tablename__ = 'event_totals'

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey('events.id', ondelete='CASCADE'), nullable=False)
    medal_id = Column(Integer, ForeignKey('medals.id', ondelete='CASCADE'), nullable=False)

    total_amount = Column(ExactAmount, nullable=False)
    raffle_amount_used = Column(ExactAmount, nullable=False, default=0)
    distributed_amount = Column(ExactAmount, nullable=False, default=0)
    min_score_for_raffle = Column(ExactAmount, nullable=False, default=0)  # Also gates weighted distribution

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    event = relationship("Event", back_populates="totals")
    medal = relationship("Medal")

    __table_args__ = (
        UniqueConstraint('event_id', 'medal_id', name='uq_event_totals_event_medal'),
    )

    @property
    def remaining(self) -> int:
        return (self.total_amount or 0) - (self.raffle_amount_used or 0) - (self.distributed_amount or 0)

    def __repr__(self):
        return (f"<EventTotals(event_id={self.event_id}, medal_id={self.medal_id}, total={self.total_amount}, "
                f"raffle={self.raffle_amount_used}, distributed={self.distributed_amount})>")

class LedgerTransaction(Base):
    """
    Append-only medal ledger. A player's balance is the sum of their rows.

    Rows are never updated. Corrections are new offsetting rows.
    """
    __tablename__ = 'ledger_transactions'

    id = Column(Integer, primary_key=True)
    player_id = Column(Integer, ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    medal_id = Column(Integer, ForeignKey('medals.id', ondelete='CASCADE'), nullable=False)

    amount = Column(ExactAmount, nullable=False)  # Negative for deductions and reversals
    transaction_type = Column(String(50), nullable=False)

    # Optional context
    event_id = Column(Integer, ForeignKey('events.id', ondelete='SET NULL'), nullable=True, index=True)
    raffle_id = Column(Integer, ForeignKey('raffles.id', ondelete='SET NULL'), nullable=True)
    reverses_transaction_id = Column(Integer, ForeignKey('ledger_transactions.id'), nullable=True)
    description = Column(String(255))

    created_by = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=func.now())

    player = relationship("Player")
    medal = relationship("Medal")

    def __repr__(self):
        return f"<LedgerTransaction(player_id={self.player_id}, medal_id={self.medal_id}, amount={self.amount}, type='{self.transaction_type}')>"

class Raffle(Base):
    __tablename__ = 'raffles'

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey('events.id', ondelete='CASCADE'), nullable=False)
    medal_id = Column(Integer, ForeignKey('medals.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text)

    total_prizes = Column(Integer, nullable=False)
    prize_amount = Column(ExactAmount, nullable=False)  # Fixed payout per winner
    status = Column(String(20), default=RaffleStatus.PENDING, nullable=False)
    drawn_at = Column(DateTime, nullable=True)

    created_by = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=func.now())

    entries = relationship("RaffleEntry", back_populates="raffle", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Raffle(id={self.id}, name='{self.name}', status='{self.status}')>"

class RaffleEntry(Base):
    __tablename__ = 'raffle_entries'

    id = Column(Integer, primary_key=True)
    raffle_id = Column(Integer, ForeignKey('raffles.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = Column(Integer, ForeignKey('players.id', ondelete='CASCADE'), nullable=False)

    weight = Column(Integer, default=1, nullable=False)
    is_winner = Column(Boolean, default=False, nullable=False)
    prize_amount = Column(ExactAmount, nullable=True)

    created_at = Column(DateTime, default=func.now())

    raffle = relationship("Raffle", back_populates="entries")
    player = relationship("Player")

    __table_args__ = (
        UniqueConstraint('raffle_id', 'player_id'),
    )

class RaffleWeight(Base):
    """Carry-over raffle entries: qualified non-winners gain one entry per draw, winners reset."""
    __tablename__ = 'raffle_weights'

    id = Column(Integer, primary_key=True)
    player_id = Column(Integer, ForeignKey('players.id', ondelete='CASCADE'), nullable=False)
    event_id = Column(Integer, ForeignKey('events.id', ondelete='CASCADE'), nullable=False)

    entries_before = Column(Integer, default=0, nullable=False)
    entries_next = Column(Integer, default=0, nullable=False)

    updated_by = Column(Integer, nullable=True)
    last_updated = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('player_id', 'event_id'),
    )

class Configuration(Base):
    """Runtime configuration key/value store (JSON-encoded values)."""
    __tablename__ = 'configurations'

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    action = Column(String(50), nullable=False)
    details = Column(Text)  # JSON
    created_at = Column(DateTime, default=func.now())
