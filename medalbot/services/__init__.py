"""
Services package for the medal economy.

Settlement services (raffle draws, weighted distribution) and the score
aggregation they share.
"""

from .base import BaseService
from .settlement_locks import SettlementLockManager, settlement_locks
from .score_aggregation import ScoreAggregationService
from .distribution_service import WeightedDistributionService
from .raffle_service import RaffleService
from .configuration import ConfigurationService

__all__ = [
    'BaseService',
    'SettlementLockManager',
    'settlement_locks',
    'ScoreAggregationService',
    'WeightedDistributionService',
    'RaffleService',
    'ConfigurationService',
]
