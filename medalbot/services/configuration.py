"""
Runtime configuration for the medal bot.

Values live in the configurations table as JSON, are cached in memory and
every change is written to the audit log. Settings that must stay fixed for
correctness (distribution cap, reallocation bound) are on Config instead.
"""

import json
import logging
from typing import Any, Dict
from sqlalchemy import select

from medalbot.config import Config
from medalbot.services.base import BaseService
from medalbot.database.models import Configuration, AuditLog

logger = logging.getLogger(__name__)

INITIAL_CONFIGS = {
    # Score review
    'ocr.auto_correct_numeric': True,
    'review.high_confidence': Config.HIGH_CONFIDENCE_THRESHOLD,

    # Raffle
    'raffle.win_amount': Config.RAFFLE_WIN_AMOUNT,
}

class ConfigurationService(BaseService):
    """Manages bot configuration with simple caching and audit trail."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self._cache: Dict[str, Any] = {}

    async def seed_defaults(self) -> int:
        """Insert any missing default keys without touching existing values."""
        added = 0
        async with self.get_session() as session:
            result = await session.execute(select(Configuration.key))
            existing = set(result.scalars().all())
            for key, value in INITIAL_CONFIGS.items():
                if key not in existing:
                    session.add(Configuration(key=key, value=json.dumps(value)))
                    added += 1
        if added:
            logger.info(f"Seeded {added} configuration parameters")
        return added

    async def load_all(self):
        """Load all configurations from database into memory."""
        new_cache = {}
        async with self.get_session() as session:
            result = await session.execute(select(Configuration))
            for config in result.scalars().all():
                try:
                    new_cache[config.key] = json.loads(config.value)
                except json.JSONDecodeError:
                    logger.warning(f"Invalid JSON for config key '{config.key}', skipping")
                    continue

        self._cache = new_cache
        logger.info(f"Loaded {len(self._cache)} configuration parameters")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key (e.g., 'raffle.win_amount')
            default: Default value if key not found
        """
        return self._cache.get(key, default)

    async def set(self, key: str, value: Any, user_id: int):
        """
        Set configuration value, persist it and record the change in the audit log.

        Args:
            key: Configuration key
            value: Configuration value (will be JSON-encoded)
            user_id: Discord user ID for audit trail
        """
        async with self.get_session() as session:
            result = await session.execute(
                select(Configuration).where(Configuration.key == key)
            )
            config = result.scalar_one_or_none()

            if config:
                old_value = config.value
                config.value = json.dumps(value)
            else:
                old_value = None
                session.add(Configuration(key=key, value=json.dumps(value)))

            old_value_parsed = None
            if old_value:
                try:
                    old_value_parsed = json.loads(old_value)
                except json.JSONDecodeError:
                    old_value_parsed = {"error": "invalid JSON", "raw": old_value}

            session.add(AuditLog(
                user_id=user_id,
                action='config_set',
                details=json.dumps({
                    'key': key,
                    'old_value': old_value_parsed,
                    'new_value': value
                })
            ))

        # Reload after the write so the cache never runs ahead of the database
        await self.load_all()

    def get_by_category(self, category: str) -> Dict[str, Any]:
        """
        Get all configuration values for a category, keyed without the prefix.

        Args:
            category: Configuration category (e.g., 'ocr', 'raffle')
        """
        prefix = f"{category}."
        return {
            key[len(prefix):]: value
            for key, value in self._cache.items()
            if key.startswith(prefix)
        }
