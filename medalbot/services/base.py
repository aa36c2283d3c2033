"""
Base service class for the medal economy services.

Provides async database session management for all service layer
operations.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

class BaseService:
    """Base class for all services with async database session management."""
    
    def __init__(self, session_factory):
        """
        Initialize base service with session factory.
        
        Args:
            session_factory: Async session factory from Database class
        """
        self.session_factory = session_factory
    
    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for async database operations."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
    
    @asynccontextmanager
    async def session_scope(self, session: Optional[AsyncSession] = None) -> AsyncGenerator[AsyncSession, None]:
        """
        Use the caller's session if given (caller owns commit/rollback),
        otherwise open a transactional one.
        """
        if session is not None:
            yield session
        else:
            async with self.get_session() as new_session:
                yield new_session
    