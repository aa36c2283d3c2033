"""
Operations Layer

Business logic that composes database access into workflows. Operations
modules handle validation, multi-step writes and business rules; the
settlement algorithms themselves live in the services package.

Architecture:
- Database layer: Pure data access and lookups
- Operations layer: Roster, events and pots, ledger, score commit
- Services layer: Score aggregation, raffle draws, weighted distribution
- Command layer: Discord integration and user interface
"""
