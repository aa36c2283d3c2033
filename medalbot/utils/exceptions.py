"""
Custom exceptions for the medal economy with user-friendly error messages.
"""

class MedalEconomyError(Exception):
    """Base exception for medal economy errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class NotFoundError(MedalEconomyError):
    """Raised when a required row (event totals, player, raffle...) does not exist."""
    def __init__(self, resource: str, identifier):
        super().__init__(
            f"{resource} not found: {identifier}",
            f"❌ {resource} not found!"
        )
        self.resource = resource
        self.identifier = identifier

class ScoreValidationError(MedalEconomyError):
    """Raised when a score value or score row cannot be parsed."""
    def __init__(self, value, reason: str):
        super().__init__(
            f"Invalid score {value!r}: {reason}",
            f"❌ {reason}"
        )

class InvariantViolationError(MedalEconomyError):
    """Raised when a settlement would pay out more than the pot holds."""
    def __init__(self, details: str):
        super().__init__(
            f"Settlement invariant violated: {details}",
            "❌ Distribution aborted due to an internal error. Nothing was paid out."
        )

class InsufficientPotError(MedalEconomyError):
    """Raised when a raffle draw would consume more than the remaining pot."""
    def __init__(self, required: int, remaining: int):
        super().__init__(
            f"Raffle needs {required} medals but only {remaining} remain",
            f"❌ Not enough medals left in the pot ({remaining:,} remaining, {required:,} needed)."
        )
        self.required = required
        self.remaining = remaining

class InvalidPotError(MedalEconomyError):
    """Raised when a pot would be set below what has already been consumed."""
    def __init__(self, total_amount: int, consumed: int):
        super().__init__(
            f"Pot {total_amount} is below already consumed amount {consumed}",
            f"❌ The pot cannot be smaller than what was already paid out ({consumed:,})."
        )

class PlayerLinkError(MedalEconomyError):
    """Raised when an alt/main link would be invalid."""
    def __init__(self, reason: str):
        super().__init__(
            f"Invalid alt link: {reason}",
            f"❌ {reason}"
        )

class RaffleStateError(MedalEconomyError):
    """Raised when a raffle is not in a state that allows the operation."""
    def __init__(self, raffle_id: int, status: str):
        super().__init__(
            f"Raffle {raffle_id} is {status}",
            f"❌ This raffle has already been {status}."
        )
