"""
Prediction Market Exceptions

Every rejected operation raises one of these. The class identifies the
failure kind; `reason` carries the specific cause.
"""


class MarketError(Exception):
    """Base exception for the market engine."""

    kind = "market_error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def __str__(self) -> str:
        return f"[{self.kind}] {self.reason}"


class PhaseViolation(MarketError):
    """Operation is not allowed in the market's current lifecycle phase."""

    kind = "phase_violation"


class ReentrancyError(PhaseViolation):
    """Operation entered while another operation on the market is in flight."""

    kind = "reentrancy"


class ValidationError(MarketError):
    """Zero or out-of-range amount, bad outcome index, or a guard ceiling exceeded."""

    kind = "validation_error"


class AuthorizationError(MarketError):
    """Caller lacks the role or ownership the operation requires."""

    kind = "authorization_error"


class ReplayError(MarketError):
    """Duplicate commitment, already-revealed commitment, or reused request id."""

    kind = "replay_error"


class MarketArithmeticError(MarketError):
    """Division on empty history or underflow on insufficient balance."""

    kind = "arithmetic_error"


class ConfigurationError(MarketError):
    """Configuration error."""

    kind = "configuration_error"
