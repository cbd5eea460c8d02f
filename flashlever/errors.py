"""Exception taxonomy for leverage operations."""


class LeverageError(Exception):
    """Base class for every error raised by the leverage core."""


class ConfigurationError(LeverageError, ValueError):
    """Invalid parameter combination or configuration file."""


class AuthorizationError(LeverageError):
    """Caller does not hold the role required for the operation."""


class UntrustedCallbackError(LeverageError):
    """Flash-borrow callback invoked outside a self-issued flash borrow."""


class InsufficientCapacityError(LeverageError):
    """Requested action exceeds available liquidity, caps or balances."""


class SlippageViolation(LeverageError):
    """A conversion returned less than its configured minimum output."""


class LeverageBoundsError(LeverageError):
    """Post-operation leverage is outside the configured safety bounds."""
