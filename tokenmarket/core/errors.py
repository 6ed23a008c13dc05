"""
Exceptions raised by the token market core.
"""


class MarketError(Exception):
    """Base class for all token market errors."""


class ValidationError(MarketError, ValueError):
    """An order or request failed validation and was not inserted."""


class InvalidTransition(MarketError, ValueError):
    """An order status change outside open -> filled / open -> cancelled."""


class StoreFailure(MarketError):
    """The order store or trade sink could not complete an operation."""
