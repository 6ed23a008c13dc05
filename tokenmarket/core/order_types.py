"""
Order type definitions and enums for the token market.

This module defines the order sides, lifecycle states and the
matching/fill policies supported by the engine.
"""

from enum import Enum


class OrderSide(Enum):
    """
    Order sides for buy and sell orders.

    - BUY: Orders to purchase the token
    - SELL: Orders to sell the token
    """
    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderStatus(Enum):
    """
    Order status tracking throughout the lifecycle.

    - OPEN: Order resting in the book
    - FILLED: Order consumed by a match
    - CANCELLED: Order withdrawn by its submitter
    """
    OPEN = "open"
    FILLED = "filled"
    CANCELLED = "cancelled"


class TradeType(Enum):
    """Type tag carried by trade records."""
    BUY = "buy"


class TradeStatus(Enum):
    """Trades are settled synchronously, so they are always completed."""
    COMPLETED = "completed"


class MatchPolicy(Enum):
    """
    Counter-order selection among qualifying candidates.

    - FIRST_MATCH: first qualifying order in book insertion order
    - BEST_PRICE: lowest ask / highest bid, earliest order on ties
    """
    FIRST_MATCH = "first_match"
    BEST_PRICE = "best_price"


class FillPolicy(Enum):
    """
    Handling of the surplus when matched quantities differ.

    - ALL_OR_NOTHING: both orders are filled, the surplus is dropped
    - PARTIAL: the surplus rests as a new open remainder order
    """
    ALL_OR_NOTHING = "all_or_nothing"
    PARTIAL = "partial"


def validate_order_side(side: str) -> OrderSide:
    """
    Validate and convert string order side to OrderSide enum.

    Args:
        side: String representation of order side

    Returns:
        OrderSide enum value

    Raises:
        ValueError: If side is invalid
    """
    if isinstance(side, OrderSide):
        return side
    try:
        return OrderSide(str(side).lower())
    except ValueError:
        raise ValueError(f"Invalid order side: {side}. Must be one of: {[s.value for s in OrderSide]}")


def validate_match_policy(policy: str) -> MatchPolicy:
    """Convert a policy name to MatchPolicy, raising ValueError if unknown."""
    try:
        return MatchPolicy(policy.lower())
    except ValueError:
        raise ValueError(f"Invalid match policy: {policy}. Must be one of: {[p.value for p in MatchPolicy]}")


def validate_fill_policy(policy: str) -> FillPolicy:
    """Convert a policy name to FillPolicy, raising ValueError if unknown."""
    try:
        return FillPolicy(policy.lower())
    except ValueError:
        raise ValueError(f"Invalid fill policy: {policy}. Must be one of: {[p.value for p in FillPolicy]}")
