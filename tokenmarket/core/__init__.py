"""
Core token market components.

This module contains the order and trade records, the storage
collaborators and the matching engine.
"""

from .errors import MarketError, ValidationError, InvalidTransition, StoreFailure
from .order import NewOrderRequest, Order, Trade, Token
from .order_types import OrderSide, OrderStatus, TradeType, TradeStatus, MatchPolicy, FillPolicy
from .store import (
    OrderStore,
    TradeSink,
    TokenRegistry,
    IdGenerator,
    InMemoryOrderStore,
    InMemoryTradeSink,
    InMemoryTokenRegistry,
    RandomIdGenerator,
    SequentialIdGenerator,
)
from .order_book import OpenOrders, OrderBook
from .matching_engine import MatchingEngine, attempt_match, is_price_compatible

__all__ = [
    "MarketError",
    "ValidationError",
    "InvalidTransition",
    "StoreFailure",
    "NewOrderRequest",
    "Order",
    "Trade",
    "Token",
    "OrderSide",
    "OrderStatus",
    "TradeType",
    "TradeStatus",
    "MatchPolicy",
    "FillPolicy",
    "OrderStore",
    "TradeSink",
    "TokenRegistry",
    "IdGenerator",
    "InMemoryOrderStore",
    "InMemoryTradeSink",
    "InMemoryTokenRegistry",
    "RandomIdGenerator",
    "SequentialIdGenerator",
    "OpenOrders",
    "OrderBook",
    "MatchingEngine",
    "attempt_match",
    "is_price_compatible",
]
