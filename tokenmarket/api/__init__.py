"""
API layer for the token market.

This module provides REST and WebSocket APIs for token registration,
order submission, order book queries and trade feeds.
"""

from .rest_api import create_app
from .websocket_api import WebSocketServer
from .validators import validate_order_request, validate_token_id

__all__ = [
    "create_app",
    "WebSocketServer",
    "validate_order_request",
    "validate_token_id",
]
