"""
WebSocket API for real-time order book and trade feeds.

Clients subscribe per token and receive trade executions and order
book snapshots as the matching engine produces them.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Set, Dict, Any, Optional

import websockets
from websockets.asyncio.server import ServerConnection, serve

from ..core.matching_engine import MatchingEngine
from ..core.order import Trade
from .validators import validate_depth_request, validate_token_id

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class WebSocketServer:
    """
    WebSocket server for real-time data streaming.

    Engine callbacks may fire on any thread (for example a REST worker
    thread), so they are handed to the server's event loop with
    call_soon_threadsafe before broadcasting.
    """

    def __init__(
        self,
        matching_engine: MatchingEngine,
        host: str = 'localhost',
        port: int = 8765,
        ping_interval: int = 20,
        ping_timeout: int = 10,
    ):
        """
        Initialize WebSocket server.

        Args:
            matching_engine: Matching engine instance
            host: Host to bind to
            port: Port to bind to
            ping_interval: Keepalive ping interval in seconds
            ping_timeout: Keepalive ping timeout in seconds
        """
        self.matching_engine = matching_engine
        self.host = host
        self.port = port
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout

        self.clients: Set[ServerConnection] = set()
        self.subscriptions: Dict[ServerConnection, Set[str]] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None

        self.matching_engine.add_trade_callback(self._on_trade)
        self.matching_engine.add_market_data_callback(self._on_market_data)

        logger.info(f"WebSocket server initialized on {host}:{port}")

    async def start(self) -> None:
        """Start the WebSocket server and run until cancelled."""
        self.loop = asyncio.get_running_loop()
        logger.info(f"Starting WebSocket server on {self.host}:{self.port}")

        async with serve(
            self._handle_client,
            self.host,
            self.port,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
            close_timeout=10
        ):
            await asyncio.Future()  # Run forever

    async def _handle_client(self, websocket: ServerConnection) -> None:
        """Serve one client connection."""
        client_address = websocket.remote_address
        logger.info(f"Client connected: {client_address}")

        self.clients.add(websocket)
        self.subscriptions[websocket] = set()

        try:
            await self._send_message(websocket, {
                'type': 'connection',
                'status': 'connected',
                'timestamp': _now(),
                'message': 'Connected to token market WebSocket'
            })

            async for message in websocket:
                await self._handle_message(websocket, message)

        except websockets.exceptions.ConnectionClosed:
            logger.info(f"Client disconnected: {client_address}")
        finally:
            self.clients.discard(websocket)
            self.subscriptions.pop(websocket, None)

    async def _handle_message(self, websocket: ServerConnection, message: str) -> None:
        """Dispatch one client message."""
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            await self._send_error(websocket, "Invalid JSON format")
            return

        if not isinstance(data, dict):
            await self._send_error(websocket, "Message must be a JSON object")
            return

        message_type = str(data.get('type', '')).lower()

        if message_type == 'subscribe':
            await self._handle_subscribe(websocket, data)
        elif message_type == 'unsubscribe':
            await self._handle_unsubscribe(websocket, data)
        elif message_type == 'ping':
            await self._send_message(websocket, {'type': 'pong', 'timestamp': _now()})
        elif message_type == 'get_orderbook':
            await self._handle_get_orderbook(websocket, data)
        else:
            await self._send_error(websocket, f"Unknown message type: {message_type}")

    async def _handle_subscribe(self, websocket: ServerConnection, data: Dict[str, Any]) -> None:
        """Handle subscription request."""
        token_id = data.get('token_id')

        is_valid, error = validate_token_id(token_id)
        if not is_valid:
            await self._send_error(websocket, error)
            return

        if not self.matching_engine.token_registry.exists(token_id):
            await self._send_error(websocket, f"Unknown token: {token_id}")
            return

        self.subscriptions[websocket].add(token_id)

        await self._send_message(websocket, {
            'type': 'subscription',
            'status': 'subscribed',
            'token_id': token_id,
            'timestamp': _now()
        })

        await self._send_orderbook_update(websocket, token_id)

        logger.info(f"Client subscribed to {token_id}")

    async def _handle_unsubscribe(self, websocket: ServerConnection, data: Dict[str, Any]) -> None:
        """Handle unsubscription request; no token_id means all."""
        token_id = data.get('token_id')

        if token_id:
            self.subscriptions[websocket].discard(token_id)
            status = 'unsubscribed'
        else:
            self.subscriptions[websocket].clear()
            status = 'unsubscribed_all'

        await self._send_message(websocket, {
            'type': 'subscription',
            'status': status,
            'token_id': token_id,
            'timestamp': _now()
        })

        logger.info(f"Client unsubscribed from {token_id or 'all'}")

    async def _handle_get_orderbook(self, websocket: ServerConnection, data: Dict[str, Any]) -> None:
        """Handle get orderbook request."""
        token_id = data.get('token_id')

        is_valid, error = validate_token_id(token_id)
        if not is_valid:
            await self._send_error(websocket, error)
            return

        is_valid, error, depth = validate_depth_request(data.get('depth'))
        if not is_valid:
            await self._send_error(websocket, error)
            return

        await self._send_orderbook_update(websocket, token_id, depth)

    async def _send_orderbook_update(self, websocket: ServerConnection, token_id: str, depth: int = 10) -> None:
        """Send order book snapshot to client."""
        order_book = self.matching_engine.get_order_book(token_id)
        if not order_book:
            await self._send_error(websocket, f"Order book not found for {token_id}")
            return

        best_bid, best_ask = order_book.get_bbo()

        await self._send_message(websocket, {
            'type': 'orderbook',
            'token_id': token_id,
            'timestamp': _now(),
            'bids': order_book.get_order_book_depth('bids', depth),
            'asks': order_book.get_order_book_depth('asks', depth),
            'best_bid': str(best_bid) if best_bid is not None else None,
            'best_ask': str(best_ask) if best_ask is not None else None,
        })

    async def _send_message(self, websocket: ServerConnection, message: Dict[str, Any]) -> None:
        """Send message to client."""
        try:
            await websocket.send(json.dumps(message))
        except websockets.exceptions.ConnectionClosed:
            logger.debug("Client connection closed while sending message")

    async def _send_error(self, websocket: ServerConnection, error_message: str) -> None:
        """Send error message to client."""
        await self._send_message(websocket, {
            'type': 'error',
            'message': error_message,
            'timestamp': _now()
        })

    def _schedule(self, coro_factory, payload) -> None:
        if self.loop is None or self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(lambda: self.loop.create_task(coro_factory(payload)))

    def _on_trade(self, trade: Trade) -> None:
        """Handle trade execution callback."""
        self._schedule(self._broadcast_trade, trade)

    def _on_market_data(self, market_data: Dict[str, Any]) -> None:
        """Handle order book update callback."""
        self._schedule(self._broadcast_market_data, market_data)

    async def _broadcast(self, token_id: str, message: Dict[str, Any]) -> None:
        tasks = [
            self._send_message(websocket, message)
            for websocket in self.clients.copy()
            if token_id in self.subscriptions.get(websocket, set())
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _broadcast_trade(self, trade: Trade) -> None:
        """Broadcast trade to subscribed clients."""
        message = trade.to_dict()
        # The record's own "type" (buy) would clash with the message type
        message['trade_type'] = message.pop('type')
        message['type'] = 'trade'
        await self._broadcast(trade.token_id, message)

    async def _broadcast_market_data(self, market_data: Dict[str, Any]) -> None:
        """Broadcast order book update to subscribed clients."""
        token_id = market_data.get('token_id')
        if not token_id:
            return
        message = {'type': 'orderbook'}
        message.update(market_data)
        await self._broadcast(token_id, message)

    def get_client_count(self) -> int:
        """Get number of connected clients."""
        return len(self.clients)

    def get_subscription_count(self) -> Dict[str, int]:
        """Get subscription counts by token."""
        counts: Dict[str, int] = {}
        for subscriptions in self.subscriptions.values():
            for token_id in subscriptions:
                counts[token_id] = counts.get(token_id, 0) + 1
        return counts
