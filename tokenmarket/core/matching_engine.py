"""
Matching engine for the token market.

This module contains the counter-order selection logic and the
MatchingEngine class that validates submissions, records them in
the order store, pairs them with a resting opposite-side order and
emits trade records.
"""

import logging
import threading
from contextlib import nullcontext
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import StoreFailure, ValidationError
from .order import NewOrderRequest, Order, Token, Trade
from .order_book import OpenOrders, OrderBook
from .order_types import (
    FillPolicy,
    MatchPolicy,
    OrderSide,
    validate_fill_policy,
    validate_match_policy,
    validate_order_side,
)
from .store import (
    IdGenerator,
    InMemoryOrderStore,
    InMemoryTokenRegistry,
    InMemoryTradeSink,
    OrderStore,
    RandomIdGenerator,
    TokenRegistry,
    TradeSink,
)
from ..utils.logger import log_order_audit, log_trade_audit
from ..utils.performance import PerformanceMonitor, measure_latency

logger = logging.getLogger(__name__)


def is_price_compatible(order: Order, candidate: Order) -> bool:
    """
    Check the limit prices of two opposite-side orders.

    A buyer's limit is an upper bound on the ask; a seller's limit is
    a lower bound on the bid.
    """
    if order.side == OrderSide.BUY:
        return candidate.price <= order.price
    return candidate.price >= order.price


def attempt_match(
    order: Order,
    book: Iterable[Order],
    policy: MatchPolicy = MatchPolicy.FIRST_MATCH,
) -> Optional[Order]:
    """
    Select the counter-order for ``order`` from ``book``.

    Candidates are open orders for the same token on the opposite side,
    from a different submitter, at a compatible price.

    Args:
        order: The newly submitted order
        book: Orders to scan, in insertion order
        policy: FIRST_MATCH returns the first qualifying candidate,
            BEST_PRICE the best-priced one (earliest on ties)

    Returns:
        The selected counter-order, or None if nothing qualifies
    """
    candidates = []
    for candidate in book:
        if candidate.token_id != order.token_id:
            continue
        if candidate.side != order.side.opposite or not candidate.is_open:
            continue
        if not is_price_compatible(order, candidate):
            continue
        if candidate.user_id == order.user_id:
            logger.debug(f"Skipping self-trade between {order.order_id} and {candidate.order_id}")
            continue

        if policy == MatchPolicy.FIRST_MATCH:
            return candidate
        candidates.append(candidate)

    if not candidates:
        return None

    # min() keeps the first of equal keys, so insertion order breaks remaining ties
    if order.side == OrderSide.BUY:
        return min(candidates, key=lambda c: (c.price, c.created_at))
    return min(candidates, key=lambda c: (-c.price, c.created_at))


class MatchingEngine:
    """
    Order matching engine for tokenized assets.

    Features:
    - Limit orders per token with self-trade prevention
    - First-match or best-price counter-order selection
    - All-or-nothing or partial (remainder order) fills
    - Per-token serialization of submit-then-match
    - Trade and market data callbacks for streaming
    """

    def __init__(
        self,
        order_store: Optional[OrderStore] = None,
        trade_sink: Optional[TradeSink] = None,
        token_registry: Optional[TokenRegistry] = None,
        id_generator: Optional[IdGenerator] = None,
        match_policy: MatchPolicy = MatchPolicy.FIRST_MATCH,
        fill_policy: FillPolicy = FillPolicy.ALL_OR_NOTHING,
        price_decimals: int = 2,
        audit_logger: Optional[logging.Logger] = None,
        performance_monitor: Optional[PerformanceMonitor] = None,
    ):
        """
        Initialize the matching engine.

        Args:
            order_store: Authoritative order collection
            trade_sink: Destination for trade records
            token_registry: Tokens that may be traded
            id_generator: Source of order/trade ids and settlement refs
            match_policy: Counter-order selection policy
            fill_policy: Handling of surplus quantity on a match
            price_decimals: Currency minor-unit precision for prices
            audit_logger: Optional audit trail logger
            performance_monitor: Optional monitor for submit latency
        """
        self.order_store = order_store if order_store is not None else InMemoryOrderStore()
        self.trade_sink = trade_sink if trade_sink is not None else InMemoryTradeSink()
        self.token_registry = token_registry if token_registry is not None else InMemoryTokenRegistry()
        self.id_generator = id_generator if id_generator is not None else RandomIdGenerator()
        self.match_policy = match_policy
        self.fill_policy = fill_policy
        self.price_decimals = price_decimals
        self.audit_logger = audit_logger
        self.performance_monitor = performance_monitor

        # One lock per token book; books of different tokens never contend
        self._token_locks: Dict[str, threading.RLock] = {}
        self._token_locks_guard = threading.Lock()
        self._stats_lock = threading.Lock()

        # Callbacks for real-time data
        self.trade_callbacks: List[Callable[[Trade], None]] = []
        self.market_data_callbacks: List[Callable[[Dict[str, Any]], None]] = []

        # Statistics
        self.total_orders_processed = 0
        self.total_trades_executed = 0
        self.total_volume = Decimal('0')
        self.start_time = datetime.now(timezone.utc)

        logger.info(
            f"Matching engine initialized (match_policy={match_policy.value}, "
            f"fill_policy={fill_policy.value})"
        )

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "MatchingEngine":
        """Build an engine from a Settings instance; kwargs override collaborators."""
        kwargs.setdefault("match_policy", validate_match_policy(settings.match_policy))
        kwargs.setdefault("fill_policy", validate_fill_policy(settings.fill_policy))
        kwargs.setdefault("price_decimals", settings.price_decimals)
        return cls(**kwargs)

    def _lock_for(self, token_id: str) -> threading.RLock:
        with self._token_locks_guard:
            lock = self._token_locks.get(token_id)
            if lock is None:
                lock = threading.RLock()
                self._token_locks[token_id] = lock
            return lock

    # Tokens

    def register_token(self, name: str, symbol: str, token_id: Optional[str] = None, **fields) -> Token:
        """
        Register a tradable token.

        Args:
            name: Display name
            symbol: Ticker symbol
            token_id: Explicit id; generated when omitted
            **fields: Other Token fields (token_type, total_supply, owner, tradable)

        Returns:
            The registered token
        """
        if not name or not symbol:
            raise ValidationError("Token name and symbol are required")
        token = Token(
            token_id=token_id or self.id_generator.token_id(),
            name=name,
            symbol=symbol.upper(),
            **fields,
        )
        return self.token_registry.register(token)

    # Submission

    def submit(self, request: NewOrderRequest) -> Order:
        """
        Submit a new order and attempt to match it.

        Args:
            request: The order submission

        Returns:
            The stored order, FILLED if it matched, otherwise OPEN

        Raises:
            ValidationError: If the request is invalid; nothing is stored
            StoreFailure: If the order store or trade sink fails
        """
        order, _ = self.place_order(request)
        return order

    def place_order(self, request: NewOrderRequest) -> Tuple[Order, Optional[Trade]]:
        """
        Submit a new order and return it together with its trade, if any.

        See submit() for the error contract.
        """
        side, quantity, price = self._validate_request(request)

        order = Order(
            order_id=self.id_generator.order_id(),
            token_id=request.token_id,
            user_id=request.user_id,
            side=side,
            quantity=quantity,
            price=price,
        )

        timer = (
            measure_latency(self.performance_monitor, "submit")
            if self.performance_monitor is not None
            else nullcontext()
        )
        with timer:
            with self._lock_for(order.token_id):
                self.order_store.add(order)
                self._audit_order("SUBMIT", order)
                try:
                    trade = self._match_locked(order)
                except StoreFailure:
                    if order.is_open and self.order_store.remove(order.order_id):
                        logger.error(f"Store failure while matching {order.order_id}; submission withdrawn")
                    else:
                        logger.error(f"Store failure after filling {order.order_id}")
                    raise

        with self._stats_lock:
            self.total_orders_processed += 1
            if trade is not None:
                self.total_trades_executed += 1
                self.total_volume += trade.notional_value

        if self.performance_monitor is not None:
            self.performance_monitor.record_submission(order.token_id, trade is not None)

        if trade is not None:
            self._notify_trades([trade])
        self._notify_market_data(order.token_id)

        logger.info(
            f"Processed order {order.order_id} ({order.side.value} {order.quantity} @ {order.price}): "
            f"{'matched ' + trade.trade_id if trade else 'resting'}"
        )
        return order, trade

    def _validate_request(self, request: NewOrderRequest) -> Tuple[OrderSide, int, Decimal]:
        """
        Validate and coerce a submission.

        Returns:
            Tuple of (side, quantity, price)

        Raises:
            ValidationError: If any field is invalid
        """
        if not request.token_id or not isinstance(request.token_id, str):
            raise ValidationError("Token ID must be a non-empty string")
        token = self.token_registry.get(request.token_id)
        if token is None:
            raise ValidationError(f"Unknown token: {request.token_id}")
        if not token.tradable:
            raise ValidationError(f"Token is not tradable: {request.token_id}")

        if not request.user_id or not isinstance(request.user_id, str):
            raise ValidationError("User ID must be a non-empty string")

        try:
            side = validate_order_side(request.side)
        except ValueError as e:
            raise ValidationError(str(e))

        return side, self._coerce_quantity(request.quantity), self._coerce_price(request.price)

    @staticmethod
    def _coerce_quantity(value: Any) -> int:
        if isinstance(value, bool) or value is None:
            raise ValidationError(f"Invalid quantity: {value!r}")
        if isinstance(value, int):
            quantity = value
        else:
            try:
                parsed = Decimal(str(value))
            except (InvalidOperation, ValueError):
                raise ValidationError(f"Invalid quantity format: {value!r}")
            if not parsed.is_finite() or parsed != parsed.to_integral_value():
                raise ValidationError(f"Quantity must be a whole number, got: {value}")
            quantity = int(parsed)

        if quantity <= 0:
            raise ValidationError(f"Quantity must be positive, got: {quantity}")
        return quantity

    def _coerce_price(self, value: Any) -> Decimal:
        if isinstance(value, bool) or value is None:
            raise ValidationError(f"Invalid price: {value!r}")
        try:
            price = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid price format: {value!r}")

        if not price.is_finite() or price <= 0:
            raise ValidationError(f"Price must be positive, got: {value}")

        minor_unit = Decimal(1).scaleb(-self.price_decimals)
        try:
            quantized = price.quantize(minor_unit)
        except InvalidOperation:
            raise ValidationError(f"Price out of range: {value}")
        if quantized != price:
            raise ValidationError(
                f"Price {value} has more than {self.price_decimals} decimal places"
            )
        return quantized

    # Matching

    def attempt_match(self, order: Order) -> Optional[Trade]:
        """
        Try to match a stored open order against the resting book.

        Args:
            order: An order already in the order store

        Returns:
            The executed trade, or None if no counter-order qualifies
        """
        with self._lock_for(order.token_id):
            trade = self._match_locked(order)

        if trade is not None:
            with self._stats_lock:
                self.total_trades_executed += 1
                self.total_volume += trade.notional_value
            self._notify_trades([trade])
            self._notify_market_data(order.token_id)
        return trade

    def _match_locked(self, order: Order) -> Optional[Trade]:
        """
        Select and execute a match. Caller holds the token lock.

        The trade record, the remainder order (under PARTIAL) and the
        fill of both orders are committed together: if any store call
        fails, the earlier writes are withdrawn before StoreFailure
        propagates.
        """
        if not order.is_open:
            return None
        if self.order_store.get(order.order_id) is None:
            raise ValidationError(f"Order {order.order_id} is not in the order store")

        book = self.open_orders(order.token_id, order.side.opposite)
        candidate = attempt_match(order, book, self.match_policy)
        if candidate is None:
            logger.debug(f"No match for order {order.order_id}")
            return None

        if order.side == OrderSide.BUY:
            buy_order, sell_order = order, candidate
        else:
            buy_order, sell_order = candidate, order

        quantity = min(buy_order.quantity, sell_order.quantity)
        trade = Trade(
            trade_id=self.id_generator.trade_id(),
            token_id=order.token_id,
            buyer_id=buy_order.user_id,
            seller_id=sell_order.user_id,
            buy_order_id=buy_order.order_id,
            sell_order_id=sell_order.order_id,
            quantity=quantity,
            price=candidate.price,
            settlement_ref=self.id_generator.settlement_ref(),
        )

        larger = buy_order if buy_order.quantity > sell_order.quantity else sell_order
        surplus = larger.quantity - quantity
        remainder = None
        if surplus > 0 and self.fill_policy == FillPolicy.PARTIAL:
            remainder = self._remainder_of(larger, surplus)

        self._commit_match(trade, remainder, [order.order_id, candidate.order_id])

        self._audit_order("FILL", buy_order)
        self._audit_order("FILL", sell_order)
        if self.audit_logger is not None:
            log_trade_audit(self.audit_logger, trade.to_dict())

        logger.info(
            f"Matched {buy_order.order_id} with {sell_order.order_id}: "
            f"{quantity} @ {trade.price} ({trade.trade_id})"
        )

        if remainder is not None:
            self._audit_order("SUBMIT", remainder)
            logger.info(
                f"Remainder order {remainder.order_id} for {surplus} units of {larger.order_id}"
            )
        elif surplus > 0:
            logger.warning(f"Order {larger.order_id} filled with {surplus} units unexecuted")

        return trade

    def _remainder_of(self, parent: Order, quantity: int) -> Order:
        """The unexecuted part of a matched order, as a new open order."""
        return Order(
            order_id=self.id_generator.order_id(),
            token_id=parent.token_id,
            user_id=parent.user_id,
            side=parent.side,
            quantity=quantity,
            price=parent.price,
            created_at=parent.created_at,
            parent_order_id=parent.order_id,
        )

    def _commit_match(self, trade: Trade, remainder: Optional[Order], filled_ids: List[str]) -> None:
        """Write the trade, the remainder and the fill, or none of them."""
        self.trade_sink.append(trade)
        remainder_added = False
        try:
            if remainder is not None:
                self.order_store.add(remainder)
                remainder_added = True
            self.order_store.mark_filled(filled_ids)
        except StoreFailure:
            logger.error(f"Store failure while filling {filled_ids}; withdrawing {trade.trade_id}")
            if remainder_added:
                self.order_store.remove(remainder.order_id)
            self.trade_sink.remove(trade.trade_id)
            raise

    # Cancellation and queries

    def cancel_order(self, order_id: str, user_id: Optional[str] = None) -> bool:
        """
        Cancel an open order.

        Args:
            order_id: ID of order to cancel
            user_id: When given, must be the order's submitter

        Returns:
            True if the order was cancelled
        """
        order = self.order_store.get(order_id)
        if order is None:
            logger.warning(f"Cannot cancel unknown order {order_id}")
            return False

        with self._lock_for(order.token_id):
            if not order.is_open:
                logger.warning(f"Cannot cancel order {order_id}: status is {order.status.value}")
                return False
            if user_id is not None and order.user_id != user_id:
                logger.warning(f"User {user_id} cannot cancel order {order_id}")
                return False
            self.order_store.mark_cancelled(order_id)

        self._audit_order("CANCEL", order)
        logger.info(f"Cancelled order {order_id}")
        self._notify_market_data(order.token_id)
        return True

    def open_orders(self, token_id: Optional[str] = None, side: Optional[OrderSide] = None) -> OpenOrders:
        """Lazy, restartable view of open orders, optionally by token and side."""
        return OpenOrders(self.order_store, token_id, side)

    def get_order_book(self, token_id: str) -> Optional[OrderBook]:
        """Get the book view for a registered token."""
        if not self.token_registry.exists(token_id):
            return None
        return OrderBook(self.order_store, token_id, self.trade_sink)

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.order_store.get(order_id)

    def get_trades(self, token_id: Optional[str] = None) -> List[Trade]:
        return list(self.trade_sink.find(token_id))

    # Callbacks

    def add_trade_callback(self, callback: Callable[[Trade], None]) -> None:
        """Add callback for trade executions."""
        self.trade_callbacks.append(callback)

    def add_market_data_callback(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        """Add callback for order book updates."""
        self.market_data_callbacks.append(callback)

    def _notify_trades(self, trades: List[Trade]) -> None:
        """Notify trade callbacks."""
        for trade in trades:
            for callback in self.trade_callbacks:
                try:
                    callback(trade)
                except Exception as e:
                    logger.error(f"Error in trade callback: {str(e)}")

    def _notify_market_data(self, token_id: str) -> None:
        """Notify market data callbacks."""
        if not self.market_data_callbacks:
            return

        order_book = OrderBook(self.order_store, token_id)
        best_bid, best_ask = order_book.get_bbo()

        market_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "token_id": token_id,
            "bids": order_book.get_order_book_depth("bids", 10),
            "asks": order_book.get_order_book_depth("asks", 10),
            "best_bid": str(best_bid) if best_bid is not None else None,
            "best_ask": str(best_ask) if best_ask is not None else None,
        }

        for callback in self.market_data_callbacks:
            try:
                callback(market_data)
            except Exception as e:
                logger.error(f"Error in market data callback: {str(e)}")

    def _audit_order(self, action: str, order: Order) -> None:
        if self.audit_logger is not None:
            log_order_audit(self.audit_logger, action, order.to_dict())

    # Statistics

    def get_statistics(self) -> Dict[str, Any]:
        """Get engine statistics."""
        uptime = datetime.now(timezone.utc) - self.start_time

        with self._stats_lock:
            orders = self.total_orders_processed
            trades = self.total_trades_executed
            volume = self.total_volume

        return {
            "uptime_seconds": uptime.total_seconds(),
            "total_orders_processed": orders,
            "total_trades_executed": trades,
            "total_volume": str(volume),
            "active_tokens": [t.token_id for t in self.token_registry.list_tokens()],
            "orders_per_second": orders / max(uptime.total_seconds(), 1),
            "trades_per_second": trades / max(uptime.total_seconds(), 1),
            "match_policy": self.match_policy.value,
            "fill_policy": self.fill_policy.value,
        }

    def get_token_statistics(self, token_id: str) -> Optional[Dict[str, Any]]:
        """Get statistics for a specific token."""
        order_book = self.get_order_book(token_id)
        if order_book is None:
            return None
        return order_book.get_statistics()
