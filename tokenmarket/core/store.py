"""
Storage and identity collaborators used by the matching engine.

The engine never owns a global collection. It is handed an order
store, a trade sink, a token registry and an id generator, so each
process or test case gets its own isolated state.
"""

import itertools
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Sequence

from .errors import StoreFailure
from .order import Order, Token, Trade
from .order_types import OrderSide, OrderStatus

logger = logging.getLogger(__name__)


class OrderStore(ABC):
    """Authoritative order collection keyed by order id."""

    @abstractmethod
    def add(self, order: Order) -> None:
        """Append a new order. Raises StoreFailure on duplicate ids."""

    @abstractmethod
    def get(self, order_id: str) -> Optional[Order]:
        """Look up an order by id."""

    @abstractmethod
    def find(
        self,
        token_id: Optional[str] = None,
        side: Optional[OrderSide] = None,
        status: Optional[OrderStatus] = None,
    ) -> Iterator[Order]:
        """Iterate matching orders in insertion order."""

    @abstractmethod
    def mark_filled(self, order_ids: Sequence[str]) -> List[Order]:
        """Fill every listed order or none of them."""

    @abstractmethod
    def mark_cancelled(self, order_id: str) -> Order:
        """Cancel one open order."""

    @abstractmethod
    def remove(self, order_id: str) -> bool:
        """Withdraw an order whose submission did not complete."""


class TradeSink(ABC):
    """Destination for trade records. A trade is only withdrawn when its fill fails."""

    @abstractmethod
    def append(self, trade: Trade) -> None:
        """Record a trade."""

    @abstractmethod
    def remove(self, trade_id: str) -> bool:
        """Withdraw a trade whose fill did not complete."""

    @abstractmethod
    def find(self, token_id: Optional[str] = None) -> Iterator[Trade]:
        """Iterate trades in creation order."""


class TokenRegistry(ABC):
    """Lookup of tokens that may be traded."""

    @abstractmethod
    def register(self, token: Token) -> Token:
        """Add a token to the registry."""

    @abstractmethod
    def get(self, token_id: str) -> Optional[Token]:
        """Look up a token by id."""

    def exists(self, token_id: str) -> bool:
        return self.get(token_id) is not None

    @abstractmethod
    def list_tokens(self) -> List[Token]:
        """All registered tokens."""


class IdGenerator(ABC):
    """Source of unique opaque identifiers."""

    @abstractmethod
    def order_id(self) -> str:
        pass

    @abstractmethod
    def trade_id(self) -> str:
        pass

    @abstractmethod
    def settlement_ref(self) -> str:
        pass

    @abstractmethod
    def token_id(self) -> str:
        pass


class InMemoryOrderStore(OrderStore):
    """
    Dict-backed order store.

    Dicts keep insertion order, which is the iteration order the
    first-match policy relies on. Every public method holds the
    store lock, so each call is atomic.
    """

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._lock = threading.RLock()

    def add(self, order: Order) -> None:
        with self._lock:
            if order.order_id in self._orders:
                raise StoreFailure(f"Duplicate order id: {order.order_id}")
            self._orders[order.order_id] = order
        logger.debug(f"Stored order {order.order_id}")

    def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._orders.get(order_id)

    def find(
        self,
        token_id: Optional[str] = None,
        side: Optional[OrderSide] = None,
        status: Optional[OrderStatus] = None,
    ) -> Iterator[Order]:
        with self._lock:
            snapshot = list(self._orders.values())

        for order in snapshot:
            if token_id is not None and order.token_id != token_id:
                continue
            if side is not None and order.side != side:
                continue
            if status is not None and order.status != status:
                continue
            yield order

    def mark_filled(self, order_ids: Sequence[str]) -> List[Order]:
        with self._lock:
            orders = []
            for order_id in order_ids:
                order = self._orders.get(order_id)
                if order is None:
                    raise StoreFailure(f"Order not found: {order_id}")
                if not order.is_open:
                    raise StoreFailure(f"Order {order_id} is {order.status.value}, expected open")
                orders.append(order)

            for order in orders:
                order.transition(OrderStatus.FILLED)
            return orders

    def mark_cancelled(self, order_id: str) -> Order:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise StoreFailure(f"Order not found: {order_id}")
            order.transition(OrderStatus.CANCELLED)
            return order

    def remove(self, order_id: str) -> bool:
        with self._lock:
            return self._orders.pop(order_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)


class InMemoryTradeSink(TradeSink):
    """List-backed trade sink."""

    def __init__(self):
        self._trades: List[Trade] = []
        self._lock = threading.Lock()

    def append(self, trade: Trade) -> None:
        with self._lock:
            self._trades.append(trade)

    def remove(self, trade_id: str) -> bool:
        with self._lock:
            for index, trade in enumerate(self._trades):
                if trade.trade_id == trade_id:
                    del self._trades[index]
                    return True
        return False

    def find(self, token_id: Optional[str] = None) -> Iterator[Trade]:
        with self._lock:
            snapshot = list(self._trades)
        return (t for t in snapshot if token_id is None or t.token_id == token_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._trades)


class InMemoryTokenRegistry(TokenRegistry):
    """Dict-backed token registry."""

    def __init__(self):
        self._tokens: Dict[str, Token] = {}
        self._lock = threading.Lock()

    def register(self, token: Token) -> Token:
        with self._lock:
            if token.token_id in self._tokens:
                raise StoreFailure(f"Token already registered: {token.token_id}")
            self._tokens[token.token_id] = token
        logger.info(f"Registered token {token.token_id} ({token.symbol})")
        return token

    def get(self, token_id: str) -> Optional[Token]:
        with self._lock:
            return self._tokens.get(token_id)

    def list_tokens(self) -> List[Token]:
        with self._lock:
            return list(self._tokens.values())


class RandomIdGenerator(IdGenerator):
    """uuid4-based identifiers with readable prefixes."""

    def order_id(self) -> str:
        return f"order_{uuid.uuid4().hex}"

    def trade_id(self) -> str:
        return f"tx_{uuid.uuid4().hex}"

    def settlement_ref(self) -> str:
        # Stands in for an on-chain transaction hash: 0x + 64 hex chars
        return "0x" + uuid.uuid4().hex + uuid.uuid4().hex

    def token_id(self) -> str:
        return f"token_{uuid.uuid4().hex}"


class SequentialIdGenerator(IdGenerator):
    """Deterministic identifiers, for tests and replays."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def _next(self) -> int:
        with self._lock:
            return next(self._counter)

    def order_id(self) -> str:
        return f"order_{self._next()}"

    def trade_id(self) -> str:
        return f"tx_{self._next()}"

    def settlement_ref(self) -> str:
        return "0x" + format(self._next(), "064x")

    def token_id(self) -> str:
        return f"token_{self._next()}"
