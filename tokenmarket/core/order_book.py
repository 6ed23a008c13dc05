"""
Order book views over the order store.

The book is never mutated directly. Every view is recomputed from
the authoritative order store on each access, so the open-buy and
open-sell partitions can only ever contain open orders.
"""

from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Tuple
import logging

from .order import Order
from .order_types import OrderSide, OrderStatus
from .store import OrderStore, TradeSink

logger = logging.getLogger(__name__)


class OpenOrders:
    """
    Lazy, restartable sequence of open orders.

    Each iteration re-queries the store in insertion order; nothing
    is cached between iterations.
    """

    def __init__(
        self,
        store: OrderStore,
        token_id: Optional[str] = None,
        side: Optional[OrderSide] = None,
    ):
        self.store = store
        self.token_id = token_id
        self.side = side

    def __iter__(self) -> Iterator[Order]:
        return self.store.find(token_id=self.token_id, side=self.side, status=OrderStatus.OPEN)

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self) -> str:
        side = self.side.value if self.side else None
        return f"OpenOrders(token_id={self.token_id!r}, side={side!r})"


class OrderBook:
    """
    Display view of the open orders for one token.

    Bids are sorted best (highest) price first, asks best (lowest)
    price first; orders at the same price keep time priority.
    """

    def __init__(self, store: OrderStore, token_id: str, trade_sink: Optional[TradeSink] = None):
        """
        Initialize the view.

        Args:
            store: Authoritative order store
            token_id: Token this book belongs to
            trade_sink: Optional trade sink, used for traded-volume statistics
        """
        self.store = store
        self.token_id = token_id
        self.trade_sink = trade_sink

    def open_orders(self, side: Optional[OrderSide] = None) -> OpenOrders:
        return OpenOrders(self.store, self.token_id, side)

    def bids(self) -> List[Order]:
        """Open buy orders, highest price first."""
        orders = list(self.open_orders(OrderSide.BUY))
        return sorted(orders, key=lambda o: (-o.price, o.created_at))

    def asks(self) -> List[Order]:
        """Open sell orders, lowest price first."""
        orders = list(self.open_orders(OrderSide.SELL))
        return sorted(orders, key=lambda o: (o.price, o.created_at))

    def get_bbo(self) -> Tuple[Optional[Decimal], Optional[Decimal]]:
        """
        Get Best Bid and Offer.

        Returns:
            Tuple of (best_bid, best_ask), either may be None
        """
        best_bid = max((o.price for o in self.open_orders(OrderSide.BUY)), default=None)
        best_ask = min((o.price for o in self.open_orders(OrderSide.SELL)), default=None)
        return best_bid, best_ask

    def get_order_book_depth(self, side: str, depth: int = 10) -> List[List[Any]]:
        """
        Aggregate open orders into price levels.

        Args:
            side: "bids" or "asks"
            depth: Maximum number of price levels

        Returns:
            List of [price, total_quantity, order_count]
        """
        if side == "bids":
            orders = self.bids()
        elif side == "asks":
            orders = self.asks()
        else:
            raise ValueError(f"Invalid side: {side}. Must be 'bids' or 'asks'")

        levels: Dict[Decimal, List[int]] = {}
        for order in orders:
            level = levels.setdefault(order.price, [0, 0])
            level[0] += order.quantity
            level[1] += 1

        result = [[str(price), qty, count] for price, (qty, count) in levels.items()]
        return result[:depth]

    def get_statistics(self) -> Dict[str, Any]:
        """Get book statistics, including volume over all of the token's orders."""
        open_buys = len(self.open_orders(OrderSide.BUY))
        open_sells = len(self.open_orders(OrderSide.SELL))
        best_bid, best_ask = self.get_bbo()

        order_volume = sum(
            (o.notional_value for o in self.store.find(token_id=self.token_id)),
            Decimal('0'),
        )

        stats = {
            "token_id": self.token_id,
            "open_buy_orders": open_buys,
            "open_sell_orders": open_sells,
            "best_bid": str(best_bid) if best_bid is not None else None,
            "best_ask": str(best_ask) if best_ask is not None else None,
            "spread": str(best_ask - best_bid) if best_bid is not None and best_ask is not None else None,
            "order_volume": str(order_volume),
        }

        if self.trade_sink is not None:
            trades = list(self.trade_sink.find(self.token_id))
            stats["trade_count"] = len(trades)
            stats["traded_quantity"] = sum(t.quantity for t in trades)
            stats["traded_volume"] = str(sum((t.notional_value for t in trades), Decimal('0')))

        return stats
