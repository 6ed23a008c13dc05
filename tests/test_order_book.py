"""
Tests for the open-order and order book views.
"""

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from tokenmarket.core.order import Order, Trade
from tokenmarket.core.order_book import OpenOrders, OrderBook
from tokenmarket.core.order_types import OrderSide
from tokenmarket.core.store import InMemoryOrderStore, InMemoryTradeSink

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestOrderBook(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryOrderStore()
        self.sink = InMemoryTradeSink()
        self.book = OrderBook(self.store, "T", self.sink)
        self.sequence = 0

    def add(self, side, quantity, price, token_id="T"):
        self.sequence += 1
        order = Order(
            order_id=f"o{self.sequence}",
            token_id=token_id,
            user_id=f"user{self.sequence}",
            side=side,
            quantity=quantity,
            price=Decimal(price),
            created_at=T0 + timedelta(seconds=self.sequence),
        )
        self.store.add(order)
        return order

    def test_empty_book(self):
        self.assertEqual(self.book.get_bbo(), (None, None))
        self.assertEqual(self.book.get_order_book_depth("bids"), [])
        self.assertEqual(self.book.get_statistics()["spread"], None)

    def test_sorted_sides_and_bbo(self):
        b1 = self.add(OrderSide.BUY, 1, "4.00")
        b2 = self.add(OrderSide.BUY, 1, "4.50")
        b3 = self.add(OrderSide.BUY, 1, "4.50")
        a1 = self.add(OrderSide.SELL, 1, "6.00")
        a2 = self.add(OrderSide.SELL, 1, "5.00")
        self.add(OrderSide.SELL, 1, "1.00", token_id="U")

        self.assertEqual(self.book.bids(), [b2, b3, b1])
        self.assertEqual(self.book.asks(), [a2, a1])
        self.assertEqual(self.book.get_bbo(), (Decimal("4.50"), Decimal("5.00")))

    def test_depth_aggregates_price_levels(self):
        self.add(OrderSide.BUY, 3, "4.00")
        self.add(OrderSide.BUY, 2, "4.50")
        self.add(OrderSide.BUY, 5, "4.50")

        self.assertEqual(
            self.book.get_order_book_depth("bids"),
            [["4.50", 7, 2], ["4.00", 3, 1]],
        )
        self.assertEqual(self.book.get_order_book_depth("bids", depth=1), [["4.50", 7, 2]])

        with self.assertRaises(ValueError):
            self.book.get_order_book_depth("middle")

    def test_closed_orders_leave_the_book(self):
        buy = self.add(OrderSide.BUY, 1, "4.00")
        sell = self.add(OrderSide.SELL, 1, "5.00")
        self.store.mark_filled([buy.order_id])
        self.store.mark_cancelled(sell.order_id)

        self.assertEqual(list(self.book.open_orders()), [])
        self.assertEqual(self.book.get_bbo(), (None, None))

    def test_open_orders_is_restartable(self):
        self.add(OrderSide.BUY, 1, "4.00")
        view = OpenOrders(self.store, "T")

        first = list(view)
        second = list(view)
        self.assertEqual(first, second)
        self.assertEqual(len(view), 1)

        self.add(OrderSide.SELL, 1, "5.00")
        self.assertEqual(len(view), 2)

    def test_statistics(self):
        buy = self.add(OrderSide.BUY, 2, "5.00")
        sell = self.add(OrderSide.SELL, 2, "5.00")
        self.add(OrderSide.SELL, 1, "7.00")
        self.store.mark_filled([buy.order_id, sell.order_id])
        self.sink.append(Trade(
            trade_id="tx1",
            token_id="T",
            buyer_id=buy.user_id,
            seller_id=sell.user_id,
            buy_order_id=buy.order_id,
            sell_order_id=sell.order_id,
            quantity=2,
            price=Decimal("5.00"),
            settlement_ref="0x01",
        ))

        stats = self.book.get_statistics()
        self.assertEqual(stats["open_buy_orders"], 0)
        self.assertEqual(stats["open_sell_orders"], 1)
        self.assertEqual(stats["best_ask"], "7.00")
        self.assertEqual(stats["order_volume"], "27.00")
        self.assertEqual(stats["trade_count"], 1)
        self.assertEqual(stats["traded_quantity"], 2)
        self.assertEqual(stats["traded_volume"], "10.00")


if __name__ == '__main__':
    unittest.main()
