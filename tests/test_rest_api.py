"""
Tests for the REST API.
"""

import unittest

from tokenmarket.api.rest_api import create_app
from tokenmarket.config.settings import Settings
from tokenmarket.core.errors import StoreFailure
from tokenmarket.core.matching_engine import MatchingEngine
from tokenmarket.core.store import InMemoryTradeSink, SequentialIdGenerator
from tokenmarket.utils.performance import PerformanceMonitor


class FailingTradeSink(InMemoryTradeSink):
    def append(self, trade):
        raise StoreFailure("trade sink unavailable")


class RestApiTestCase(unittest.TestCase):

    def setUp(self):
        """Set up a test client over a fresh engine."""
        self.engine = self.make_engine()
        self.engine.register_token("Gold Bar", "GOLD", token_id="T")
        app = create_app(self.engine, Settings())
        app.config['TESTING'] = True
        self.client = app.test_client()

    def make_engine(self):
        return MatchingEngine(
            id_generator=SequentialIdGenerator(),
            performance_monitor=PerformanceMonitor(),
        )

    def post_order(self, side, quantity, price, user_id, token_id="T"):
        return self.client.post('/orders', json={
            'token_id': token_id,
            'user_id': user_id,
            'side': side,
            'quantity': quantity,
            'price': price,
        })


class TestOrderEndpoints(RestApiTestCase):

    def test_resting_then_matching_order(self):
        response = self.post_order('sell', 10, '5.00', 'alice')
        self.assertEqual(response.status_code, 201)
        sell = response.get_json()
        self.assertEqual(sell['status'], 'open')
        self.assertIsNone(sell['trade'])

        response = self.post_order('buy', 10, '5.00', 'bob')
        self.assertEqual(response.status_code, 201)
        buy = response.get_json()
        self.assertEqual(buy['status'], 'filled')
        self.assertEqual(buy['trade']['buyer_id'], 'bob')
        self.assertEqual(buy['trade']['seller_id'], 'alice')
        self.assertEqual(buy['trade']['price'], '5.00')
        self.assertEqual(buy['trade']['sell_order_id'], sell['order_id'])

        response = self.client.get(f"/orders/{sell['order_id']}")
        self.assertEqual(response.get_json()['status'], 'filled')

    def test_invalid_orders_are_rejected(self):
        self.assertEqual(self.post_order('buy', 0, '5.00', 'bob').status_code, 400)
        self.assertEqual(self.post_order('buy', 1, '5.001', 'bob').status_code, 400)
        self.assertEqual(self.post_order('hold', 1, '5.00', 'bob').status_code, 400)
        self.assertEqual(self.client.post('/orders', data='nope').status_code, 400)

        # Unknown token passes request validation but not the engine
        response = self.post_order('buy', 1, '5.00', 'bob', token_id='Z')
        self.assertEqual(response.status_code, 400)
        self.assertIn('Unknown token', response.get_json()['error'])

        self.assertEqual(len(self.engine.order_store), 0)

    def test_non_object_bodies_are_rejected(self):
        sell = self.post_order('sell', 1, '5.00', 'alice').get_json()

        for body in ([1], 5, 'text'):
            with self.subTest(body=body):
                response = self.client.post('/orders', json=body)
                self.assertEqual(response.status_code, 400)
                self.assertIn('JSON object', response.get_json()['error'])
                self.assertEqual(self.client.post('/tokens', json=body).status_code, 400)

        response = self.client.delete(f"/orders/{sell['order_id']}", json=[1])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.engine.get_order(sell['order_id']).status.value, 'open')
        self.assertEqual(len(self.engine.order_store), 1)

    def test_list_open_orders(self):
        self.post_order('sell', 1, '5.00', 'alice')
        self.post_order('buy', 1, '4.00', 'bob')

        response = self.client.get('/orders?token_id=T')
        self.assertEqual(response.get_json()['count'], 2)

        response = self.client.get('/orders?side=buy')
        orders = response.get_json()['orders']
        self.assertEqual([o['user_id'] for o in orders], ['bob'])

        self.assertEqual(self.client.get('/orders?side=both').status_code, 400)

    def test_get_unknown_order(self):
        self.assertEqual(self.client.get('/orders/missing').status_code, 404)

    def test_cancel_order(self):
        order_id = self.post_order('sell', 1, '5.00', 'alice').get_json()['order_id']

        response = self.client.delete(f'/orders/{order_id}', json={'user_id': 'mallory'})
        self.assertEqual(response.status_code, 409)

        response = self.client.delete(f'/orders/{order_id}', json={'user_id': 'alice'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.engine.get_order(order_id).status.value, 'cancelled')

        self.assertEqual(self.client.delete(f'/orders/{order_id}').status_code, 409)
        self.assertEqual(self.client.delete('/orders/missing').status_code, 404)

    def test_store_failure_maps_to_503(self):
        self.engine = MatchingEngine(
            trade_sink=FailingTradeSink(),
            id_generator=SequentialIdGenerator(),
        )
        self.engine.register_token("Gold Bar", "GOLD", token_id="T")
        self.client = create_app(self.engine, Settings()).test_client()

        self.assertEqual(self.post_order('sell', 1, '5.00', 'alice').status_code, 201)
        response = self.post_order('buy', 1, '5.00', 'bob')
        self.assertEqual(response.status_code, 503)

        orders = self.client.get('/orders').get_json()['orders']
        self.assertEqual([o['user_id'] for o in orders], ['alice'])


class TestMarketDataEndpoints(RestApiTestCase):

    def test_order_book(self):
        self.post_order('buy', 2, '4.00', 'bob')
        self.post_order('buy', 3, '4.00', 'carol')
        self.post_order('sell', 1, '6.00', 'alice')

        response = self.client.get('/orderbook/T?depth=5')
        self.assertEqual(response.status_code, 200)
        book = response.get_json()
        self.assertEqual(book['best_bid'], '4.00')
        self.assertEqual(book['best_ask'], '6.00')
        self.assertEqual(book['bids'], [['4.00', 5, 2]])
        self.assertEqual(len(book['sell_orders']), 1)

        self.assertEqual(self.client.get('/orderbook/U').status_code, 404)
        self.assertEqual(self.client.get('/orderbook/T?depth=0').status_code, 400)

    def test_trades_and_statistics(self):
        self.post_order('sell', 2, '5.00', 'alice')
        self.post_order('buy', 2, '5.00', 'bob')

        trades = self.client.get('/trades?token_id=T').get_json()
        self.assertEqual(trades['count'], 1)
        self.assertTrue(trades['trades'][0]['settlement_ref'].startswith('0x'))

        stats = self.client.get('/statistics').get_json()
        self.assertEqual(stats['total_orders_processed'], 2)
        self.assertEqual(stats['total_trades_executed'], 1)
        self.assertEqual(stats['total_volume'], '10.00')
        self.assertEqual(stats['active_tokens'], ['T'])

        token_stats = self.client.get('/statistics/T').get_json()
        self.assertEqual(token_stats['trade_count'], 1)
        self.assertEqual(self.client.get('/statistics/U').status_code, 404)

    def test_metrics(self):
        self.post_order('sell', 1, '5.00', 'alice')

        metrics = self.client.get('/metrics').get_json()
        self.assertEqual(metrics['counters']['orders_submitted'], 1)
        self.assertIn('submit_latency_ms', metrics['metrics'])


class TestTokenEndpoints(RestApiTestCase):

    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.get_json()['status'], 'healthy')

    def test_register_and_list_tokens(self):
        response = self.client.post('/tokens', json={
            'name': 'Silver', 'symbol': 'slv', 'token_id': 'S', 'total_supply': 500,
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()['symbol'], 'SLV')

        response = self.client.post('/tokens', json={'name': 'Silver', 'symbol': 'SLV', 'token_id': 'S'})
        self.assertEqual(response.status_code, 409)

        tokens = self.client.get('/tokens').get_json()
        self.assertEqual(tokens['count'], 2)

        self.assertEqual(self.post_order('buy', 1, '1.00', 'bob', token_id='S').status_code, 201)

    def test_generated_token_id(self):
        response = self.client.post('/tokens', json={'name': 'Office', 'symbol': 'OFC'})
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.get_json()['token_id'].startswith('token_'))

    def test_unknown_endpoint(self):
        response = self.client.get('/nowhere')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()['error'], 'Endpoint not found')


if __name__ == '__main__':
    unittest.main()
