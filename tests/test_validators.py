"""
Tests for API request validators.
"""

import unittest
from decimal import Decimal

from tokenmarket.api.validators import (
    sanitize_string,
    validate_cancel_request,
    validate_depth_request,
    validate_order_request,
    validate_price,
    validate_quantity,
    validate_token_id,
    validate_token_request,
)
from tokenmarket.core.order_types import OrderSide


class TestOrderRequestValidation(unittest.TestCase):

    def setUp(self):
        self.data = {
            "token_id": "token_abc",
            "user_id": "alice",
            "side": "Sell",
            "quantity": 10,
            "price": "5.00",
        }

    def test_valid_request(self):
        is_valid, error, parsed = validate_order_request(self.data)

        self.assertTrue(is_valid)
        self.assertIsNone(error)
        self.assertEqual(parsed["side"], OrderSide.SELL)
        self.assertEqual(parsed["quantity"], 10)
        self.assertEqual(parsed["price"], Decimal("5.00"))

    def test_missing_field(self):
        for field in ("token_id", "user_id", "side", "quantity", "price"):
            data = dict(self.data)
            del data[field]
            with self.subTest(field=field):
                is_valid, error, parsed = validate_order_request(data)
                self.assertFalse(is_valid)
                self.assertIn(field, error)
                self.assertIsNone(parsed)

    def test_invalid_values(self):
        cases = {
            "token_id": "bad token!",
            "user_id": "",
            "side": "hold",
            "quantity": "2.5",
            "price": "1.234",
        }
        for field, value in cases.items():
            data = dict(self.data, **{field: value})
            with self.subTest(field=field):
                is_valid, _, _ = validate_order_request(data)
                self.assertFalse(is_valid)

    def test_price_precision_is_configurable(self):
        data = dict(self.data, price="1.234")
        is_valid, _, parsed = validate_order_request(data, price_decimals=3)
        self.assertTrue(is_valid)
        self.assertEqual(parsed["price"], Decimal("1.234"))


class TestFieldValidators(unittest.TestCase):

    def test_quantity(self):
        self.assertEqual(validate_quantity("7"), (True, None, 7))
        self.assertEqual(validate_quantity(7.0), (True, None, 7))
        for value in (None, 0, -3, True, "x", 10 ** 9):
            with self.subTest(value=value):
                self.assertFalse(validate_quantity(value)[0])
        self.assertFalse(validate_quantity(50, max_quantity=10)[0])

    def test_price(self):
        self.assertEqual(validate_price("0.01")[2], Decimal("0.01"))
        for value in (None, 0, "-0.01", "abc", False, "1e20", "0.001"):
            with self.subTest(value=value):
                self.assertFalse(validate_price(value)[0])

    def test_token_id(self):
        self.assertTrue(validate_token_id("token_x1")[0])
        self.assertFalse(validate_token_id("")[0])
        self.assertFalse(validate_token_id(123)[0])
        self.assertFalse(validate_token_id("a" * 65)[0])

    def test_depth(self):
        self.assertEqual(validate_depth_request(None), (True, None, 10))
        self.assertEqual(validate_depth_request("5"), (True, None, 5))
        self.assertFalse(validate_depth_request("0")[0])
        self.assertFalse(validate_depth_request("101")[0])
        self.assertFalse(validate_depth_request("many")[0])

    def test_cancel_request(self):
        self.assertEqual(
            validate_cancel_request({"order_id": "order_1"}),
            (True, None, {"order_id": "order_1", "user_id": None}),
        )
        self.assertFalse(validate_cancel_request({})[0])
        self.assertFalse(validate_cancel_request({"order_id": "o", "user_id": "bad user"})[0])


class TestTokenRequestValidation(unittest.TestCase):

    def test_valid_token(self):
        is_valid, _, parsed = validate_token_request({"name": "Gold <Bar>", "symbol": "gold"})

        self.assertTrue(is_valid)
        self.assertEqual(parsed["name"], "Gold Bar")
        self.assertEqual(parsed["symbol"], "GOLD")
        self.assertEqual(parsed["token_type"], "ERC-20")
        self.assertTrue(parsed["tradable"])
        self.assertNotIn("token_id", parsed)

    def test_invalid_tokens(self):
        cases = [
            {"symbol": "GOLD"},
            {"name": "Gold"},
            {"name": "Gold", "symbol": "GO LD"},
            {"name": "Gold", "symbol": "GOLD", "token_type": "ERC-1155"},
            {"name": "Gold", "symbol": "GOLD", "total_supply": -1},
            {"name": "Gold", "symbol": "GOLD", "tradable": "yes"},
            {"name": "Gold", "symbol": "GOLD", "token_id": "bad id"},
        ]
        for data in cases:
            with self.subTest(data=data):
                self.assertFalse(validate_token_request(data)[0])

    def test_sanitize_string(self):
        self.assertEqual(sanitize_string(' "hi" '), "hi")
        self.assertEqual(len(sanitize_string("x" * 500)), 100)


if __name__ == '__main__':
    unittest.main()
