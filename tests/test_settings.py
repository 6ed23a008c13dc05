"""
Tests for configuration and logging setup.
"""

import logging
import os
import tempfile
import unittest
from decimal import Decimal
from unittest import mock

from tokenmarket.config.settings import Settings
from tokenmarket.core.matching_engine import MatchingEngine
from tokenmarket.core.order import NewOrderRequest
from tokenmarket.core.order_types import FillPolicy, MatchPolicy
from tokenmarket.core.store import SequentialIdGenerator
from tokenmarket.utils.logger import AUDIT_LOGGER_NAME, create_audit_logger, setup_logging


class TestSettings(unittest.TestCase):

    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = Settings()

        self.assertEqual(settings.rest_port, 5000)
        self.assertEqual(settings.websocket_port, 8765)
        self.assertEqual(settings.match_policy, "first_match")
        self.assertEqual(settings.fill_policy, "all_or_nothing")
        self.assertEqual(settings.price_decimals, 2)
        self.assertEqual(settings.cors_origins, ["*"])
        self.assertFalse(settings.debug)
        settings.validate()

    def test_environment_overrides(self):
        env = {
            "REST_PORT": "8080",
            "MATCH_POLICY": "BEST_PRICE",
            "FILL_POLICY": "partial",
            "PRICE_DECIMALS": "4",
            "MAX_PRICE": "99.5",
            "CORS_ORIGINS": "http://a.example, http://b.example",
            "ENABLE_PERFORMANCE_MONITORING": "false",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = Settings()
        settings.validate()

        self.assertEqual(settings.rest_port, 8080)
        self.assertEqual(settings.match_policy, "best_price")
        self.assertEqual(settings.fill_policy, "partial")
        self.assertEqual(settings.max_price, Decimal("99.5"))
        self.assertEqual(settings.cors_origins, ["http://a.example", "http://b.example"])
        self.assertFalse(settings.enable_performance_monitoring)
        self.assertEqual(settings.to_dict()["max_price"], "99.5")

    def test_validation_collects_errors(self):
        env = {"REST_PORT": "0", "MATCH_POLICY": "random", "PRICE_DECIMALS": "12"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = Settings()

        with self.assertRaises(ValueError) as ctx:
            settings.validate()

        message = str(ctx.exception)
        self.assertIn("Invalid REST port", message)
        self.assertIn("Invalid match policy", message)
        self.assertIn("Price decimals", message)

    def test_bad_decimal(self):
        with mock.patch.dict(os.environ, {"MAX_PRICE": "lots"}, clear=True):
            with self.assertRaises(ValueError):
                Settings()

    def test_engine_from_settings(self):
        env = {"MATCH_POLICY": "best_price", "FILL_POLICY": "partial", "PRICE_DECIMALS": "0"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = Settings()

        engine = MatchingEngine.from_settings(settings, id_generator=SequentialIdGenerator())
        self.assertEqual(engine.match_policy, MatchPolicy.BEST_PRICE)
        self.assertEqual(engine.fill_policy, FillPolicy.PARTIAL)

        engine.register_token("Gold Bar", "GOLD", token_id="T")
        order = engine.submit(NewOrderRequest("T", "alice", "buy", 1, "7"))
        self.assertEqual(order.price, Decimal("7"))


class TestLoggingSetup(unittest.TestCase):

    def setUp(self):
        root = logging.getLogger()
        self.saved_handlers = list(root.handlers)
        self.saved_level = root.level
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            if handler not in self.saved_handlers:
                root.removeHandler(handler)
                handler.close()
        for handler in self.saved_handlers:
            if handler not in root.handlers:
                root.addHandler(handler)
        root.setLevel(self.saved_level)

        audit = logging.getLogger(AUDIT_LOGGER_NAME)
        for handler in list(audit.handlers):
            audit.removeHandler(handler)
            handler.close()

        self.tmp.cleanup()

    def test_setup_logging_creates_log_file(self):
        log_file = os.path.join(self.tmp.name, "nested", "market.log")
        setup_logging("DEBUG", log_file)

        logging.getLogger("tokenmarket.test").debug("hello file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        with open(log_file) as f:
            self.assertIn("hello file", f.read())
        self.assertEqual(logging.getLogger().level, logging.DEBUG)
        self.assertEqual(logging.getLogger("websockets").level, logging.WARNING)

    def test_audit_trail(self):
        log_file = os.path.join(self.tmp.name, "audit.log")
        audit_logger = create_audit_logger(log_file)
        # Re-creating must not stack handlers
        audit_logger = create_audit_logger(log_file)
        self.assertEqual(len(audit_logger.handlers), 1)

        engine = MatchingEngine(id_generator=SequentialIdGenerator(), audit_logger=audit_logger)
        engine.register_token("Gold Bar", "GOLD", token_id="T")
        engine.submit(NewOrderRequest("T", "alice", "sell", 1, "5.00"))
        engine.submit(NewOrderRequest("T", "bob", "buy", 1, "5.00"))

        for handler in audit_logger.handlers:
            handler.flush()
        with open(log_file) as f:
            lines = f.read().splitlines()

        actions = [line.split("|")[2] for line in lines]
        self.assertEqual(
            actions,
            ["ORDER_SUBMIT", "ORDER_SUBMIT", "ORDER_FILL", "ORDER_FILL", "TRADE_EXECUTE"],
        )
        self.assertIn("BUYER:bob", lines[-1])
        self.assertIn("SELLER:alice", lines[-1])


if __name__ == '__main__':
    unittest.main()
