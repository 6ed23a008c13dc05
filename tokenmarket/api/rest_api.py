"""
REST API for the token market.

This module provides HTTP endpoints for token registration, order
submission and cancellation, order book and trade queries, and
engine statistics.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, request, jsonify
from flask_cors import CORS

from .. import __version__
from ..config.settings import Settings, get_settings
from ..core.errors import StoreFailure, ValidationError
from ..core.matching_engine import MatchingEngine
from ..core.order import NewOrderRequest
from ..utils.performance import get_performance_monitor
from .validators import (
    validate_order_request,
    validate_order_side,
    validate_token_id,
    validate_token_request,
    validate_depth_request,
    validate_cancel_request,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_app(engine: Optional[MatchingEngine] = None, settings: Optional[Settings] = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        engine: Matching engine to serve; built from settings when omitted
        settings: Settings instance; the global settings when omitted

    Returns:
        Configured Flask application
    """
    settings = settings or get_settings()
    if engine is None:
        engine = MatchingEngine.from_settings(settings)

    app = Flask(__name__)
    app.config['MATCHING_ENGINE'] = engine
    app.config['PRICE_DECIMALS'] = settings.price_decimals
    app.config['MAX_QUANTITY'] = settings.max_quantity
    app.config['MAX_PRICE'] = settings.max_price

    if settings.enable_cors:
        CORS(app, origins=settings.cors_origins)

    register_routes(app, engine)
    register_error_handlers(app)

    logger.info("REST API initialized")
    return app


def register_routes(app: Flask, engine: MatchingEngine) -> None:
    """Register all API routes."""

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint."""
        return jsonify({
            'status': 'healthy',
            'timestamp': _now(),
            'version': __version__
        })

    @app.route('/tokens', methods=['GET'])
    def list_tokens():
        """List registered tokens."""
        tokens = [t.to_dict() for t in engine.token_registry.list_tokens()]
        return jsonify({'tokens': tokens, 'count': len(tokens), 'timestamp': _now()}), 200

    @app.route('/tokens', methods=['POST'])
    def register_token():
        """
        Register a tradable token.

        Request body:
        {
            "name": "Downtown Office Share",
            "symbol": "DOS",
            "token_type": "ERC-20",
            "total_supply": 1000
        }
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not data:
            return jsonify({'error': 'Request body must be a JSON object'}), 400

        is_valid, error, validated = validate_token_request(data)
        if not is_valid:
            return jsonify({'error': error}), 400

        if 'token_id' in validated and engine.token_registry.exists(validated['token_id']):
            return jsonify({'error': f"Token already exists: {validated['token_id']}"}), 409

        token = engine.register_token(**validated)
        return jsonify(token.to_dict()), 201

    @app.route('/orders', methods=['POST'])
    def submit_order():
        """
        Submit a new order and attempt to match it.

        Request body:
        {
            "token_id": "token_3f9a",
            "user_id": "alice",
            "side": "buy",
            "quantity": 10,
            "price": "5.00"
        }
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not data:
            return jsonify({'error': 'Request body must be a JSON object'}), 400

        is_valid, error, validated = validate_order_request(
            data,
            app.config['PRICE_DECIMALS'],
            app.config['MAX_QUANTITY'],
            app.config['MAX_PRICE'],
        )
        if not is_valid:
            return jsonify({'error': error}), 400

        order, trade = engine.place_order(NewOrderRequest(**validated))

        response_data = order.to_dict()
        response_data['trade'] = trade.to_dict() if trade else None

        logger.info(f"Order submitted: {order.order_id}")
        return jsonify(response_data), 201

    @app.route('/orders', methods=['GET'])
    def list_open_orders():
        """
        List open orders.

        Query parameters:
        - token_id: Restrict to one token (optional)
        - side: buy or sell (optional)
        """
        token_id = request.args.get('token_id')
        if token_id is not None:
            is_valid, error = validate_token_id(token_id)
            if not is_valid:
                return jsonify({'error': error}), 400

        side = None
        if request.args.get('side') is not None:
            is_valid, error, side = validate_order_side(request.args['side'])
            if not is_valid:
                return jsonify({'error': error}), 400

        orders = [o.to_dict() for o in engine.open_orders(token_id, side)]
        return jsonify({'orders': orders, 'count': len(orders), 'timestamp': _now()}), 200

    @app.route('/orders/<order_id>', methods=['GET'])
    def get_order(order_id: str):
        """Get order details by ID."""
        order = engine.get_order(order_id)
        if not order:
            return jsonify({'error': 'Order not found'}), 404

        return jsonify(order.to_dict()), 200

    @app.route('/orders/<order_id>', methods=['DELETE'])
    def cancel_order(order_id: str):
        """
        Cancel an open order.

        Request body (optional):
        {
            "user_id": "alice"
        }
        """
        data = request.get_json(silent=True)
        if data is None:
            data = {}
        elif not isinstance(data, dict):
            return jsonify({'error': 'Request body must be a JSON object'}), 400
        data['order_id'] = order_id

        is_valid, error, validated = validate_cancel_request(data)
        if not is_valid:
            return jsonify({'error': error}), 400

        if engine.get_order(order_id) is None:
            return jsonify({'error': 'Order not found'}), 404

        if engine.cancel_order(validated['order_id'], validated['user_id']):
            return jsonify({'message': 'Order cancelled successfully'}), 200
        return jsonify({'error': 'Order is not open or belongs to another user'}), 409

    @app.route('/orderbook/<token_id>', methods=['GET'])
    def get_order_book(token_id: str):
        """
        Get the order book for a token.

        Query parameters:
        - depth: Number of price levels to return (default: 10, max: 100)
        """
        is_valid, error, depth = validate_depth_request(request.args.get('depth'))
        if not is_valid:
            return jsonify({'error': error}), 400

        order_book = engine.get_order_book(token_id)
        if not order_book:
            return jsonify({'error': 'Token not found'}), 404

        best_bid, best_ask = order_book.get_bbo()

        response_data = {
            'token_id': token_id,
            'timestamp': _now(),
            'best_bid': str(best_bid) if best_bid is not None else None,
            'best_ask': str(best_ask) if best_ask is not None else None,
            'bids': order_book.get_order_book_depth('bids', depth),
            'asks': order_book.get_order_book_depth('asks', depth),
            'buy_orders': [o.to_dict() for o in order_book.bids()],
            'sell_orders': [o.to_dict() for o in order_book.asks()],
        }

        return jsonify(response_data), 200

    @app.route('/trades', methods=['GET'])
    def list_trades():
        """
        List executed trades.

        Query parameters:
        - token_id: Restrict to one token (optional)
        """
        token_id = request.args.get('token_id')
        trades = [t.to_dict() for t in engine.get_trades(token_id)]
        return jsonify({'trades': trades, 'count': len(trades), 'timestamp': _now()}), 200

    @app.route('/statistics', methods=['GET'])
    def get_statistics():
        """Get engine statistics."""
        return jsonify(engine.get_statistics()), 200

    @app.route('/statistics/<token_id>', methods=['GET'])
    def get_token_statistics(token_id: str):
        """Get statistics for a specific token."""
        stats = engine.get_token_statistics(token_id)
        if not stats:
            return jsonify({'error': 'Token not found'}), 404

        return jsonify(stats), 200

    @app.route('/metrics', methods=['GET'])
    def get_metrics():
        """Get performance metrics for the process."""
        monitor = engine.performance_monitor or get_performance_monitor()
        return jsonify(monitor.get_summary()), 200


def register_error_handlers(app: Flask) -> None:
    """Map engine errors and HTTP errors to JSON responses."""

    @app.errorhandler(ValidationError)
    def validation_error(error):
        return jsonify({'error': str(error)}), 400

    @app.errorhandler(StoreFailure)
    def store_failure(error):
        logger.error(f"Store failure: {str(error)}")
        return jsonify({'error': 'Order store unavailable'}), 503

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 errors."""
        return jsonify({'error': 'Endpoint not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        """Handle 405 errors."""
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        logger.error(f"Internal server error: {str(error)}")
        return jsonify({'error': 'Internal server error'}), 500


def run_server(host: str = '0.0.0.0', port: int = 5000, debug: bool = False) -> None:
    """
    Run the REST API server with a fresh engine.

    Args:
        host: Host to bind to
        port: Port to bind to
        debug: Enable debug mode
    """
    app = create_app()
    logger.info(f"Starting REST API server on {host}:{port}")
    app.run(host=host, port=port, debug=debug)


if __name__ == '__main__':
    run_server(debug=True)
