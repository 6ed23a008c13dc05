"""
Input validation utilities for the API layer.

This module validates order, token, cancel and depth requests
before they reach the matching engine. Every validator returns a
tuple whose first two items are (is_valid, error_message).
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional, Tuple
import logging

from ..core.order_types import OrderSide

logger = logging.getLogger(__name__)

# Identifier pattern for token and user ids (e.g., token_3f9a, alice)
ID_PATTERN = re.compile(r'^[A-Za-z0-9_\-.@]{1,64}$')

# Token symbols (e.g., GOLD, RE01)
SYMBOL_PATTERN = re.compile(r'^[A-Za-z0-9]{1,12}$')

TOKEN_TYPES = ("ERC-20", "ERC-721")

MAX_QUANTITY = 1000000
MAX_PRICE = Decimal('10000000')
MAX_DEPTH = 100


def validate_identifier(value: Any, name: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a token or user identifier.

    Args:
        value: Identifier to validate
        name: Field name used in error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not value:
        return False, f"{name} cannot be empty"

    if not isinstance(value, str):
        return False, f"{name} must be a string"

    if not ID_PATTERN.match(value):
        return False, f"Invalid {name}: {value}"

    return True, None


def validate_token_id(token_id: Any) -> Tuple[bool, Optional[str]]:
    """Validate a token identifier."""
    return validate_identifier(token_id, "token_id")


def validate_quantity(
    quantity: Any,
    max_quantity: int = MAX_QUANTITY,
) -> Tuple[bool, Optional[str], Optional[int]]:
    """
    Validate order quantity.

    Args:
        quantity: Quantity to validate; must be a whole number
        max_quantity: Largest accepted quantity

    Returns:
        Tuple of (is_valid, error_message, parsed_quantity)
    """
    if quantity is None:
        return False, "Quantity is required", None

    if isinstance(quantity, bool):
        return False, f"Invalid quantity format: {quantity}", None

    try:
        qty = Decimal(str(quantity))
    except (InvalidOperation, ValueError):
        return False, f"Invalid quantity format: {quantity}", None

    if not qty.is_finite() or qty != qty.to_integral_value():
        return False, "Quantity must be a whole number", None

    if qty <= 0:
        return False, "Quantity must be positive", None

    if qty > max_quantity:
        return False, f"Quantity too large. Maximum: {max_quantity}", None

    return True, None, int(qty)


def validate_price(
    price: Any,
    price_decimals: int = 2,
    max_price: Decimal = MAX_PRICE,
) -> Tuple[bool, Optional[str], Optional[Decimal]]:
    """
    Validate order price.

    Args:
        price: Price to validate
        price_decimals: Maximum number of fractional digits
        max_price: Largest accepted price

    Returns:
        Tuple of (is_valid, error_message, parsed_price)
    """
    if price is None:
        return False, "Price is required", None

    if isinstance(price, bool):
        return False, f"Invalid price format: {price}", None

    try:
        prc = Decimal(str(price))
    except (InvalidOperation, ValueError):
        return False, f"Invalid price format: {price}", None

    if not prc.is_finite() or prc <= 0:
        return False, "Price must be positive", None

    if prc > max_price:
        return False, f"Price too large. Maximum: {max_price}", None

    if prc != prc.quantize(Decimal(1).scaleb(-price_decimals)):
        return False, f"Price must have at most {price_decimals} decimal places", None

    return True, None, prc


def validate_order_side(side: Any) -> Tuple[bool, Optional[str], Optional[OrderSide]]:
    """
    Validate order side.

    Args:
        side: Order side to validate

    Returns:
        Tuple of (is_valid, error_message, parsed_order_side)
    """
    if not side:
        return False, "Order side is required", None

    if not isinstance(side, str):
        return False, "Order side must be a string", None

    try:
        parsed = OrderSide(side.lower())
    except ValueError:
        valid_sides = [s.value for s in OrderSide]
        return False, f"Invalid order side: {side}. Must be one of: {valid_sides}", None

    return True, None, parsed


def validate_order_request(
    data: Dict[str, Any],
    price_decimals: int = 2,
    max_quantity: int = MAX_QUANTITY,
    max_price: Decimal = MAX_PRICE,
) -> Tuple[bool, Optional[str], Optional[Dict[str, Any]]]:
    """
    Validate complete order request.

    Args:
        data: Order request data
        price_decimals: Maximum number of fractional digits in the price
        max_quantity: Largest accepted quantity
        max_price: Largest accepted price

    Returns:
        Tuple of (is_valid, error_message, parsed_data)
    """
    required_fields = ['token_id', 'user_id', 'side', 'quantity', 'price']
    for field in required_fields:
        if field not in data:
            return False, f"Missing required field: {field}", None

    is_valid, error = validate_token_id(data['token_id'])
    if not is_valid:
        return False, error, None

    is_valid, error = validate_identifier(data['user_id'], "user_id")
    if not is_valid:
        return False, error, None

    is_valid, error, side = validate_order_side(data['side'])
    if not is_valid:
        return False, error, None

    is_valid, error, quantity = validate_quantity(data['quantity'], max_quantity)
    if not is_valid:
        return False, error, None

    is_valid, error, price = validate_price(data['price'], price_decimals, max_price)
    if not is_valid:
        return False, error, None

    validated_data = {
        'token_id': data['token_id'],
        'user_id': data['user_id'],
        'side': side,
        'quantity': quantity,
        'price': price,
    }

    return True, None, validated_data


def validate_token_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str], Optional[Dict[str, Any]]]:
    """
    Validate a token registration request.

    Args:
        data: Token request data

    Returns:
        Tuple of (is_valid, error_message, parsed_data)
    """
    for field in ('name', 'symbol'):
        if not data.get(field):
            return False, f"Missing required field: {field}", None

    name = sanitize_string(data['name'])
    if not name:
        return False, "Token name cannot be empty", None

    symbol = data['symbol']
    if not isinstance(symbol, str) or not SYMBOL_PATTERN.match(symbol):
        return False, f"Invalid token symbol: {symbol}", None

    token_type = data.get('token_type', 'ERC-20')
    if token_type not in TOKEN_TYPES:
        return False, f"Invalid token type: {token_type}. Must be one of: {list(TOKEN_TYPES)}", None

    total_supply = data.get('total_supply', 0)
    if isinstance(total_supply, bool) or not isinstance(total_supply, int) or total_supply < 0:
        return False, "Total supply must be a non-negative integer", None

    tradable = data.get('tradable', True)
    if not isinstance(tradable, bool):
        return False, "Tradable must be a boolean", None

    validated_data = {
        'name': name,
        'symbol': symbol.upper(),
        'token_type': token_type,
        'total_supply': total_supply,
        'owner': data.get('owner'),
        'tradable': tradable,
    }

    if data.get('token_id') is not None:
        is_valid, error = validate_token_id(data['token_id'])
        if not is_valid:
            return False, error, None
        validated_data['token_id'] = data['token_id']

    return True, None, validated_data


def validate_depth_request(depth: Any) -> Tuple[bool, Optional[str], Optional[int]]:
    """
    Validate order book depth request.

    Args:
        depth: Depth parameter

    Returns:
        Tuple of (is_valid, error_message, parsed_depth)
    """
    if depth is None:
        return True, None, 10

    try:
        depth = int(depth)
    except (ValueError, TypeError):
        return False, f"Invalid depth format: {depth}. Must be an integer", None

    if depth <= 0:
        return False, "Depth must be positive", None

    if depth > MAX_DEPTH:
        return False, f"Depth too large. Maximum: {MAX_DEPTH}", None

    return True, None, depth


def validate_cancel_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str], Optional[Dict[str, Any]]]:
    """
    Validate order cancellation request.

    Args:
        data: Cancel request data

    Returns:
        Tuple of (is_valid, error_message, parsed_data)
    """
    order_id = data.get('order_id')
    if not order_id or not isinstance(order_id, str):
        return False, "Order ID must be a non-empty string", None

    user_id = data.get('user_id')
    if user_id is not None:
        is_valid, error = validate_identifier(user_id, "user_id")
        if not is_valid:
            return False, error, None

    return True, None, {'order_id': order_id, 'user_id': user_id}


def sanitize_string(value: Any, max_length: int = 100) -> str:
    """
    Sanitize string input to prevent injection attacks.

    Args:
        value: Value to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized string
    """
    if not isinstance(value, str):
        value = str(value)

    sanitized = re.sub(r'[<>"\']', '', value)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized.strip()
