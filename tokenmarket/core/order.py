"""
Order, Trade and Token data structures for the token market.

This module defines the core records exchanged with the matching
engine, with validation, lifecycle transitions and serialization.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any, Union
import json

from .errors import ValidationError, InvalidTransition
from .order_types import OrderSide, OrderStatus, TradeType, TradeStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


@dataclass
class NewOrderRequest:
    """
    Raw order submission as received from a caller.

    Values are coerced and validated by the engine, not here.
    """

    token_id: str
    user_id: str
    side: Union[OrderSide, str]
    quantity: Any
    price: Any


@dataclass
class Order:
    """
    Represents a limit order for a token.

    Prices use Decimal for precise arithmetic. The only mutable
    field is ``status``, and it only ever leaves ``OPEN``.
    """

    order_id: str
    token_id: str
    user_id: str
    side: OrderSide
    quantity: int
    price: Decimal
    status: OrderStatus = OrderStatus.OPEN
    created_at: datetime = field(default_factory=_utcnow)

    # Set on remainder orders created by a partial fill
    parent_order_id: Optional[str] = None

    def __post_init__(self):
        """Validate order after initialization."""
        self._validate()

    def _validate(self) -> None:
        """
        Validate order parameters according to business rules.

        Raises:
            ValidationError: If order parameters are invalid
        """
        if not self.order_id:
            raise ValidationError("Order ID cannot be empty")

        if not self.token_id:
            raise ValidationError("Token ID cannot be empty")

        if not self.user_id:
            raise ValidationError("User ID cannot be empty")

        if not isinstance(self.side, OrderSide):
            raise ValidationError(f"Invalid order side: {self.side}")

        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValidationError(f"Quantity must be an integer, got: {self.quantity!r}")

        if self.quantity <= 0:
            raise ValidationError(f"Quantity must be positive, got: {self.quantity}")

        if not isinstance(self.price, Decimal):
            raise ValidationError(f"Price must be a Decimal, got: {self.price!r}")

        if not self.price.is_finite() or self.price <= 0:
            raise ValidationError(f"Price must be positive, got: {self.price}")

    @property
    def is_open(self) -> bool:
        return self.status == OrderStatus.OPEN

    @property
    def notional_value(self) -> Decimal:
        """Quantity times limit price."""
        return self.price * self.quantity

    def transition(self, new_status: OrderStatus) -> None:
        """
        Move the order out of OPEN.

        Raises:
            InvalidTransition: If the order is not open or the target is OPEN
        """
        if self.status != OrderStatus.OPEN or new_status == OrderStatus.OPEN:
            raise InvalidTransition(
                f"Order {self.order_id} cannot go from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def to_dict(self) -> Dict[str, Any]:
        """Convert order to dictionary for serialization."""
        return {
            "order_id": self.order_id,
            "token_id": self.token_id,
            "user_id": self.user_id,
            "side": self.side.value,
            "quantity": self.quantity,
            "price": str(self.price),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "parent_order_id": self.parent_order_id,
        }

    def to_json(self) -> str:
        """Convert order to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Order':
        """Create order from dictionary."""
        return cls(
            order_id=data["order_id"],
            token_id=data["token_id"],
            user_id=data["user_id"],
            side=OrderSide(data["side"]),
            quantity=int(data["quantity"]),
            price=Decimal(str(data["price"])),
            status=OrderStatus(data.get("status", "open")),
            created_at=_parse_timestamp(data["created_at"]),
            parent_order_id=data.get("parent_order_id"),
        )


@dataclass(frozen=True)
class Trade:
    """
    Represents an executed match between a buy and a sell order.

    Trades are only created by the matching engine and never change
    afterwards.
    """

    trade_id: str
    token_id: str
    buyer_id: str
    seller_id: str
    buy_order_id: str
    sell_order_id: str
    quantity: int
    price: Decimal
    settlement_ref: str
    trade_type: TradeType = TradeType.BUY
    status: TradeStatus = TradeStatus.COMPLETED
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        """Validate trade after initialization."""
        self._validate()

    def _validate(self) -> None:
        """
        Validate trade parameters.

        Raises:
            ValidationError: If trade parameters are invalid
        """
        if not self.token_id:
            raise ValidationError("Token ID cannot be empty")

        if self.quantity <= 0:
            raise ValidationError(f"Quantity must be positive, got: {self.quantity}")

        if self.price <= 0:
            raise ValidationError(f"Price must be positive, got: {self.price}")

        if not self.buy_order_id or not self.sell_order_id:
            raise ValidationError("Trade must reference both orders")

        if self.buyer_id == self.seller_id:
            raise ValidationError("Buyer and seller must differ")

    @property
    def notional_value(self) -> Decimal:
        """Calculate notional value of the trade."""
        return self.price * self.quantity

    def involves(self, order_id: str) -> bool:
        return order_id in (self.buy_order_id, self.sell_order_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert trade to dictionary for serialization."""
        return {
            "trade_id": self.trade_id,
            "token_id": self.token_id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "buy_order_id": self.buy_order_id,
            "sell_order_id": self.sell_order_id,
            "quantity": self.quantity,
            "price": str(self.price),
            "notional_value": str(self.notional_value),
            "type": self.trade_type.value,
            "status": self.status.value,
            "settlement_ref": self.settlement_ref,
            "created_at": self.created_at.isoformat(),
        }

    def to_json(self) -> str:
        """Convert trade to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Trade':
        """Create trade from dictionary."""
        return cls(
            trade_id=data["trade_id"],
            token_id=data["token_id"],
            buyer_id=data["buyer_id"],
            seller_id=data["seller_id"],
            buy_order_id=data["buy_order_id"],
            sell_order_id=data["sell_order_id"],
            quantity=int(data["quantity"]),
            price=Decimal(str(data["price"])),
            settlement_ref=data["settlement_ref"],
            trade_type=TradeType(data.get("type", "buy")),
            status=TradeStatus(data.get("status", "completed")),
            created_at=_parse_timestamp(data["created_at"]),
        )


@dataclass
class Token:
    """
    Registry entry for a tradable token.

    The engine only checks that a token exists and is tradable.
    """

    token_id: str
    name: str
    symbol: str
    token_type: str = "ERC-20"
    total_supply: int = 0
    owner: Optional[str] = None
    tradable: bool = True
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": self.token_id,
            "name": self.name,
            "symbol": self.symbol,
            "token_type": self.token_type,
            "total_supply": self.total_supply,
            "owner": self.owner,
            "tradable": self.tradable,
            "created_at": self.created_at.isoformat(),
        }
