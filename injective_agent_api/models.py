"""
Market, order and alert models plus MongoDB document schemas.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from nanoid import generate
from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# TRADING CONSTANTS
# =============================================================================

SLIPPAGE_BUFFER = Decimal("0.02")   # 2% worst-price buffer for market orders
ORDERBOOK_DEPTH = 5                 # Levels per side used for average prices
CHAIN_DEC_PRECISION = 18            # Cosmos SDK Dec fractional digits
SUBACCOUNT_INDEX_WIDTH = 24         # Hex chars appended to the account for a subaccount id


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def chain_order_type(self) -> int:
        """Exchange order type enum value (BUY=1, SELL=2)."""
        return 1 if self is OrderSide.BUY else 2


class AlertCondition(str, Enum):
    ABOVE = "above"
    BELOW = "below"


class OrderStatus(str, Enum):
    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"


# =============================================================================
# MARKET DATA
# =============================================================================

class Market(BaseModel):
    """
    Spot market metadata.

    Tick sizes are in human units: quote per base for prices, base tokens
    for quantities.
    """
    model_config = ConfigDict(frozen=True)

    market_id: str
    ticker: str
    base_symbol: str
    quote_symbol: str
    base_denom: str = ""
    quote_denom: str = ""
    base_decimals: int
    quote_decimals: int
    min_price_tick_size: Decimal
    min_quantity_tick_size: Decimal
    min_notional: Decimal = Decimal("0")
    status: str = "active"

    @field_validator("min_price_tick_size", "min_quantity_tick_size")
    @classmethod
    def validate_tick_size(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("tick size must be positive")
        return v

    @property
    def price_tens_multiplier(self) -> int:
        return self.min_price_tick_size.adjusted()

    @property
    def quantity_tens_multiplier(self) -> int:
        return self.min_quantity_tick_size.adjusted()


class OrderBookLevel(BaseModel):
    model_config = ConfigDict(frozen=True)

    price: Decimal
    quantity: Decimal


class OrderBook(BaseModel):
    """Order book snapshot, each side sorted best-first."""
    model_config = ConfigDict(frozen=True)

    bids: List[OrderBookLevel] = Field(default_factory=list)
    asks: List[OrderBookLevel] = Field(default_factory=list)


class MarketSummary(BaseModel):
    """Rolling 24h summary."""
    model_config = ConfigDict(frozen=True)

    high: Decimal
    low: Decimal
    open: Decimal
    price: Decimal
    volume: Decimal = Decimal("0")


class MarketDetails(BaseModel):
    """
    Market metadata combined with a live book and summary.

    Any of the four book-derived prices may be absent; check before use.
    """
    model_config = ConfigDict(frozen=True)

    market_id: str
    ticker: str
    base_symbol: str
    quote_symbol: str
    base_decimals: int
    quote_decimals: int
    min_price_tick_size: Decimal
    min_quantity_tick_size: Decimal
    price: Decimal
    high_price: Decimal
    low_price: Decimal
    open_price: Decimal
    best_bid_price: Optional[Decimal] = None
    best_ask_price: Optional[Decimal] = None
    average_buy_price: Optional[Decimal] = None
    average_sell_price: Optional[Decimal] = None


class TokenMeta(BaseModel):
    """Bank denom with its display symbol and decimals."""
    model_config = ConfigDict(frozen=True)

    denom: str
    symbol: str
    decimals: int


class TokenBalance(BaseModel):
    """
    Bank balance of one denom.

    `amount` is in human units when the denom's decimals are known, otherwise
    it is the raw base-unit amount and `decimals` is None.
    """
    model_config = ConfigDict(frozen=True)

    denom: str
    symbol: str
    amount: Decimal
    decimals: Optional[int] = None


# =============================================================================
# ORDERS
# =============================================================================

class OrderIntent(BaseModel):
    model_config = ConfigDict(frozen=True)

    side: OrderSide
    ticker: str
    quantity: Decimal
    price: Optional[Decimal] = None  # Market orders leave this empty

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("quantity must be positive")
        return v


class PricedOrder(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: OrderIntent
    worst_price: Decimal


class SpotMarketOrderMessage(BaseModel):
    """Unsigned spot market order, price and quantity in chain fixed-point form."""
    model_config = ConfigDict(frozen=True)

    sender: str
    subaccount_id: str
    market_id: str
    fee_recipient: str
    order_type: int
    price: str
    quantity: str
    cid: Optional[str] = None


class TrackedOrder(BaseModel):
    order_id: str  # Transaction hash
    user_id: str
    ticker: str
    side: OrderSide
    quantity: Decimal
    worst_price: Decimal
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# ALERTS
# =============================================================================

class PriceAlert(BaseModel):
    alert_id: str = Field(default_factory=lambda: generate(size=10))
    user_id: str
    ticker: str
    target_price: Decimal
    condition: AlertCondition
    active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def is_triggered_by(self, price: Decimal) -> bool:
        if self.condition is AlertCondition.ABOVE:
            return price > self.target_price
        return price < self.target_price


# =============================================================================
# MONGODB DOCUMENT SCHEMAS
# =============================================================================

def wallet_document(name: str, address: str, encrypted_private_key: str) -> dict:
    """Create a wallet sub-document. The key stays encrypted; it is never read here."""
    return {
        "name": name,
        "address": address,
        "encrypted_private_key": encrypted_private_key,
        "created_at": datetime.utcnow(),
    }


def user_settings_document(user_id: str, user_name: Optional[str] = None) -> dict:
    """Create a per-user settings document for MongoDB."""
    return {
        "user_id": user_id,
        "user_name": user_name,
        "wallets": [],
        "default_wallet": None,
        "created_at": datetime.utcnow(),
    }
