"""
Pytest fixtures and configuration for tests.
"""
import pytest
from decimal import Decimal
from typing import List
from unittest.mock import AsyncMock, MagicMock, patch

import bech32

from injective_agent_api.interfaces import MarketDataSource, Notifier, OrderBroadcaster
from injective_agent_api.market_cache import MarketDataCache
from injective_agent_api.market_details import MarketDetailsResolver
from injective_agent_api.models import (
    Market,
    MarketDetails,
    MarketSummary,
    OrderBook,
    OrderBookLevel,
)


# =============================================================================
# MOCK DATA
# =============================================================================

ACCOUNT_BYTES = bytes(range(1, 21))


def make_inj_address(raw: bytes = ACCOUNT_BYTES) -> str:
    """Encode 20 raw bytes as an inj1... bech32 address."""
    return bech32.bech32_encode("inj", bech32.convertbits(list(raw), 8, 5))


@pytest.fixture
def inj_address():
    return make_inj_address()


@pytest.fixture
def sample_market():
    """INJ/USDT spot market (18-decimal base, 6-decimal quote)."""
    return Market(
        market_id="0xa508cb32923323679f29a032c70342c147c17d0145625922b0ef22e955c844c0",
        ticker="INJ/USDT",
        base_symbol="INJ",
        quote_symbol="USDT",
        base_denom="inj",
        quote_denom="peggy0xdAC17F958D2ee523a2206206994597C13D831ec7",
        base_decimals=18,
        quote_decimals=6,
        min_price_tick_size=Decimal("0.001"),
        min_quantity_tick_size=Decimal("0.001"),
        min_notional=Decimal("1"),
    )


@pytest.fixture
def sample_summary():
    return MarketSummary(
        high=Decimal("32.5"),
        low=Decimal("28.1"),
        open=Decimal("29.0"),
        price=Decimal("30.0"),
        volume=Decimal("125000"),
    )


@pytest.fixture
def sample_order_book():
    return OrderBook(
        bids=[
            OrderBookLevel(price=Decimal("29.9"), quantity=Decimal("10")),
            OrderBookLevel(price=Decimal("29.8"), quantity=Decimal("30")),
        ],
        asks=[
            OrderBookLevel(price=Decimal("30.0"), quantity=Decimal("5")),
            OrderBookLevel(price=Decimal("30.2"), quantity=Decimal("15")),
        ],
    )


@pytest.fixture
def make_details(sample_market):
    """Build MarketDetails for the sample market with selected prices overridden."""
    def _make(**overrides):
        values = {
            "market_id": sample_market.market_id,
            "ticker": sample_market.ticker,
            "base_symbol": sample_market.base_symbol,
            "quote_symbol": sample_market.quote_symbol,
            "base_decimals": sample_market.base_decimals,
            "quote_decimals": sample_market.quote_decimals,
            "min_price_tick_size": sample_market.min_price_tick_size,
            "min_quantity_tick_size": sample_market.min_quantity_tick_size,
            "price": Decimal("30.00"),
            "high_price": Decimal("31"),
            "low_price": Decimal("29"),
            "open_price": Decimal("29.5"),
        }
        values.update(overrides)
        return MarketDetails(**values)
    return _make


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeMarketDataSource(MarketDataSource):
    """In-memory market data; set `fail` to make every fetch raise."""

    def __init__(self, markets: List[Market], order_book: OrderBook, summary: MarketSummary):
        self.markets = list(markets)
        self.order_book = order_book
        self.summary = summary
        self.fail = False
        self.fetch_markets_calls = 0

    async def fetch_markets(self) -> List[Market]:
        self.fetch_markets_calls += 1
        if self.fail:
            raise ConnectionError("indexer unreachable")
        return list(self.markets)

    async def fetch_market_summary(self, market: Market) -> MarketSummary:
        if self.fail:
            raise ConnectionError("chronos unreachable")
        return self.summary

    async def fetch_order_book(self, market: Market) -> OrderBook:
        if self.fail:
            raise ConnectionError("indexer unreachable")
        return self.order_book


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    async def notify(self, user_id: str, text: str) -> None:
        self.sent.append((user_id, text))


class FakeBroadcaster(OrderBroadcaster):
    def __init__(self, response=None, error: Exception = None):
        self.response = response if response is not None else {"txResponse": {"code": 0, "txhash": "ABC123"}}
        self.error = error
        self.calls = []

    async def broadcast(self, message, signing_key: str) -> dict:
        self.calls.append((message, signing_key))
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def fake_source(sample_market, sample_order_book, sample_summary):
    return FakeMarketDataSource([sample_market], sample_order_book, sample_summary)


@pytest.fixture
def loaded_cache(fake_source):
    cache = MarketDataCache(fake_source)
    cache._replace(fake_source.markets)
    return cache


@pytest.fixture
def resolver(loaded_cache, fake_source):
    return MarketDetailsResolver(loaded_cache, fake_source)


@pytest.fixture
def notifier():
    return RecordingNotifier()


# =============================================================================
# DATABASE MOCKS
# =============================================================================

@pytest.fixture
def mock_collection():
    """Create a mock MongoDB collection."""
    def _create_collection():
        collection = AsyncMock()
        collection.find_one = AsyncMock(return_value=None)
        collection.insert_one = AsyncMock()
        collection.update_one = AsyncMock()
        collection.create_index = AsyncMock()
        return collection
    return _create_collection


@pytest.fixture
def mock_db_service(mock_collection):
    """Create a mock DatabaseService."""
    from injective_agent_api.database import DatabaseService

    with patch.object(DatabaseService, '__init__', lambda self, *args, **kwargs: None):
        service = DatabaseService.__new__(DatabaseService)
        service.user_settings = mock_collection()
        service.client = MagicMock()
        service.db = MagicMock()
        return service
