"""
Live integration tests against Injective mainnet market data.

Read-only: nothing here signs or broadcasts a transaction.

Run with:
    INJECTIVE_LIVE_TESTS=1 pytest tests/integration/ -v -s --tb=short
"""
import asyncio
import logging
import pytest

from injective_agent_api.injective_client import InjectiveMarketDataSource
from injective_agent_api.market_cache import MarketDataCache
from injective_agent_api.market_details import MarketDetailsResolver
from injective_agent_api.models import OrderSide
from injective_agent_api.pricing import OrderPricingPolicy

# Set up logging to see what's happening
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TEST_TIMEOUT = 60
TEST_TICKER = "INJ/USDT"


@pytest.fixture
async def live_resolver():
    source = InjectiveMarketDataSource(network_name="mainnet")
    cache = MarketDataCache(source)
    await asyncio.wait_for(cache.refresh(), timeout=TEST_TIMEOUT)
    return MarketDetailsResolver(cache, source)


class TestMarketData:
    @pytest.mark.asyncio
    async def test_market_list_has_inj(self, live_resolver):
        market = live_resolver.cache.lookup(TEST_TICKER)
        logger.info(f"{TEST_TICKER}: {market}")

        assert market.base_decimals == 18
        assert market.min_price_tick_size > 0
        assert market.min_quantity_tick_size > 0

    @pytest.mark.asyncio
    async def test_resolve_details(self, live_resolver):
        details = await asyncio.wait_for(live_resolver.resolve(TEST_TICKER), timeout=TEST_TIMEOUT)
        logger.info(f"{TEST_TICKER} details: {details}")

        assert details.price > 0
        if details.best_bid_price is not None and details.best_ask_price is not None:
            assert details.best_bid_price <= details.best_ask_price

    @pytest.mark.asyncio
    async def test_worst_price_brackets_book(self, live_resolver):
        details = await asyncio.wait_for(live_resolver.resolve(TEST_TICKER), timeout=TEST_TIMEOUT)
        policy = OrderPricingPolicy()

        buy = policy.compute_worst_price(OrderSide.BUY, details)
        sell = policy.compute_worst_price(OrderSide.SELL, details)

        assert sell < buy
