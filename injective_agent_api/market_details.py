"""
Resolve a ticker into live MarketDetails.

Combines cached market metadata with a fresh order book and 24h summary.
The order book is fetched on every call.
"""
import asyncio
import logging
from decimal import Decimal
from typing import List, Optional

from .errors import UpstreamUnavailable
from .interfaces import MarketDataSource
from .market_cache import MarketDataCache
from .models import ORDERBOOK_DEPTH, MarketDetails, OrderBookLevel

logger = logging.getLogger(__name__)


def weighted_average_price(levels: List[OrderBookLevel], depth: int = ORDERBOOK_DEPTH) -> Optional[Decimal]:
    """
    Quantity-weighted mean price of the first `depth` levels.

    Returns:
        Average price, or None when there is no quantity on this side
    """
    top = levels[:depth]
    total_quantity = sum((level.quantity for level in top), Decimal("0"))
    if total_quantity <= 0:
        return None
    weighted = sum((level.price * level.quantity for level in top), Decimal("0"))
    return weighted / total_quantity


class MarketDetailsResolver:
    def __init__(self, cache: MarketDataCache, source: MarketDataSource, depth: int = ORDERBOOK_DEPTH):
        self.cache = cache
        self.source = source
        self.depth = depth

    async def resolve(self, ticker: str) -> MarketDetails:
        """
        Build MarketDetails for a ticker.

        Raises:
            MarketNotFound: ticker is not in the market cache
            UpstreamUnavailable: order book or summary fetch failed
        """
        market = self.cache.lookup(ticker)

        try:
            order_book, summary = await asyncio.gather(
                self.source.fetch_order_book(market),
                self.source.fetch_market_summary(market),
            )
        except Exception as e:
            logger.error(f"Error fetching market details for {ticker}: {e}")
            raise UpstreamUnavailable(ticker, str(e)) from e

        best_bid = max((level.price for level in order_book.bids), default=None)
        best_ask = min((level.price for level in order_book.asks), default=None)

        return MarketDetails(
            market_id=market.market_id,
            ticker=market.ticker,
            base_symbol=market.base_symbol,
            quote_symbol=market.quote_symbol,
            base_decimals=market.base_decimals,
            quote_decimals=market.quote_decimals,
            min_price_tick_size=market.min_price_tick_size,
            min_quantity_tick_size=market.min_quantity_tick_size,
            price=summary.price,
            high_price=summary.high,
            low_price=summary.low,
            open_price=summary.open,
            best_bid_price=best_bid,
            best_ask_price=best_ask,
            average_buy_price=weighted_average_price(order_book.bids, self.depth),
            average_sell_price=weighted_average_price(order_book.asks, self.depth),
        )

    async def get_minimum_order_amount(self, ticker: str) -> dict:
        """
        Smallest order notional (in quote tokens) the market accepts right now.

        One quantity tick at the best ask for buys, at the best bid for sells.
        A side with an empty book reports None.
        """
        details = await self.resolve(ticker)
        tick = details.min_quantity_tick_size

        return {
            "market": f"{details.base_symbol}/{details.quote_symbol}",
            "min_quantity_tick_size": tick,
            "min_price_tick_size": details.min_price_tick_size,
            "best_ask_price": details.best_ask_price,
            "best_bid_price": details.best_bid_price,
            "min_order_amount_to_buy": tick * details.best_ask_price if details.best_ask_price is not None else None,
            "min_order_amount_to_sell": tick * details.best_bid_price if details.best_bid_price is not None else None,
        }
