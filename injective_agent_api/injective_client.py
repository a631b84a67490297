"""
Injective collaborators: indexer market data, chronos summaries and the
transaction broadcaster.

The indexer reports tick sizes and order book levels in chain units
(base-unit quantities, quote-units-per-base-unit prices). Everything is
converted to human units here, before it reaches the core.
"""
import logging
from decimal import Decimal
from typing import List, Mapping, Optional

import httpx
from pyinjective.async_client import AsyncClient
from pyinjective.core.broadcaster import MsgBroadcasterWithPk
from pyinjective.core.network import Network
from pyinjective.proto.injective.exchange.v1beta1 import exchange_pb2, tx_pb2

from .config import config as app_config
from .interfaces import BalanceSource, MarketDataSource, OrderBroadcaster
from .models import (
    Market,
    MarketSummary,
    OrderBook,
    OrderBookLevel,
    SpotMarketOrderMessage,
    TokenBalance,
    TokenMeta,
)

logger = logging.getLogger(__name__)


def get_network(name: str) -> Network:
    if name == "testnet":
        return Network.testnet()
    if name == "mainnet":
        return Network.mainnet()
    raise ValueError(f"Unknown Injective network: {name}")


def _dec(value, default: str = "0") -> Decimal:
    if value is None or value == "":
        return Decimal(default)
    return Decimal(str(value))


# =============================================================================
# RESPONSE PARSING
# =============================================================================

def parse_market(raw: dict) -> Optional[Market]:
    """
    Convert an indexer spot market into a Market.

    Returns:
        Market, or None when token metadata is missing
    """
    base_meta = raw.get("baseTokenMeta") or {}
    quote_meta = raw.get("quoteTokenMeta") or {}
    if not base_meta or not quote_meta:
        logger.warning(f"Missing token details for market: {raw.get('ticker')}")
        return None

    base_decimals = int(base_meta.get("decimals", 0))
    quote_decimals = int(quote_meta.get("decimals", 0))

    price_tick = _dec(raw.get("minPriceTickSize")).scaleb(base_decimals - quote_decimals)
    quantity_tick = _dec(raw.get("minQuantityTickSize")).scaleb(-base_decimals)
    min_notional = _dec(raw.get("minNotional")).scaleb(-quote_decimals)

    return Market(
        market_id=raw["marketId"],
        ticker=raw["ticker"],
        base_symbol=base_meta.get("symbol", ""),
        quote_symbol=quote_meta.get("symbol", ""),
        base_denom=raw.get("baseDenom", ""),
        quote_denom=raw.get("quoteDenom", ""),
        base_decimals=base_decimals,
        quote_decimals=quote_decimals,
        min_price_tick_size=price_tick.normalize(),
        min_quantity_tick_size=quantity_tick.normalize(),
        min_notional=min_notional.normalize(),
        status=raw.get("marketStatus", "active"),
    )


def parse_order_book(raw: dict, market: Market) -> OrderBook:
    """Convert an indexer v2 order book (buys/sells in chain units) into an OrderBook."""
    book = raw.get("orderbook", raw)
    price_shift = market.base_decimals - market.quote_decimals

    def _levels(items) -> List[OrderBookLevel]:
        return [
            OrderBookLevel(
                price=_dec(item["price"]).scaleb(price_shift),
                quantity=_dec(item["quantity"]).scaleb(-market.base_decimals),
            )
            for item in items or []
        ]

    return OrderBook(bids=_levels(book.get("buys")), asks=_levels(book.get("sells")))


def parse_market_summary(raw: dict) -> MarketSummary:
    """Chronos already reports human prices."""
    return MarketSummary(
        high=_dec(raw.get("high")),
        low=_dec(raw.get("low")),
        open=_dec(raw.get("open")),
        price=_dec(raw.get("price")),
        volume=_dec(raw.get("volume")),
    )


def parse_bank_balances(raw: dict, tokens: Mapping[str, TokenMeta]) -> List[TokenBalance]:
    """
    Convert a bank balances response into TokenBalances.

    Zero balances are dropped. Denoms missing from `tokens` keep their raw
    base-unit amount and use the denom as symbol.
    """
    balances = []
    for item in raw.get("balances") or []:
        amount = _dec(item.get("amount"))
        if amount <= 0:
            continue
        denom = item["denom"]
        meta = tokens.get(denom)
        if meta is None:
            logger.debug(f"No token metadata for denom {denom}")
            balances.append(TokenBalance(denom=denom, symbol=denom, amount=amount))
            continue
        balances.append(TokenBalance(
            denom=denom,
            symbol=meta.symbol,
            amount=amount.scaleb(-meta.decimals),
            decimals=meta.decimals,
        ))
    return balances


def build_spot_market_order_msg(message: SpotMarketOrderMessage) -> tx_pb2.MsgCreateSpotMarketOrder:
    order = exchange_pb2.SpotOrder(
        market_id=message.market_id,
        order_info=exchange_pb2.OrderInfo(
            subaccount_id=message.subaccount_id,
            fee_recipient=message.fee_recipient,
            price=message.price,
            quantity=message.quantity,
            cid=message.cid or "",
        ),
        order_type=message.order_type,
        trigger_price="0",
    )
    return tx_pb2.MsgCreateSpotMarketOrder(sender=message.sender, order=order)


# =============================================================================
# COLLABORATORS
# =============================================================================

class InjectiveMarketDataSource(MarketDataSource, BalanceSource):
    def __init__(
        self,
        network_name: str = app_config.INJECTIVE_NETWORK,
        chronos_url: str = app_config.CHRONOS_URL,
        timeout: float = 10.0,
    ):
        self.network = get_network(network_name)
        self.client = AsyncClient(self.network)
        self.chronos_url = chronos_url.rstrip("/")
        self.timeout = timeout

    async def fetch_markets(self) -> List[Market]:
        logger.info("Fetching market data...")
        response = await self.client.fetch_spot_markets(market_statuses=["active"])
        markets = []
        for raw in response.get("markets", []):
            market = parse_market(raw)
            if market is not None:
                markets.append(market)
        return markets

    async def fetch_order_book(self, market: Market) -> OrderBook:
        response = await self.client.fetch_spot_orderbook_v2(market_id=market.market_id)
        return parse_order_book(response, market)

    async def fetch_market_summary(self, market: Market) -> MarketSummary:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{self.chronos_url}/spot/market_summary",
                params={"marketId": market.market_id, "resolution": "24h"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return parse_market_summary(response.json())

    async def fetch_balances(self, address: str, tokens: Mapping[str, TokenMeta]) -> List[TokenBalance]:
        response = await self.client.fetch_bank_balances(address=address)
        return parse_bank_balances(response, tokens)


class InjectiveBroadcaster(OrderBroadcaster):
    """Signs with the caller's key and broadcasts once. Never retries."""

    def __init__(self, network_name: str = app_config.INJECTIVE_NETWORK):
        self.network = get_network(network_name)

    async def broadcast(self, message: SpotMarketOrderMessage, signing_key: str) -> dict:
        private_key = signing_key[2:] if signing_key.startswith("0x") else signing_key
        broadcaster = MsgBroadcasterWithPk.new_using_simulation(
            network=self.network,
            private_key=private_key,
        )
        return await broadcaster.broadcast([build_spot_market_order_msg(message)])
