"""
Collaborator interfaces consumed by the trading core.

Concrete Injective implementations live in injective_client; the Telegram
bot implements Notifier.
"""
from abc import ABC, abstractmethod
from typing import List, Mapping

from .models import Market, MarketSummary, OrderBook, SpotMarketOrderMessage, TokenBalance, TokenMeta


class MarketDataSource(ABC):
    @abstractmethod
    async def fetch_markets(self) -> List[Market]:
        pass

    @abstractmethod
    async def fetch_market_summary(self, market: Market) -> MarketSummary:
        pass

    @abstractmethod
    async def fetch_order_book(self, market: Market) -> OrderBook:
        pass


class BalanceSource(ABC):
    @abstractmethod
    async def fetch_balances(self, address: str, tokens: Mapping[str, TokenMeta]) -> List[TokenBalance]:
        """Bank balances of an account, scaled by `tokens` where the denom is known."""
        pass


class OrderBroadcaster(ABC):
    @abstractmethod
    async def broadcast(self, message: SpotMarketOrderMessage, signing_key: str) -> dict:
        """Sign and broadcast once. Returns the raw response containing the tx hash."""
        pass


class Notifier(ABC):
    @abstractmethod
    async def notify(self, user_id: str, text: str) -> None:
        pass
