"""
Wallet balances and the aggregated portfolio across a user's wallets.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Dict, List

from pydantic import BaseModel, Field

from .errors import UpstreamUnavailable
from .interfaces import BalanceSource
from .market_cache import MarketDataCache
from .models import TokenBalance

logger = logging.getLogger(__name__)


class WalletBalances(BaseModel):
    name: str
    address: str
    balances: List[TokenBalance] = Field(default_factory=list)


class Portfolio(BaseModel):
    wallets: List[WalletBalances] = Field(default_factory=list)
    totals: Dict[str, Decimal] = Field(default_factory=dict)


class PortfolioService:
    def __init__(self, cache: MarketDataCache, source: BalanceSource):
        self.cache = cache
        self.source = source

    async def get_balances(self, address: str) -> List[TokenBalance]:
        """
        Non-zero bank balances of one address.

        Raises:
            UpstreamUnavailable: the bank query failed
        """
        try:
            return await self.source.fetch_balances(address, self.cache.tokens())
        except Exception as e:
            logger.error(f"Failed to fetch balances for {address}: {e}")
            raise UpstreamUnavailable(address, str(e)) from e

    async def get_portfolio(self, wallets: List[dict]) -> Portfolio:
        """
        Balances of every wallet plus per-symbol totals.

        Args:
            wallets: name/address records as returned by DatabaseService.list_wallets
        """
        results = await asyncio.gather(*(self.get_balances(w["address"]) for w in wallets))

        portfolio = Portfolio()
        for wallet, balances in zip(wallets, results):
            portfolio.wallets.append(
                WalletBalances(name=wallet["name"], address=wallet["address"], balances=balances)
            )
            for balance in balances:
                portfolio.totals[balance.symbol] = (
                    portfolio.totals.get(balance.symbol, Decimal("0")) + balance.amount
                )
        return portfolio
