"""
In-memory cache of tradable spot markets, refreshed on a fixed interval.

Readers always see a complete snapshot: a refresh builds a new mapping and
swaps the reference, it never mutates the mapping readers hold.
"""
import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from .errors import MarketNotFound, UpstreamUnavailable
from .interfaces import MarketDataSource
from .models import Market, TokenMeta

logger = logging.getLogger(__name__)


class MarketDataCache:
    def __init__(
        self,
        source: MarketDataSource,
        refresh_interval_seconds: int = 300,  # 5 minutes default
        snapshot_path: Optional[str] = None,
    ):
        self.source = source
        self.refresh_interval_seconds = refresh_interval_seconds
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        self._markets: Mapping[str, Market] = MappingProxyType({})
        self._last_refreshed_at: Optional[datetime] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_loaded(self) -> bool:
        return len(self._markets) > 0

    @property
    def last_refreshed_at(self) -> Optional[datetime]:
        return self._last_refreshed_at

    def get(self, ticker: str) -> Optional[Market]:
        return self._markets.get(ticker)

    def lookup(self, ticker: str) -> Market:
        """Return the cached market for a ticker or raise MarketNotFound."""
        market = self._markets.get(ticker)
        if market is None:
            raise MarketNotFound(ticker)
        return market

    def tickers(self) -> List[str]:
        return sorted(self._markets)

    def markets(self) -> List[Market]:
        return list(self._markets.values())

    def tokens(self) -> Dict[str, TokenMeta]:
        """Denom metadata for every base and quote token of the cached markets."""
        tokens = {}
        for market in self._markets.values():
            for denom, symbol, decimals in (
                (market.base_denom, market.base_symbol, market.base_decimals),
                (market.quote_denom, market.quote_symbol, market.quote_decimals),
            ):
                if denom and denom not in tokens:
                    tokens[denom] = TokenMeta(denom=denom, symbol=symbol, decimals=decimals)
        return tokens

    def _replace(self, markets: List[Market]):
        self._markets = MappingProxyType({m.ticker: m for m in markets})
        self._last_refreshed_at = datetime.utcnow()

    async def refresh(self) -> int:
        """
        Fetch the full market list and replace the cache.

        On failure the previous snapshot is kept and UpstreamUnavailable is raised.

        Returns:
            Number of markets now cached
        """
        try:
            markets = await self.source.fetch_markets()
        except Exception as e:
            logger.error(f"Market list refresh failed, keeping {len(self._markets)} cached markets: {e}")
            raise UpstreamUnavailable("*", str(e)) from e

        self._replace(markets)
        logger.info(f"Market data updated: {len(markets)} markets")

        if self.snapshot_path:
            try:
                self._write_snapshot(markets)
            except OSError as e:
                logger.warning(f"Could not write market snapshot to {self.snapshot_path}: {e}")

        return len(markets)

    # =========================================================================
    # SNAPSHOT FILE
    # =========================================================================

    def _write_snapshot(self, markets: List[Market]):
        data = [m.model_dump(mode="json") for m in markets]
        tmp_path = self.snapshot_path.with_suffix(self.snapshot_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2))
        tmp_path.replace(self.snapshot_path)

    def load_snapshot(self) -> int:
        """Warm-start from the snapshot file. Returns the number of markets loaded."""
        if not self.snapshot_path or not self.snapshot_path.exists():
            return 0
        try:
            data = json.loads(self.snapshot_path.read_text())
            markets = [Market.model_validate(item) for item in data]
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable market snapshot {self.snapshot_path}: {e}")
            return 0

        self._replace(markets)
        logger.info(f"Loaded {len(markets)} markets from snapshot")
        return len(markets)

    # =========================================================================
    # BACKGROUND REFRESH
    # =========================================================================

    async def start(self):
        """Refresh once, then keep refreshing in the background."""
        if self._running:
            logger.warning("Market cache refresher already running")
            return

        try:
            await self.refresh()
        except UpstreamUnavailable:
            logger.warning("Initial market refresh failed; continuing with cached data")

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Market cache refresher started (interval: {self.refresh_interval_seconds}s)")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Market cache refresher stopped")

    async def _run_loop(self):
        while self._running:
            await asyncio.sleep(self.refresh_interval_seconds)
            try:
                await self.refresh()
            except UpstreamUnavailable:
                # Already logged; the previous snapshot stays in place
                continue
            except Exception as e:
                logger.error(f"Market refresh error: {e}", exc_info=True)
