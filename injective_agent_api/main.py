import asyncio
import importlib
import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Optional

from fastapi import FastAPI

from .alert_monitor import AlertMonitor
from .config import config as app_config
from .database import DatabaseService
from .injective_client import InjectiveBroadcaster, InjectiveMarketDataSource
from .market_cache import MarketDataCache
from .market_details import MarketDetailsResolver
from .order_submitter import OrderSubmitter
from .order_tracker import OrderTracker
from .portfolio import PortfolioService
from .pricing import OrderPricingPolicy
from .telegram_bot import SigningKeyProvider, TelegramBot

# Initialize logging
logging.basicConfig(level=getattr(logging, app_config.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

# Initialize database service
db_service = DatabaseService(app_config.MONGO_URL, app_config.MONGO_DB)

# Core services (background loops are started in lifespan)
market_source = InjectiveMarketDataSource()
market_cache = MarketDataCache(
    market_source,
    refresh_interval_seconds=app_config.MARKET_REFRESH_INTERVAL_SECONDS,
    snapshot_path=app_config.MARKET_SNAPSHOT_PATH,
)
resolver = MarketDetailsResolver(market_cache, market_source)
order_tracker = OrderTracker()
submitter = OrderSubmitter(
    resolver,
    InjectiveBroadcaster(),
    pricing_policy=OrderPricingPolicy(Decimal(app_config.SLIPPAGE_BUFFER)),
    fee_recipient=app_config.FEE_RECIPIENT,
    order_tracker=order_tracker,
)
alert_monitor = AlertMonitor(resolver, interval_seconds=app_config.ALERT_INTERVAL_SECONDS)
portfolio_service = PortfolioService(market_cache, market_source)


def load_signing_key_provider(path: Optional[str]) -> Optional[SigningKeyProvider]:
    """Import a "module:function" signing key provider. None when unset."""
    if not path:
        return None
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"SIGNING_KEY_PROVIDER must look like 'module:function', got {path!r}")
    return getattr(importlib.import_module(module_name), attr)


# Initialize Telegram bot (will be started in lifespan)
telegram_bot: TelegramBot = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    global telegram_bot

    # Startup
    logger.info("Starting up...")

    await db_service.setup_indexes()

    market_cache.load_snapshot()
    await market_cache.start()

    signing_key_provider = load_signing_key_provider(app_config.SIGNING_KEY_PROVIDER)
    if signing_key_provider is None:
        logger.warning("SIGNING_KEY_PROVIDER is not set, /buy and /sell are disabled")

    telegram_bot = TelegramBot(
        market_cache,
        resolver,
        submitter,
        alert_monitor,
        order_tracker,
        db_service,
        portfolio_service,
        signing_key_provider=signing_key_provider,
    )
    alert_monitor.set_notifier(telegram_bot)
    order_tracker.set_notifier(telegram_bot)
    asyncio.create_task(telegram_bot.start())
    logger.info("Telegram bot started")

    await alert_monitor.start()

    yield

    # Shutdown
    logger.info("Shutting down...")
    await alert_monitor.stop()
    await market_cache.stop()
    if telegram_bot:
        await telegram_bot.stop()


app = FastAPI(lifespan=lifespan)


# Health check endpoint
@app.get("/health")
async def health_check():
    last_refresh = market_cache.last_refreshed_at
    return {
        "status": "healthy" if market_cache.is_loaded else "degraded",
        "markets": len(market_cache.tickers()),
        "last_market_refresh": last_refresh.isoformat() if last_refresh else None,
        "active_alerts": await alert_monitor.active_count(),
    }
