"""
Telegram bot for the Injective trading assistant.
Private chat only. Turns commands into core calls and typed errors into replies.
"""
import logging
import re
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Awaitable, Callable, Optional

from telethon import TelegramClient, events
from telethon.sessions import StringSession

from .alert_monitor import AlertMonitor
from .config import config as app_config
from .database import DatabaseService
from .errors import (
    BroadcastFailed,
    MarketNotFound,
    TradingError,
    UpstreamUnavailable,
)
from .interfaces import Notifier
from .market_cache import MarketDataCache
from .market_details import MarketDetailsResolver
from .models import AlertCondition, OrderSide
from .order_submitter import OrderSubmitter, derive_subaccount_id
from .order_tracker import OrderTracker
from .portfolio import PortfolioService

logger = logging.getLogger(__name__)

# (user_id, wallet record) -> decrypted signing key
SigningKeyProvider = Callable[[str, dict], Awaitable[str]]

WALLET_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{3,30}$")

HELP_TEXT = (
    "<b>Commands</b>\n"
    "/markets - list tradable markets\n"
    "/price &lt;ticker&gt; - market details, e.g. /price INJ/USDT\n"
    "/minorder &lt;ticker&gt; - smallest order the market accepts\n"
    "/buy &lt;ticker&gt; &lt;quantity&gt; - market buy from your default wallet\n"
    "/sell &lt;ticker&gt; &lt;quantity&gt; - market sell from your default wallet\n"
    "/orders - orders placed from this chat\n"
    "/wallets - your wallets\n"
    "/importwallet &lt;name&gt; &lt;address&gt; &lt;encrypted key&gt; - store a wallet\n"
    "/setdefault &lt;name&gt; - wallet used for /buy and /sell\n"
    "/removewallet &lt;name&gt; - forget a wallet\n"
    "/portfolio - balances across your wallets\n"
    "/alert &lt;ticker&gt; &lt;above|below&gt; &lt;price&gt; - one-shot price alert\n"
    "/alerts - your active alerts\n"
    "/unalert &lt;ticker&gt; - remove your alerts on a ticker"
)


def describe_error(error: TradingError) -> str:
    """Human message for a typed core error."""
    if isinstance(error, MarketNotFound):
        return f"❌ Unknown market {error.ticker}. Use /markets to see what's available."
    if isinstance(error, UpstreamUnavailable):
        return "⚠️ Market data is temporarily unavailable. Please try again in a moment."
    if isinstance(error, BroadcastFailed):
        return (
            "⚠️ The order could not be confirmed. It may or may not have been placed - "
            "check your wallet activity before trying again."
        )
    return f"❌ {error.message}"


class TelegramBot(Notifier):
    def __init__(
        self,
        cache: MarketDataCache,
        resolver: MarketDetailsResolver,
        submitter: OrderSubmitter,
        alert_monitor: AlertMonitor,
        order_tracker: OrderTracker,
        db_service: DatabaseService,
        portfolio_service: PortfolioService,
        signing_key_provider: Optional[SigningKeyProvider] = None,
    ):
        self.cache = cache
        self.resolver = resolver
        self.submitter = submitter
        self.alert_monitor = alert_monitor
        self.order_tracker = order_tracker
        self.db = db_service
        self.portfolio_service = portfolio_service
        self.signing_key_provider = signing_key_provider
        # Use StringSession (in-memory) to avoid file-based session conflicts during deploys
        self.client = TelegramClient(
            StringSession(),
            app_config.TELEGRAM_API_ID,
            app_config.TELEGRAM_API_HASH
        )
        self.bot_username: Optional[str] = None

        self._register_handlers()

    def _register_handlers(self):
        """Register message handlers."""

        @self.client.on(events.NewMessage(incoming=True, func=lambda e: e.is_private))
        async def handle_private_message(event):
            """Handle all private messages."""
            await self._handle_message(event)

    def _format_decimal(self, value: Optional[Decimal], decimals: int = 6) -> str:
        if value is None:
            return "n/a"
        quant = Decimal(10) ** -decimals
        rounded = value.quantize(quant, rounding=ROUND_DOWN)
        formatted = format(rounded, 'f')
        return formatted.rstrip('0').rstrip('.') if '.' in formatted else formatted

    async def notify(self, user_id: str, text: str) -> None:
        """Deliver a message to a user's private chat."""
        await self.client.send_message(int(user_id), text)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def _handle_message(self, event):
        message_text = (event.raw_text or "").strip()
        if not message_text.startswith('/'):
            await event.reply("Send /help to see what I can do.")
            return
        try:
            await self._handle_command(event, str(event.sender_id), message_text)
        except TradingError as e:
            logger.warning(f"Command '{message_text}' from {event.sender_id} failed: {e}")
            await event.reply(describe_error(e))

    async def _handle_command(self, event, user_id: str, message_text: str):
        """Handle slash commands."""
        parts = message_text.split(maxsplit=1)
        command = parts[0].lower().split('@')[0]  # Handle /cmd@botname
        args = parts[1] if len(parts) > 1 else ""

        if command in ('/start', '/help'):
            await event.reply(HELP_TEXT, parse_mode='html')
        elif command == '/markets':
            await self._handle_markets(event)
        elif command == '/price':
            await self._handle_price(event, args)
        elif command == '/minorder':
            await self._handle_min_order(event, args)
        elif command == '/buy':
            await self._handle_trade(event, user_id, OrderSide.BUY, args)
        elif command == '/sell':
            await self._handle_trade(event, user_id, OrderSide.SELL, args)
        elif command == '/orders':
            await self._handle_orders(event, user_id)
        elif command == '/wallets':
            await self._handle_wallets(event, user_id)
        elif command == '/importwallet':
            await self._handle_import_wallet(event, user_id, args)
        elif command == '/setdefault':
            await self._handle_set_default(event, user_id, args)
        elif command == '/removewallet':
            await self._handle_remove_wallet(event, user_id, args)
        elif command == '/portfolio':
            await self._handle_portfolio(event, user_id)
        elif command == '/alert':
            await self._handle_alert(event, user_id, args)
        elif command == '/alerts':
            await self._handle_list_alerts(event, user_id)
        elif command == '/unalert':
            await self._handle_unalert(event, user_id, args)
        else:
            await event.reply("Unknown command. Send /help for the list.")

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def _handle_markets(self, event):
        tickers = self.cache.tickers()
        if not tickers:
            await event.reply("Market list is still loading, try again shortly.")
            return
        await event.reply("📈 <b>Markets</b>\n" + "\n".join(tickers), parse_mode='html')

    async def _handle_price(self, event, args: str):
        ticker = args.strip()
        if not ticker:
            await event.reply("Usage: /price <ticker>\n\nExample:\n/price INJ/USDT")
            return

        details = await self.resolver.resolve(ticker)
        message = (
            f"📊 <b>{details.ticker}</b>\n\n"
            f"<b>Price:</b> {self._format_decimal(details.price)}\n"
            f"<b>24h High/Low:</b> {self._format_decimal(details.high_price)} / {self._format_decimal(details.low_price)}\n"
            f"<b>Open:</b> {self._format_decimal(details.open_price)}\n"
            f"<b>Best Bid/Ask:</b> {self._format_decimal(details.best_bid_price)} / {self._format_decimal(details.best_ask_price)}\n"
            f"<b>Avg Buy/Sell (top 5):</b> {self._format_decimal(details.average_buy_price)} / {self._format_decimal(details.average_sell_price)}"
        )
        await event.reply(message, parse_mode='html')

    async def _handle_min_order(self, event, args: str):
        ticker = args.strip()
        if not ticker:
            await event.reply("Usage: /minorder <ticker>")
            return

        info = await self.resolver.get_minimum_order_amount(ticker)
        message = (
            f"<b>{info['market']}</b>\n"
            f"Min quantity tick: {self._format_decimal(info['min_quantity_tick_size'], 18)}\n"
            f"Min price tick: {self._format_decimal(info['min_price_tick_size'], 18)}\n"
            f"Min buy amount: {self._format_decimal(info['min_order_amount_to_buy'])}\n"
            f"Min sell amount: {self._format_decimal(info['min_order_amount_to_sell'])}"
        )
        await event.reply(message, parse_mode='html')

    # =========================================================================
    # TRADING
    # =========================================================================

    async def _handle_trade(self, event, user_id: str, side: OrderSide, args: str):
        parts = args.split()
        if len(parts) != 2:
            await event.reply(f"Usage: /{side.value} <ticker> <quantity>\n\nExample:\n/{side.value} INJ/USDT 1.5")
            return

        ticker = parts[0]
        try:
            quantity = Decimal(parts[1])
        except InvalidOperation:
            await event.reply("Invalid quantity value")
            return

        if not self.signing_key_provider:
            await event.reply("❌ Trading is not enabled on this bot.")
            return

        wallet = await self.db.get_default_wallet(user_id)
        if not wallet:
            await event.reply("❌ You don't have a default wallet yet.")
            return

        try:
            signing_key = await self.signing_key_provider(user_id, wallet)
        except TradingError:
            raise
        except Exception as e:
            logger.error(f"Signing key provider failed for {user_id}: {e}", exc_info=True)
            await event.reply("❌ Could not unlock your wallet. Please try again later.")
            return

        tx_hash = await self.submitter.submit(
            side,
            quantity,
            ticker,
            signing_key,
            wallet["address"],
            user_id=user_id,
        )
        await event.reply(
            f"✅ {side.value.upper()} {self._format_decimal(quantity)} {ticker} submitted\n"
            f"Tx: <code>{tx_hash}</code>",
            parse_mode='html'
        )

    async def _handle_orders(self, event, user_id: str):
        orders = await self.order_tracker.list_orders(user_id)
        if not orders:
            await event.reply("No orders placed yet.")
            return
        lines = [
            f"{o.side.value.upper()} {self._format_decimal(o.quantity)} {o.ticker} "
            f"@ ≤{self._format_decimal(o.worst_price)} - {o.status.value}"
            for o in orders
        ]
        await event.reply("\n".join(lines))

    # =========================================================================
    # WALLETS
    # =========================================================================

    async def _handle_wallets(self, event, user_id: str):
        wallets = await self.db.list_wallets(user_id)
        if not wallets:
            await event.reply("You don't have any wallets yet. Import one with /importwallet")
            return

        default = await self.db.get_default_wallet(user_id)
        default_name = default["name"] if default else None
        lines = ["👛 <b>Your wallets</b>"]
        for w in wallets:
            marker = " ⭐" if w["name"] == default_name else ""
            lines.append(f"• {w['name']}: <code>{w['address']}</code>{marker}")
        await event.reply("\n".join(lines), parse_mode='html')

    async def _handle_import_wallet(self, event, user_id: str, args: str):
        parts = args.split()
        if len(parts) != 3:
            await event.reply("Usage: /importwallet <name> <address> <encrypted key>")
            return

        name, address, encrypted_key = parts
        if not WALLET_NAME_PATTERN.match(name):
            await event.reply("Wallet name must be 3-30 letters, digits, '_' or '-'")
            return

        # InvalidOrder on a malformed address
        derive_subaccount_id(address)

        if not await self.db.add_wallet(user_id, name, address, encrypted_key):
            await event.reply(f"❌ A wallet named {name} already exists")
            return
        logger.info(f"User {user_id} imported wallet {name}")
        await event.reply(f"✅ Wallet {name} imported")

    async def _handle_set_default(self, event, user_id: str, args: str):
        name = args.strip()
        if not name:
            await event.reply("Usage: /setdefault <name>")
            return
        if await self.db.set_default_wallet(user_id, name):
            await event.reply(f"✅ {name} is now your default wallet")
        else:
            await event.reply(f"❌ No wallet named {name}")

    async def _handle_remove_wallet(self, event, user_id: str, args: str):
        name = args.strip()
        if not name:
            await event.reply("Usage: /removewallet <name>")
            return
        if await self.db.remove_wallet(user_id, name):
            await event.reply(f"Removed wallet {name}")
        else:
            await event.reply(f"❌ No wallet named {name}")

    async def _handle_portfolio(self, event, user_id: str):
        wallets = await self.db.list_wallets(user_id)
        if not wallets:
            await event.reply("You don't have any wallets yet. Import one with /importwallet")
            return

        portfolio = await self.portfolio_service.get_portfolio(wallets)
        message = "📊 Your Portfolio:\n\n"
        for wallet in portfolio.wallets:
            address = wallet.address
            message += f"{wallet.name} ({address[:8]}...{address[-4:]})\n"
            if not wallet.balances:
                message += "   (empty)\n"
            for balance in wallet.balances:
                message += f"   • {balance.symbol}: {self._format_decimal(balance.amount, 4)}\n"
            message += "\n"

        if portfolio.totals:
            message += "💰 Total Portfolio:\n"
            for symbol, amount in sorted(portfolio.totals.items()):
                message += f"   • {symbol}: {self._format_decimal(amount, 4)}\n"
        await event.reply(message.rstrip())

    # =========================================================================
    # ALERTS
    # =========================================================================

    async def _handle_alert(self, event, user_id: str, args: str):
        parts = args.split()
        if len(parts) != 3:
            await event.reply(
                "Usage: /alert <ticker> <above|below> <price>\n"
                "Example: /alert INJ/USDT above 100"
            )
            return

        ticker, condition, price = parts[0], parts[1].lower(), parts[2]
        if condition not in (AlertCondition.ABOVE.value, AlertCondition.BELOW.value):
            await event.reply("Condition must be either 'above' or 'below'")
            return

        try:
            target_price = Decimal(price)
        except InvalidOperation:
            await event.reply("Invalid price value")
            return
        if not target_price.is_finite() or target_price <= 0:
            await event.reply("Invalid price value")
            return

        self.cache.lookup(ticker)

        await self.alert_monitor.add(user_id, ticker, target_price, condition)
        await event.reply(f"Alert set for {ticker} when price goes {condition} {price}")

    async def _handle_list_alerts(self, event, user_id: str):
        alerts = await self.alert_monitor.list_alerts(user_id)
        if not alerts:
            await event.reply("You have no active alerts.")
            return
        lines = [f"🔔 {a.ticker} {a.condition.value} {a.target_price}" for a in alerts]
        await event.reply("\n".join(lines))

    async def _handle_unalert(self, event, user_id: str, args: str):
        ticker = args.strip()
        if not ticker:
            await event.reply("Usage: /unalert <ticker>")
            return
        removed = await self.alert_monitor.remove(user_id, ticker)
        if removed:
            await event.reply(f"Removed {removed} alert(s) for {ticker}")
        else:
            await event.reply(f"No alerts found for {ticker}")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self):
        """Start the Telegram bot."""
        await self.client.start(bot_token=app_config.TELEGRAM_BOT_TOKEN)

        me = await self.client.get_me()
        self.bot_username = me.username
        logger.info(f"Telegram bot started as @{self.bot_username}")

        # Keep running
        await self.client.run_until_disconnected()

    async def stop(self):
        """Stop the Telegram bot."""
        await self.client.disconnect()
        logger.info("Telegram bot stopped")
