"""
Price alert monitoring.

Alerts are one-shot: Active -> triggered (user notified) -> removed. They
live in memory only and are lost on restart.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from .interfaces import Notifier
from .market_details import MarketDetailsResolver
from .models import AlertCondition, PriceAlert

logger = logging.getLogger(__name__)


def format_alert_message(alert: PriceAlert, current_price: Decimal) -> str:
    return (
        f"🚨 Price Alert: {alert.ticker}\n"
        f"Target: {alert.condition.value} {alert.target_price}\n"
        f"Current Price: {current_price:.4f}"
    )


class AlertMonitor:
    def __init__(
        self,
        resolver: MarketDetailsResolver,
        notifier: Optional[Notifier] = None,
        interval_seconds: int = 60,
    ):
        self.resolver = resolver
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self._alerts: Dict[str, List[PriceAlert]] = {}
        self._lock = asyncio.Lock()
        self._running = False
        self._task: Optional[asyncio.Task] = None

    def set_notifier(self, notifier: Notifier):
        """Set notifier after initialization."""
        self.notifier = notifier

    # =========================================================================
    # REGISTRY
    # =========================================================================

    async def add(
        self,
        user_id: str,
        ticker: str,
        target_price,
        condition,
    ) -> PriceAlert:
        alert = PriceAlert(
            user_id=str(user_id),
            ticker=ticker,
            target_price=Decimal(str(target_price)),
            condition=AlertCondition(condition),
        )
        async with self._lock:
            self._alerts.setdefault(alert.user_id, []).append(alert)
        logger.info(f"Alert {alert.alert_id} set for {user_id}: {ticker} {alert.condition.value} {alert.target_price}")
        return alert

    async def remove(self, user_id: str, ticker: str) -> int:
        """Drop all of a user's alerts on a ticker. Returns how many were removed."""
        user_id = str(user_id)
        async with self._lock:
            alerts = self._alerts.get(user_id, [])
            kept = [a for a in alerts if a.ticker != ticker]
            removed = len(alerts) - len(kept)
            if kept:
                self._alerts[user_id] = kept
            else:
                self._alerts.pop(user_id, None)
        return removed

    async def list_alerts(self, user_id: str) -> List[PriceAlert]:
        async with self._lock:
            return [a for a in self._alerts.get(str(user_id), []) if a.active]

    async def active_count(self) -> int:
        async with self._lock:
            return sum(1 for alerts in self._alerts.values() for a in alerts if a.active)

    async def _retire(self, alert: PriceAlert) -> bool:
        """Remove a triggered alert. False if it was already removed by its owner."""
        async with self._lock:
            alerts = self._alerts.get(alert.user_id, [])
            kept = [a for a in alerts if a.alert_id != alert.alert_id]
            if len(kept) == len(alerts):
                return False
            if kept:
                self._alerts[alert.user_id] = kept
            else:
                self._alerts.pop(alert.user_id, None)
            return True

    # =========================================================================
    # EVALUATION
    # =========================================================================

    async def evaluate_all(self) -> List[PriceAlert]:
        """
        Check every active alert once.

        A failure resolving one alert's market is logged and skipped.

        Returns:
            Alerts that triggered on this tick
        """
        async with self._lock:
            pending = [a for alerts in self._alerts.values() for a in alerts if a.active]

        if not pending:
            return []

        triggered = []
        for alert in pending:
            try:
                details = await self.resolver.resolve(alert.ticker)
            except Exception as e:
                logger.error(f"Error checking alert {alert.alert_id} for {alert.ticker}: {e}")
                continue

            current_price = details.price
            if not alert.is_triggered_by(current_price):
                continue

            if not await self._retire(alert):
                logger.info(f"Alert {alert.alert_id} was removed before it fired")
                continue
            alert.active = False
            triggered.append(alert)
            await self._send(alert, current_price)

        return triggered

    async def _send(self, alert: PriceAlert, current_price: Decimal):
        if not self.notifier:
            logger.warning(f"No notifier set; alert {alert.alert_id} for {alert.user_id} dropped")
            return
        try:
            await self.notifier.notify(alert.user_id, format_alert_message(alert, current_price))
            logger.info(f"Sent price alert to {alert.user_id}: {alert.ticker} at {current_price}")
        except Exception as e:
            logger.error(f"Error sending price alert to user {alert.user_id}: {e}")

    # =========================================================================
    # BACKGROUND LOOP
    # =========================================================================

    async def start(self):
        if self._running:
            logger.warning("Alert monitor already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Alert monitor started (interval: {self.interval_seconds}s)")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Alert monitor stopped")

    async def _run_loop(self):
        while self._running:
            try:
                await self.evaluate_all()
            except Exception as e:
                logger.error(f"Alert evaluation error: {e}", exc_info=True)

            await asyncio.sleep(self.interval_seconds)
