"""
Worst-acceptable price for market orders.

The exchange requires a price bound even for market orders. The bound is
the best visible price on the opposite side plus a slippage buffer, falling
back to the top-of-book average and then the last traded price.
"""
import logging
from decimal import Decimal
from typing import Optional

from .errors import MarketUnavailable
from .models import SLIPPAGE_BUFFER, MarketDetails, OrderIntent, OrderSide, PricedOrder
from .quantizer import ceil_to_tick

logger = logging.getLogger(__name__)


class OrderPricingPolicy:
    def __init__(self, slippage_buffer: Decimal = SLIPPAGE_BUFFER):
        if not (Decimal("0") <= slippage_buffer < Decimal("1")):
            raise ValueError(f"slippage_buffer must be in [0, 1), got {slippage_buffer}")
        self.slippage_buffer = slippage_buffer

    def _reference_price(self, side: OrderSide, details: MarketDetails) -> Optional[Decimal]:
        if side is OrderSide.BUY:
            candidates = (details.best_ask_price, details.average_sell_price, details.price)
        else:
            candidates = (details.best_bid_price, details.average_buy_price, details.price)
        for candidate in candidates:
            if candidate is not None and candidate > 0:
                return candidate
        return None

    def compute_worst_price(self, side: OrderSide, details: MarketDetails) -> Decimal:
        """
        Worst price for a market order, rounded up to the price tick.

        Both sides round up, so a sell bound can sit up to one tick above
        bid * (1 - buffer).
        """
        reference = self._reference_price(side, details)
        if reference is None:
            raise MarketUnavailable(details.ticker, f"No usable price for {details.ticker}")

        if side is OrderSide.BUY:
            worst = reference * (Decimal("1") + self.slippage_buffer)
        else:
            worst = reference * (Decimal("1") - self.slippage_buffer)

        worst = ceil_to_tick(worst, details.min_price_tick_size)
        logger.info(
            f"Worst price for {side.value} {details.ticker}: {worst} "
            f"(reference {reference}, last {details.price})"
        )
        return worst

    def price_order(self, intent: OrderIntent, details: MarketDetails) -> PricedOrder:
        return PricedOrder(intent=intent, worst_price=self.compute_worst_price(intent.side, details))
