"""
Market order submission: resolve -> price -> quantize -> sign and broadcast.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

import bech32

from .errors import BroadcastFailed, InvalidOrder, TradingError
from .interfaces import OrderBroadcaster
from .market_details import MarketDetailsResolver
from .models import SUBACCOUNT_INDEX_WIDTH, OrderSide, SpotMarketOrderMessage
from .order_tracker import OrderTracker
from .pricing import OrderPricingPolicy
from .quantizer import to_chain_price, to_chain_quantity

logger = logging.getLogger(__name__)


def derive_subaccount_id(address: str, index: int = 0) -> str:
    """
    Subaccount id for a bech32 account address.

    The 20-byte account as 0x-hex, followed by the index as 24 hex chars.
    """
    hrp, data = bech32.bech32_decode(address)
    if hrp is None or data is None:
        raise InvalidOrder(f"Invalid bech32 address: {address}")
    raw = bech32.convertbits(data, 5, 8, False)
    if raw is None or len(raw) != 20:
        raise InvalidOrder(f"Address does not decode to a 20-byte account: {address}")
    if index < 0:
        raise InvalidOrder(f"Subaccount index must be non-negative, got {index}")
    return "0x" + bytes(raw).hex() + format(index, f"0{SUBACCOUNT_INDEX_WIDTH}x")


def extract_tx_hash(response) -> Optional[str]:
    """Pull the tx hash out of a broadcast response, or None if it was rejected."""
    if isinstance(response, str):
        return response or None
    if not isinstance(response, dict):
        return None
    tx_response = response.get("txResponse") or response.get("tx_response") or response
    if int(tx_response.get("code", 0) or 0) != 0:
        return None
    return tx_response.get("txhash") or tx_response.get("txHash")


class OrderSubmitter:
    def __init__(
        self,
        resolver: MarketDetailsResolver,
        broadcaster: OrderBroadcaster,
        pricing_policy: Optional[OrderPricingPolicy] = None,
        fee_recipient: Optional[str] = None,
        order_tracker: Optional[OrderTracker] = None,
    ):
        self.resolver = resolver
        self.broadcaster = broadcaster
        self.pricing_policy = pricing_policy or OrderPricingPolicy()
        self.fee_recipient = fee_recipient
        self.order_tracker = order_tracker

    async def prepare_order(
        self,
        side: OrderSide,
        quantity: Decimal,
        ticker: str,
        sender_address: str,
    ) -> Tuple[SpotMarketOrderMessage, Decimal]:
        """Resolve, price and quantize. Returns the unsigned message and its worst price."""
        subaccount_id = derive_subaccount_id(sender_address, 0)
        details = await self.resolver.resolve(ticker)
        worst_price = self.pricing_policy.compute_worst_price(side, details)

        chain_price = to_chain_price(
            worst_price,
            details.min_price_tick_size,
            details.base_decimals,
            details.quote_decimals,
        )
        chain_quantity = to_chain_quantity(
            quantity,
            details.min_quantity_tick_size,
            details.base_decimals,
        )
        if int(chain_quantity) == 0:
            raise InvalidOrder(
                f"Quantity {quantity} is below the minimum tick {details.min_quantity_tick_size} for {ticker}"
            )

        message = SpotMarketOrderMessage(
            sender=sender_address,
            subaccount_id=subaccount_id,
            market_id=details.market_id,
            fee_recipient=self.fee_recipient or sender_address,
            order_type=side.chain_order_type,
            price=chain_price,
            quantity=chain_quantity,
        )
        return message, worst_price

    async def submit(
        self,
        side: OrderSide,
        quantity,
        ticker: str,
        signing_key: str,
        sender_address: str,
        user_id: Optional[str] = None,
    ) -> str:
        """
        Place a market order and return its transaction hash.

        Raises:
            InvalidOrder: bad side, quantity or sender address
            MarketUnavailable: MarketNotFound / UpstreamUnavailable or no usable price
            QuantizationError: price or quantity cannot be expressed on chain
            BroadcastFailed: outcome unknown; check tx status before retrying
        """
        try:
            side = OrderSide(side)
        except ValueError:
            raise InvalidOrder(f"Invalid order side: {side!r}")
        try:
            quantity = Decimal(str(quantity))
        except InvalidOperation:
            raise InvalidOrder(f"Invalid quantity: {quantity!r}")
        if not quantity.is_finite() or quantity <= 0:
            raise InvalidOrder(f"Quantity must be positive, got {quantity}")

        message, worst_price = await self.prepare_order(side, quantity, ticker, sender_address)
        logger.info(
            f"Broadcasting {side.value} order on {ticker}: quantity={message.quantity} "
            f"price={message.price} subaccount={message.subaccount_id}"
        )

        try:
            response = await self.broadcaster.broadcast(message, signing_key)
        except TradingError:
            raise
        except Exception as e:
            logger.error(f"Error placing order on {ticker}: {e}")
            raise BroadcastFailed(ticker, str(e)) from e

        tx_hash = extract_tx_hash(response)
        if not tx_hash:
            logger.error(f"Broadcast for {ticker} returned no tx hash: {response}")
            raise BroadcastFailed(ticker, f"no transaction hash in response: {response}")

        logger.info(f"Order placed successfully on {ticker}: {tx_hash}")

        if self.order_tracker and user_id:
            await self.order_tracker.track(
                user_id=user_id,
                order_id=tx_hash,
                ticker=ticker,
                side=side,
                quantity=quantity,
                worst_price=worst_price,
            )

        return tx_hash

