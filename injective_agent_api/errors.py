"""Typed errors raised by the pricing, execution and alert core.

Error code ranges:
  1xxx: Market data
  2xxx: Quantization
  3xxx: Order submission
"""
from typing import Optional


class TradingError(Exception):
    """Base error for the trading core."""

    retryable = False

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


# --- 1xxx: Market data ---

class MarketUnavailable(TradingError):
    """Market details could not be produced for a ticker."""

    def __init__(self, ticker: str, message: Optional[str] = None, code: int = 1000) -> None:
        self.ticker = ticker
        super().__init__(code, message or f"Market unavailable: {ticker}")


class MarketNotFound(MarketUnavailable):
    def __init__(self, ticker: str) -> None:
        super().__init__(ticker, f"Market not found for ticker: {ticker}", code=1001)


class UpstreamUnavailable(MarketUnavailable):
    """Transient failure fetching from the chain indexer. Safe to retry after backoff."""

    retryable = True

    def __init__(self, ticker: str, reason: str = "") -> None:
        message = f"Upstream data unavailable for {ticker}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(ticker, message, code=1002)


# --- 2xxx: Quantization ---

class QuantizationError(TradingError):
    def __init__(self, message: str, code: int = 2000) -> None:
        super().__init__(code, message)


class InvalidTick(QuantizationError):
    def __init__(self, tick_size) -> None:
        self.tick_size = tick_size
        super().__init__(f"Tick size must be positive, got {tick_size}", code=2001)


# --- 3xxx: Order submission ---

class InvalidOrder(TradingError):
    def __init__(self, message: str) -> None:
        super().__init__(3001, message)


class BroadcastFailed(TradingError):
    """
    Broadcasting the signed order failed.

    The on-chain outcome is unknown: the transaction may or may not have
    landed. Check the transaction status before resubmitting the same intent.
    """

    outcome_unknown = True

    def __init__(self, ticker: str, reason: str) -> None:
        self.ticker = ticker
        super().__init__(3002, f"Broadcast failed for {ticker}: {reason}")
