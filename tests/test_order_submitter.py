"""
Tests for market order submission.

Critical: these cover what actually gets signed and sent on chain.
"""
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock

from injective_agent_api.errors import (
    BroadcastFailed,
    InvalidOrder,
    MarketNotFound,
    UpstreamUnavailable,
)
from injective_agent_api.models import OrderSide, OrderStatus
from injective_agent_api.order_submitter import (
    OrderSubmitter,
    derive_subaccount_id,
    extract_tx_hash,
)
from injective_agent_api.order_tracker import OrderTracker

from conftest import ACCOUNT_BYTES, FakeBroadcaster, make_inj_address

SIGNING_KEY = "0x" + "11" * 32


class TestSubaccountId:
    def test_default_subaccount(self, inj_address):
        subaccount = derive_subaccount_id(inj_address)
        assert subaccount == "0x" + ACCOUNT_BYTES.hex() + "0" * 24
        assert len(subaccount) == 2 + 40 + 24

    def test_indexed_subaccount(self, inj_address):
        assert derive_subaccount_id(inj_address, 1).endswith("0" * 23 + "1")

    def test_invalid_address(self):
        with pytest.raises(InvalidOrder):
            derive_subaccount_id("not-an-address")

    def test_wrong_length_account(self):
        with pytest.raises(InvalidOrder):
            derive_subaccount_id(make_inj_address(bytes(32)))


class TestExtractTxHash:
    def test_tx_response_dict(self):
        assert extract_tx_hash({"txResponse": {"code": 0, "txhash": "ABC"}}) == "ABC"

    def test_snake_case_response(self):
        assert extract_tx_hash({"tx_response": {"txHash": "DEF"}}) == "DEF"

    def test_rejected_tx(self):
        assert extract_tx_hash({"txResponse": {"code": 5, "txhash": "ABC"}}) is None

    def test_plain_string(self):
        assert extract_tx_hash("XYZ") == "XYZ"

    def test_unrecognised(self):
        assert extract_tx_hash(None) is None


class TestPrepareOrder:
    """The unsigned message in chain units."""

    @pytest.mark.asyncio
    async def test_buy_message_fields(self, resolver, inj_address, sample_market):
        submitter = OrderSubmitter(resolver, FakeBroadcaster())

        message, worst_price = await submitter.prepare_order(
            OrderSide.BUY, Decimal("1.5"), "INJ/USDT", inj_address
        )

        assert worst_price == Decimal("30.6")
        assert message.sender == inj_address
        assert message.market_id == sample_market.market_id
        assert message.subaccount_id == derive_subaccount_id(inj_address)
        assert message.fee_recipient == inj_address
        assert message.order_type == 1
        assert message.price == "30600000"
        assert message.quantity == "15" + "0" * 35

    @pytest.mark.asyncio
    async def test_sell_order_type(self, resolver, inj_address):
        submitter = OrderSubmitter(resolver, FakeBroadcaster())

        message, worst_price = await submitter.prepare_order(
            OrderSide.SELL, Decimal("2"), "INJ/USDT", inj_address
        )

        # 29.9 * 0.98 = 29.302
        assert worst_price == Decimal("29.302")
        assert message.order_type == 2
        assert message.price == "29302000"

    @pytest.mark.asyncio
    async def test_configured_fee_recipient(self, resolver, inj_address):
        fee_recipient = make_inj_address(bytes(20))
        submitter = OrderSubmitter(resolver, FakeBroadcaster(), fee_recipient=fee_recipient)

        message, _ = await submitter.prepare_order(OrderSide.BUY, Decimal("1"), "INJ/USDT", inj_address)

        assert message.fee_recipient == fee_recipient

    @pytest.mark.asyncio
    async def test_quantity_rounding_to_zero_rejected(self, resolver, inj_address):
        submitter = OrderSubmitter(resolver, FakeBroadcaster())

        with pytest.raises(InvalidOrder):
            await submitter.prepare_order(OrderSide.BUY, Decimal("0.0001"), "INJ/USDT", inj_address)


class TestSubmit:
    @pytest.mark.asyncio
    async def test_returns_tx_hash(self, resolver, inj_address):
        broadcaster = FakeBroadcaster()
        submitter = OrderSubmitter(resolver, broadcaster)

        tx_hash = await submitter.submit(OrderSide.BUY, Decimal("1.5"), "INJ/USDT", SIGNING_KEY, inj_address)

        assert tx_hash == "ABC123"
        assert len(broadcaster.calls) == 1
        message, key = broadcaster.calls[0]
        assert key == SIGNING_KEY
        assert message.quantity == "15" + "0" * 35

    @pytest.mark.asyncio
    async def test_accepts_string_side_and_quantity(self, resolver, inj_address):
        broadcaster = FakeBroadcaster()
        submitter = OrderSubmitter(resolver, broadcaster)

        await submitter.submit("sell", "2", "INJ/USDT", SIGNING_KEY, inj_address)

        assert broadcaster.calls[0][0].order_type == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", ["0", "-1", "abc", "NaN"])
    async def test_invalid_quantity_never_broadcasts(self, resolver, inj_address, quantity):
        broadcaster = FakeBroadcaster()
        submitter = OrderSubmitter(resolver, broadcaster)

        with pytest.raises(InvalidOrder):
            await submitter.submit(OrderSide.BUY, quantity, "INJ/USDT", SIGNING_KEY, inj_address)

        assert broadcaster.calls == []

    @pytest.mark.asyncio
    async def test_unknown_market_never_broadcasts(self, resolver, inj_address):
        broadcaster = FakeBroadcaster()
        submitter = OrderSubmitter(resolver, broadcaster)

        with pytest.raises(MarketNotFound):
            await submitter.submit(OrderSide.BUY, Decimal("1"), "FOO/BAR", SIGNING_KEY, inj_address)

        assert broadcaster.calls == []

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates(self, resolver, fake_source, inj_address):
        fake_source.fail = True
        broadcaster = FakeBroadcaster()
        submitter = OrderSubmitter(resolver, broadcaster)

        with pytest.raises(UpstreamUnavailable):
            await submitter.submit(OrderSide.BUY, Decimal("1"), "INJ/USDT", SIGNING_KEY, inj_address)

        assert broadcaster.calls == []

    @pytest.mark.asyncio
    async def test_broadcast_exception_wrapped(self, resolver, inj_address):
        submitter = OrderSubmitter(resolver, FakeBroadcaster(error=TimeoutError("node timed out")))

        with pytest.raises(BroadcastFailed) as exc_info:
            await submitter.submit(OrderSide.BUY, Decimal("1"), "INJ/USDT", SIGNING_KEY, inj_address)

        assert exc_info.value.outcome_unknown
        assert "node timed out" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, TimeoutError)

    @pytest.mark.asyncio
    async def test_rejected_tx_is_broadcast_failure(self, resolver, inj_address):
        response = {"txResponse": {"code": 11, "rawLog": "out of gas"}}
        submitter = OrderSubmitter(resolver, FakeBroadcaster(response=response))

        with pytest.raises(BroadcastFailed):
            await submitter.submit(OrderSide.BUY, Decimal("1"), "INJ/USDT", SIGNING_KEY, inj_address)

    @pytest.mark.asyncio
    async def test_successful_order_is_tracked(self, resolver, inj_address):
        tracker = OrderTracker()
        submitter = OrderSubmitter(resolver, FakeBroadcaster(), order_tracker=tracker)

        await submitter.submit(
            OrderSide.BUY, Decimal("1.5"), "INJ/USDT", SIGNING_KEY, inj_address, user_id="42"
        )

        orders = await tracker.list_orders("42")
        assert len(orders) == 1
        assert orders[0].order_id == "ABC123"
        assert orders[0].worst_price == Decimal("30.6")
        assert orders[0].status is OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_failed_order_is_not_tracked(self, resolver, inj_address):
        tracker = OrderTracker()
        submitter = OrderSubmitter(
            resolver, FakeBroadcaster(error=ConnectionError("reset")), order_tracker=tracker
        )

        with pytest.raises(BroadcastFailed):
            await submitter.submit(
                OrderSide.BUY, Decimal("1"), "INJ/USDT", SIGNING_KEY, inj_address, user_id="42"
            )

        assert await tracker.list_orders("42") == []


class TestValidationBeforeNetwork:
    """Malformed input is rejected before any market data is fetched."""

    @pytest.mark.asyncio
    async def test_bad_address_skips_resolve(self):
        resolver = AsyncMock()
        broadcaster = FakeBroadcaster()
        submitter = OrderSubmitter(resolver, broadcaster)

        with pytest.raises(InvalidOrder):
            await submitter.submit(OrderSide.BUY, Decimal("1"), "INJ/USDT", SIGNING_KEY, "inj1garbage")

        resolver.resolve.assert_not_awaited()
        assert broadcaster.calls == []

    @pytest.mark.asyncio
    async def test_unknown_side_is_invalid_order(self, inj_address):
        resolver = AsyncMock()
        submitter = OrderSubmitter(resolver, FakeBroadcaster())

        with pytest.raises(InvalidOrder):
            await submitter.submit("hold", Decimal("1"), "INJ/USDT", SIGNING_KEY, inj_address)

        resolver.resolve.assert_not_awaited()
