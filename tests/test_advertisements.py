"""Tests for the advertisement lifecycle: checkout, confirmation and expiry."""
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.core.database import utcnow
from app.models import ToolAdvertisement, ToolOrigin
from app.models.tool_advertisement import AdvertisementPlacement, AdvertisementStatus
from app.schemas.schemas import AdvertiseCheckoutRequest
from app.services import billing
from app.services.advertisements import (
    PaymentConfirmationError,
    confirm_payment,
    create_advertisement_checkout,
    delete_pending_advertisement,
    expire_advertisements,
    get_active_advertisements,
    get_user_advertisements,
)
from tests.factories import T0, make_advertisement, make_tool, make_user


@pytest.fixture
def stripe_calls(monkeypatch):
    """Stand-ins for every Stripe call the lifecycle makes."""
    calls = {
        "create_customer": AsyncMock(return_value="cus_new"),
        "create_advertisement_checkout": AsyncMock(
            return_value={"checkout_url": "https://checkout.stripe.test/s", "session_id": "cs_test_1"}
        ),
        "retrieve_checkout_session": AsyncMock(),
    }
    for name, mock in calls.items():
        monkeypatch.setattr(billing, name, mock)
    return calls


def paid_session(advertisement_id, payment_status="paid"):
    return {
        "id": "cs_test_1",
        "mode": "payment",
        "payment_status": payment_status,
        "customer": "cus_1",
        "currency": "usd",
        "metadata": {"advertisementId": advertisement_id} if advertisement_id else {},
    }


class TestCheckout:
    async def test_boost_checkout_creates_pending_campaign(self, db, stripe_calls):
        user = await make_user(db)
        await make_tool(db, user, "tool_c", featured=True)
        request = AdvertiseCheckoutRequest(
            boost_tool_id="tool_c",
            start_date=T0,
            end_date=T0 + timedelta(days=6),
            placement="homepage",
        )

        result = await create_advertisement_checkout(db, user, request)

        assert result.success
        assert result.data["session_id"] == "cs_test_1"
        ad = await db.get(ToolAdvertisement, result.data["advertisement_id"])
        assert ad.status == AdvertisementStatus.PENDING
        assert ad.tool_id == "tool_c_ad"
        assert ad.stripe_session_id == "cs_test_1"
        assert (ad.duration, ad.discount_percentage, ad.total_price) == (7, 6, 2632)
        assert user.stripe_customer_id == "cus_new"

        kwargs = stripe_calls["create_advertisement_checkout"].call_args.kwargs
        assert kwargs["metadata"]["advertisementId"] == ad.id
        assert kwargs["duration"] == 7

    async def test_existing_customer_is_reused(self, db, stripe_calls):
        user = await make_user(db, stripe_customer_id="cus_existing")
        request = AdvertiseCheckoutRequest(
            tool_data={"url": "https://new.example.org", "logo_url": "https://cdn.example.com/l.png", "name": "New"},
            start_date=T0,
            end_date=T0,
        )

        result = await create_advertisement_checkout(db, user, request)

        assert result.success
        stripe_calls["create_customer"].assert_not_called()
        assert stripe_calls["create_advertisement_checkout"].call_args.kwargs["customer_id"] == "cus_existing"

    async def test_source_is_required(self, db, stripe_calls):
        user = await make_user(db, stripe_customer_id="cus_existing")
        request = AdvertiseCheckoutRequest(start_date=T0, end_date=T0)
        result = await create_advertisement_checkout(db, user, request)
        assert result.error == "Tool not specified"
        stripe_calls["create_advertisement_checkout"].assert_not_called()

    def test_end_before_start_is_invalid(self):
        with pytest.raises(ValueError):
            AdvertiseCheckoutRequest(tool_id="t", start_date=T0, end_date=T0 - timedelta(days=1))


class TestConfirmPayment:
    async def test_activates_once(self, db, stripe_calls):
        user = await make_user(db)
        tool = await make_tool(db, user, "tool_ad", origin=ToolOrigin.ADVERTISEMENT)
        ad = await make_advertisement(db, tool, status=AdvertisementStatus.PENDING)
        stripe_calls["retrieve_checkout_session"].return_value = paid_session(ad.id)

        first = await confirm_payment(db, "cs_test_1")
        assert first.success and not first.already_processed
        assert ad.status == AdvertisementStatus.ACTIVE
        assert tool.featured is True

        tool.featured = False  # a second toggle would flip this back on
        second = await confirm_payment(db, "cs_test_1")
        assert second.already_processed
        assert tool.featured is False

    async def test_expired_campaign_is_not_reactivated(self, db, stripe_calls):
        user = await make_user(db)
        tool = await make_tool(db, user, "tool_ad", origin=ToolOrigin.ADVERTISEMENT, featured=False)
        ad = await make_advertisement(db, tool, status=AdvertisementStatus.EXPIRED,
                                      end_date=utcnow() - timedelta(days=1))
        stripe_calls["retrieve_checkout_session"].return_value = paid_session(ad.id)

        result = await confirm_payment(db, "cs_test_1")

        assert result.already_processed
        assert ad.status == AdvertisementStatus.EXPIRED
        assert tool.featured is False

    async def test_unpaid_session(self, db, stripe_calls):
        stripe_calls["retrieve_checkout_session"].return_value = paid_session("ad_1", payment_status="unpaid")
        with pytest.raises(PaymentConfirmationError, match="Payment not confirmed"):
            await confirm_payment(db, "cs_test_1")

    async def test_missing_metadata(self, db, stripe_calls):
        stripe_calls["retrieve_checkout_session"].return_value = paid_session(None)
        with pytest.raises(PaymentConfirmationError, match="Advertisement ID missing"):
            await confirm_payment(db, "cs_test_1")

    async def test_boost_leaves_original_alone(self, db, stripe_calls):
        user = await make_user(db, stripe_customer_id="cus_1")
        original = await make_tool(db, user, "tool_c", featured=False)
        request = AdvertiseCheckoutRequest(boost_tool_id="tool_c", start_date=T0, end_date=T0 + timedelta(days=2))
        checkout = await create_advertisement_checkout(db, user, request)
        stripe_calls["retrieve_checkout_session"].return_value = paid_session(checkout.data["advertisement_id"])

        await confirm_payment(db, "cs_test_1")

        twin = await db.get(type(original), "tool_c_ad")
        assert twin.featured is True
        assert twin.boosted_from_id == "tool_c"
        assert original.featured is False


class TestExpireAdvertisements:
    async def test_advertisement_tool_is_hidden(self, db):
        user = await make_user(db)
        tool = await make_tool(db, user, "tool_ad", origin=ToolOrigin.ADVERTISEMENT, featured=True)
        ad = await make_advertisement(db, tool, end_date=utcnow() - timedelta(hours=1))
        await db.commit()

        summary = await expire_advertisements(db)

        assert summary["disabled"] == 1
        assert summary["failed"] == 0
        assert ad.status == AdvertisementStatus.EXPIRED
        assert tool.featured is False

    async def test_subscription_tool_is_never_touched(self, db):
        user = await make_user(db)
        tool = await make_tool(db, user, "tool_sub", featured=True)
        ad = await make_advertisement(db, tool, end_date=utcnow() - timedelta(hours=1))
        await db.commit()

        summary = await expire_advertisements(db)

        assert summary["skipped"] == 1
        assert tool.featured is True
        assert ad.status == AdvertisementStatus.ACTIVE

    async def test_already_hidden_tool(self, db):
        user = await make_user(db)
        tool = await make_tool(db, user, "tool_ad", origin=ToolOrigin.ADVERTISEMENT, featured=False)
        ad = await make_advertisement(db, tool, end_date=utcnow() - timedelta(hours=1))
        await db.commit()

        summary = await expire_advertisements(db)

        assert summary["already_disabled"] == 1
        assert ad.status == AdvertisementStatus.EXPIRED

    async def test_running_campaign_is_kept(self, db):
        user = await make_user(db)
        tool = await make_tool(db, user, "tool_ad", origin=ToolOrigin.ADVERTISEMENT, featured=True)
        await make_advertisement(db, tool, end_date=utcnow() + timedelta(days=2))
        await db.commit()

        summary = await expire_advertisements(db)

        assert summary["processed"] == 0
        assert tool.featured is True


class TestQueries:
    async def test_active_by_placement(self, db):
        user = await make_user(db)
        home = await make_tool(db, user, "tool_home", origin=ToolOrigin.ADVERTISEMENT, featured=True)
        everywhere = await make_tool(db, user, "tool_all", origin=ToolOrigin.ADVERTISEMENT, featured=True)
        await make_advertisement(db, home, placement=AdvertisementPlacement.HOMEPAGE)
        await make_advertisement(db, everywhere, placement=AdvertisementPlacement.ALL)
        await make_advertisement(db, everywhere, status=AdvertisementStatus.PENDING)

        assert len(await get_active_advertisements(db)) == 2
        homepage = await get_active_advertisements(db, "homepage")
        assert [a.tool.id for a in homepage] == ["tool_home"]

    async def test_user_campaigns_skip_pending_and_name_original(self, db):
        user = await make_user(db)
        original = await make_tool(db, user, "tool_c", name="Original C")
        twin = await make_tool(db, user, "tool_c_ad", origin=ToolOrigin.ADVERTISEMENT, boosted_from_id=original.id)
        await make_advertisement(db, twin, status=AdvertisementStatus.EXPIRED)
        await make_advertisement(db, twin, status=AdvertisementStatus.PENDING)

        campaigns = await get_user_advertisements(db, user.id)

        assert len(campaigns) == 1
        assert campaigns[0].status == "expired"
        assert campaigns[0].original_tool_name == "Original C"

    async def test_only_pending_can_be_deleted(self, db):
        user = await make_user(db)
        tool = await make_tool(db, user, "tool_ad", origin=ToolOrigin.ADVERTISEMENT)
        active = await make_advertisement(db, tool)
        pending = await make_advertisement(db, tool, status=AdvertisementStatus.PENDING)

        assert (await delete_pending_advertisement(db, active.id)).error == "Only pending advertisements can be deleted"
        assert (await delete_pending_advertisement(db, pending.id)).success
        assert await db.get(ToolAdvertisement, pending.id) is None
