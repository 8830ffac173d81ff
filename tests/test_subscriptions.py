"""Tests for applying plan limits and the subscription expiry sweep."""
from datetime import timedelta

from sqlalchemy import select

from app.core.database import utcnow
from app.models import Subscription, ToolOrigin
from app.services.reconciler import SubscriptionAction
from app.services.subscriptions import (
    apply_subscription_limits,
    check_tool_limits,
    get_effective_subscription,
    get_subscription_tools,
    process_expired_subscriptions,
    sync_subscription,
    validate_tool_submission,
)
from tests.factories import T0, make_subscription, make_tool, make_user


async def featured_ids(db, user_id):
    await db.flush()
    return {t.id for t in await get_subscription_tools(db, user_id) if t.featured}


class TestEffectiveSubscription:
    async def test_prefers_non_cancelling_row(self, db):
        user = await make_user(db)
        await make_subscription(db, user, plan="starter-monthly", cancel_at_period_end=True,
                                period_end=utcnow() + timedelta(days=3))
        await make_subscription(db, user, plan="max-monthly")
        subscription = await get_effective_subscription(db, user.id)
        assert subscription.plan == "max-monthly"

    async def test_cancelling_row_counts_until_period_end(self, db):
        user = await make_user(db)
        await make_subscription(db, user, plan="plus-monthly", cancel_at_period_end=True,
                                period_end=utcnow() + timedelta(days=3))
        assert (await get_effective_subscription(db, user.id)).plan == "plus-monthly"

    async def test_lapsed_cancelling_row_does_not_count(self, db):
        user = await make_user(db)
        await make_subscription(db, user, plan="plus-monthly", cancel_at_period_end=True,
                                period_end=utcnow() - timedelta(days=1))
        assert await get_effective_subscription(db, user.id) is None

    async def test_ignores_inactive_rows(self, db):
        user = await make_user(db)
        await make_subscription(db, user, status="incomplete")
        await make_subscription(db, user, status="canceled")
        assert await get_effective_subscription(db, user.id) is None


class TestApplySubscriptionLimits:
    async def test_upgrade_features_every_tool(self, db):
        user = await make_user(db)
        await make_tool(db, user, "tool_a", created_at=T0, featured=True)
        await make_tool(db, user, "tool_b", created_at=T0 + timedelta(days=1))
        await make_subscription(db, user, plan="plus-monthly")

        result = await apply_subscription_limits(db, user.id)

        assert result.action == SubscriptionAction.UPGRADED.value
        assert result.limit == 5
        assert await featured_ids(db, user.id) == {"tool_a", "tool_b"}

    async def test_no_subscription_hides_everything(self, db):
        user = await make_user(db)
        await make_tool(db, user, "tool_a", featured=True)
        await make_tool(db, user, "tool_b", created_at=T0 + timedelta(days=1), featured=True)

        result = await apply_subscription_limits(db, user.id, {"status": "canceled"})

        assert result.action == SubscriptionAction.DEACTIVATED.value
        assert await featured_ids(db, user.id) == set()

    async def test_caller_plan_is_ignored(self, db):
        user = await make_user(db)
        await make_tool(db, user, "tool_a")
        await make_tool(db, user, "tool_b", created_at=T0 + timedelta(days=1))
        await make_subscription(db, user, plan="starter-monthly")

        result = await apply_subscription_limits(db, user.id, {"status": "active", "plan": "max-monthly"})

        assert result.plan_name == "starter-monthly"
        assert await featured_ids(db, user.id) == {"tool_a"}

    async def test_downgrade_waits_for_period_end(self, db):
        user = await make_user(db)
        for i in range(3):
            await make_tool(db, user, f"tool_{i}", created_at=T0 + timedelta(days=i), featured=True)
        await make_subscription(db, user, plan="starter-monthly")

        result = await apply_subscription_limits(db, user.id)

        assert result.reconciliation.deferred
        assert result.action == SubscriptionAction.DOWNGRADED.value
        assert await featured_ids(db, user.id) == {"tool_0", "tool_1", "tool_2"}

    async def test_forced_downgrade_resets_selection(self, db):
        user = await make_user(db, last_tool_selection_at=T0)
        for i in range(3):
            await make_tool(db, user, f"tool_{i}", created_at=T0 + timedelta(days=i), featured=True)
        await make_subscription(db, user, plan="starter-monthly")

        result = await apply_subscription_limits(db, user.id, force_apply=True)

        assert result.reconciliation.net_deactivated == 2
        assert await featured_ids(db, user.id) == {"tool_0"}
        await db.refresh(user)
        assert user.last_tool_selection_at is None

    async def test_incomplete_rows_are_cleaned_up(self, db):
        user = await make_user(db)
        await make_subscription(db, user, status="incomplete")
        await make_subscription(db, user, plan="plus-monthly")

        await apply_subscription_limits(db, user.id)

        rows = (await db.execute(select(Subscription).where(Subscription.reference_id == user.id))).scalars().all()
        assert [r.status for r in rows] == ["active"]

    async def test_advertisement_tools_are_left_alone(self, db):
        user = await make_user(db)
        ad_tool = await make_tool(db, user, "tool_ad", featured=True, origin=ToolOrigin.ADVERTISEMENT)

        await apply_subscription_limits(db, user.id)

        await db.refresh(ad_tool)
        assert ad_tool.featured is True


class TestCheckToolLimits:
    async def test_without_subscription(self, db):
        user = await make_user(db)
        limits = await check_tool_limits(db, user)
        assert not limits.can_add
        assert limits.reason == "No active subscription found"

    async def test_limit_reached_message(self, db):
        user = await make_user(db)
        await make_subscription(db, user, plan="starter-monthly")
        await make_tool(db, user, "tool_a", featured=True)
        limits = await check_tool_limits(db, user)
        assert not limits.can_add
        assert limits.reason == "Starter plan limit reached (1/1 tools). Upgrade to Plus (5 tools)."

    async def test_free_slot(self, db):
        user = await make_user(db)
        await make_subscription(db, user, plan="plus-yearly")
        await make_tool(db, user, "tool_a", featured=True)
        limits = await check_tool_limits(db, user)
        assert limits.can_add
        assert (limits.current_count, limits.limit) == (1, 5)

    async def test_validate_submission_wraps_reason(self, db):
        user = await make_user(db)
        result = await validate_tool_submission(db, user)
        assert not result.success
        assert result.error == "Cannot add tool: No active subscription found"


class TestSyncSubscription:
    async def test_upserts_by_stripe_id(self, db):
        user = await make_user(db)
        snapshot = {
            "id": "sub_123",
            "customer": "cus_1",
            "status": "active",
            "price_id": "price_plus_monthly",
            "period_start": T0,
            "period_end": T0 + timedelta(days=30),
            "cancel_at_period_end": False,
        }
        first = await sync_subscription(db, user.id, snapshot)
        assert first.plan == "plus-monthly"

        second = await sync_subscription(db, user.id, {**snapshot, "cancel_at_period_end": True})
        assert second.id == first.id
        assert second.cancel_at_period_end is True


class TestExpiredSubscriptionSweep:
    async def test_cancelled_subscription_past_period_end(self, db):
        user = await make_user(db)
        await make_tool(db, user, "tool_a", featured=True)
        subscription = await make_subscription(db, user, plan="plus-monthly", cancel_at_period_end=True,
                                               period_end=utcnow() - timedelta(hours=1))
        await db.commit()

        summary = await process_expired_subscriptions(db)

        assert summary["expired"] == 1
        assert summary["failed"] == 0
        await db.refresh(subscription)
        assert subscription.status == "canceled"
        assert await featured_ids(db, user.id) == set()

    async def test_enforces_pending_downgrade(self, db):
        user = await make_user(db)
        for i in range(3):
            await make_tool(db, user, f"tool_{i}", created_at=T0 + timedelta(days=i), featured=True)
        await make_subscription(db, user, plan="starter-monthly", period_end=utcnow() - timedelta(hours=1))
        await db.commit()

        summary = await process_expired_subscriptions(db)

        assert summary["downgrades"] == 1
        assert await featured_ids(db, user.id) == {"tool_0"}

    async def test_within_limit_is_untouched(self, db):
        user = await make_user(db)
        await make_tool(db, user, "tool_a", featured=True)
        await make_subscription(db, user, plan="plus-monthly", period_end=utcnow() - timedelta(hours=1))
        await db.commit()

        summary = await process_expired_subscriptions(db)

        assert summary["processed"] == 0
        assert await featured_ids(db, user.id) == {"tool_a"}

    async def test_running_period_is_not_touched(self, db):
        user = await make_user(db)
        for i in range(2):
            await make_tool(db, user, f"tool_{i}", created_at=T0 + timedelta(days=i), featured=True)
        await make_subscription(db, user, plan="starter-monthly", period_end=utcnow() + timedelta(days=5))
        await db.commit()

        summary = await process_expired_subscriptions(db)

        assert summary["processed"] == 0
        assert await featured_ids(db, user.id) == {"tool_0", "tool_1"}

    async def test_one_failure_does_not_stop_the_batch(self, db, monkeypatch):
        from app.services import subscriptions

        first = await make_user(db, "user_1")
        second = await make_user(db, "user_2")
        for user in (first, second):
            for i in range(2):
                await make_tool(db, user, f"{user.id}_tool_{i}", created_at=T0 + timedelta(days=i), featured=True)
            await make_subscription(db, user, plan="starter-monthly", period_end=utcnow() - timedelta(hours=1))
        await db.commit()

        real_apply = subscriptions.apply_subscription_limits

        async def flaky_apply(session, user_id, *args, **kwargs):
            if user_id == "user_1":
                raise RuntimeError("boom")
            return await real_apply(session, user_id, *args, **kwargs)

        monkeypatch.setattr(subscriptions, "apply_subscription_limits", flaky_apply)

        summary = await process_expired_subscriptions(db)

        assert summary["failed"] == 1
        assert summary["downgrades"] == 1
        assert await featured_ids(db, "user_2") == {"user_2_tool_0"}
