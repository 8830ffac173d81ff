"""Tests for the featured-tool reconciler."""
from datetime import timedelta

import pytest

from app.services.reconciler import SubscriptionAction, ToolState, determine_action, reconcile
from tests.factories import T0


def tools(*featured):
    return [
        ToolState(id=f"t{i + 1}", featured=f, created_at=T0 + timedelta(days=i))
        for i, f in enumerate(featured)
    ]


def featured_after(states, plan):
    return {t.id for t in states if plan.targets[t.id]}


class TestReconcile:
    def test_limit_zero_deactivates_everything(self):
        states = tools(True, True, False)
        plan = reconcile(states, 2, 0)
        assert plan.action == SubscriptionAction.DEACTIVATED
        assert featured_after(states, plan) == set()
        assert sorted(plan.deactivated_ids) == ["t1", "t2"]

    def test_downgrade_is_deferred_without_force(self):
        states = tools(True, True, True, True, True)
        plan = reconcile(states, 5, 1)
        assert plan.action == SubscriptionAction.DOWNGRADED
        assert plan.deferred
        assert plan.changes == []
        assert featured_after(states, plan) == {"t1", "t2", "t3", "t4", "t5"}

    def test_forced_downgrade_keeps_oldest(self):
        states = tools(True, True, True)
        plan = reconcile(list(reversed(states)), 3, 1, force_apply=True)
        assert plan.action == SubscriptionAction.DOWNGRADED
        assert featured_after(states, plan) == {"t1"}
        assert plan.net_deactivated == 2

    def test_upgrade_features_all_tools(self):
        states = tools(True, False)
        plan = reconcile(states, 1, 5)
        assert plan.action == SubscriptionAction.UPGRADED
        assert featured_after(states, plan) == {"t1", "t2"}
        assert plan.activated_ids == ["t2"]

    def test_first_activation(self):
        states = tools(False)
        plan = reconcile(states, 0, 1)
        assert plan.action == SubscriptionAction.ACTIVATED
        assert plan.active_count == 1

    def test_same_count_different_tools_is_rebalanced(self):
        states = tools(False, True)
        plan = reconcile(states, 1, 1)
        assert plan.action == SubscriptionAction.REBALANCED
        assert featured_after(states, plan) == {"t1"}

    def test_consistent_state_is_maintained(self):
        states = tools(True, True, False)
        plan = reconcile(states, 2, 2)
        assert plan.action == SubscriptionAction.MAINTAINED
        assert plan.changes == []

    @pytest.mark.parametrize("limit", [1, 2, 3, 5, 10])
    @pytest.mark.parametrize("featured", [(True, True, True), (False, False, False), (True, False, True)])
    def test_active_count_matches_quota(self, limit, featured):
        states = tools(*featured)
        plan = reconcile(states, sum(featured), limit, force_apply=True)
        assert plan.active_count == min(limit, len(states))
        assert len(featured_after(states, plan)) == min(limit, len(states))


class TestDetermineAction:
    @pytest.mark.parametrize("previous,final,changed,expected", [
        (0, 2, True, SubscriptionAction.ACTIVATED),
        (1, 3, True, SubscriptionAction.UPGRADED),
        (3, 1, True, SubscriptionAction.DOWNGRADED),
        (2, 2, True, SubscriptionAction.REBALANCED),
        (2, 2, False, SubscriptionAction.MAINTAINED),
        (0, 0, False, SubscriptionAction.MAINTAINED),
    ])
    def test_table(self, previous, final, changed, expected):
        assert determine_action(previous, final, changed) == expected
