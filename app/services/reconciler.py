"""
Findly Backend — Tool Quota Reconciler
Decides which subscription tools are featured for a given plan limit.
Pure logic over in-memory state; persistence belongs to the caller.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Sequence, Tuple


class SubscriptionAction(str, Enum):
    ACTIVATED = "activated"
    UPGRADED = "upgraded"
    DOWNGRADED = "downgraded"
    REBALANCED = "rebalanced"
    MAINTAINED = "maintained"
    DEACTIVATED = "deactivated"


@dataclass(frozen=True)
class ToolState:
    id: str
    featured: bool
    created_at: datetime


@dataclass
class ReconciliationPlan:
    """Outcome of a reconciliation.

    `targets` is the full featured map the user should end up with;
    `changes` is the subset of it that differs from the current state.
    A deferred downgrade carries the current state untouched.
    """
    action: SubscriptionAction
    limit: int
    targets: Dict[str, bool] = field(default_factory=dict)
    changes: List[Tuple[str, bool]] = field(default_factory=list)
    previous_active_count: int = 0
    active_count: int = 0
    net_activated: int = 0
    net_deactivated: int = 0
    deferred: bool = False

    @property
    def affected_tools(self) -> int:
        return self.net_activated + self.net_deactivated

    @property
    def activated_ids(self) -> List[str]:
        return [tool_id for tool_id, featured in self.changes if featured]

    @property
    def deactivated_ids(self) -> List[str]:
        return [tool_id for tool_id, featured in self.changes if not featured]


def _diff(tools: Sequence[ToolState], targets: Dict[str, bool]) -> List[Tuple[str, bool]]:
    return [(t.id, targets[t.id]) for t in tools if t.featured != targets[t.id]]


def determine_action(
    previous_active: int,
    final_active: int,
    composition_changed: bool,
) -> SubscriptionAction:
    net_activated = max(0, final_active - previous_active)
    net_deactivated = max(0, previous_active - final_active)

    if previous_active == 0 and final_active > 0:
        return SubscriptionAction.ACTIVATED
    if net_activated > 0 and net_deactivated == 0:
        return SubscriptionAction.UPGRADED
    if net_deactivated > 0 and net_activated == 0:
        return SubscriptionAction.DOWNGRADED
    if composition_changed:
        return SubscriptionAction.REBALANCED
    return SubscriptionAction.MAINTAINED


def reconcile(
    current_tools: Sequence[ToolState],
    current_active_count: int,
    new_limit: int,
    force_apply: bool = False,
) -> ReconciliationPlan:
    """Compute the featured state of a user's subscription tools.

    - limit 0: hide everything.
    - more active tools than the limit and not forced: a downgrade while
      the paid period still runs, so nothing changes yet.
    - otherwise: start from all hidden and feature the oldest
      `min(limit, len(tools))` tools.
    """
    tools = sorted(current_tools, key=lambda t: t.created_at)
    current = {t.id: t.featured for t in tools}

    if new_limit <= 0:
        targets = {t.id: False for t in tools}
        changes = _diff(tools, targets)
        return ReconciliationPlan(
            action=SubscriptionAction.DEACTIVATED,
            limit=0,
            targets=targets,
            changes=changes,
            previous_active_count=current_active_count,
            active_count=0,
            net_deactivated=len(changes),
        )

    if current_active_count > new_limit and not force_apply:
        return ReconciliationPlan(
            action=SubscriptionAction.DOWNGRADED,
            limit=new_limit,
            targets=current,
            changes=[],
            previous_active_count=current_active_count,
            active_count=current_active_count,
            deferred=True,
        )

    keep = {t.id for t in tools[:new_limit]}
    targets = {t.id: t.id in keep for t in tools}
    changes = _diff(tools, targets)
    final_active = len(keep)

    return ReconciliationPlan(
        action=determine_action(current_active_count, final_active, bool(changes)),
        limit=new_limit,
        targets=targets,
        changes=changes,
        previous_active_count=current_active_count,
        active_count=final_active,
        net_activated=max(0, final_active - current_active_count),
        net_deactivated=max(0, current_active_count - final_active),
    )
