"""
Lifecycle Policy.

Decides, for one activity snapshot and the current time, which transition is
due. Pure: no I/O, no clock reads, no mutation.

Decision order (first match wins):

1. Active, nothing pending, idle >= inactive_after - warn_lead   -> warn (to_inactive)
2. Active, to_inactive pending, idle >= inactive_after,
   warning at least warn_grace old                               -> commit Inactive
3. Inactive, nothing pending, idle >= dormant_after - warn_lead  -> warn (to_dormant)
4. Inactive, to_dormant pending, idle >= dormant_after,
   warning at least warn_grace old                               -> commit Dormant
5. Dormant, kick_after set, nothing pending,
   idle >= kick_after - warn_lead                                -> warn (to_removed)
6. Dormant, to_removed pending, idle >= kick_after,
   warning at least warn_grace old                               -> remove
7. Dormant otherwise                                             -> eligible for an admin kick
8. anything else                                                 -> nothing

Idle time is always measured from last_activity_at. A slow warning therefore
never stretches the member's total time to demotion, it only delays the
commit until warn_grace has passed since the warning.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from ..config import LifecycleSettings
from ..models import ActivitySnapshot, PendingTransition, Tier


class Action(str, Enum):
    """What the sweep should do with a record."""
    NONE = 'none'
    WARN = 'warn'
    COMMIT = 'commit'
    REMOVE = 'remove'
    ELIGIBLE = 'eligible'  # dormant, waiting for an admin


@dataclass(frozen=True)
class Decision:
    action: Action
    target_tier: Optional[Tier] = None
    pending_transition: Optional[PendingTransition] = None
    reason: str = ''

    @property
    def is_noop(self) -> bool:
        return self.action in (Action.NONE, Action.ELIGIBLE)


NO_ACTION = Decision(Action.NONE)
ELIGIBLE = Decision(Action.ELIGIBLE, reason='dormant')


def evaluate(snapshot: ActivitySnapshot, now: datetime, settings: LifecycleSettings) -> Decision:
    """
    Compute the transition due for a record.

    Args:
        snapshot: The record's lifecycle fields
        now: Evaluation time (naive UTC)
        settings: Validated lifecycle durations

    Returns:
        Decision describing the action, if any
    """
    idle = snapshot.idle_for(now)

    if snapshot.tier is Tier.ACTIVE:
        return _evaluate_step(
            snapshot, now, idle,
            expected_pending=PendingTransition.TO_INACTIVE,
            threshold=settings.inactive_after,
            settings=settings,
        )

    if snapshot.tier is Tier.INACTIVE:
        return _evaluate_step(
            snapshot, now, idle,
            expected_pending=PendingTransition.TO_DORMANT,
            threshold=settings.dormant_after,
            settings=settings,
        )

    if settings.kick_after is None:
        return ELIGIBLE
    decision = _evaluate_step(
        snapshot, now, idle,
        expected_pending=PendingTransition.TO_REMOVED,
        threshold=settings.kick_after,
        settings=settings,
    )
    return ELIGIBLE if decision.action is Action.NONE else decision


def _evaluate_step(
    snapshot: ActivitySnapshot,
    now: datetime,
    idle: timedelta,
    expected_pending: PendingTransition,
    threshold: timedelta,
    settings: LifecycleSettings
) -> Decision:
    target = expected_pending.target_tier

    if snapshot.pending_transition is None:
        if idle < threshold - settings.warn_lead:
            return NO_ACTION
        # Zero lead and zero grace: nothing to wait for, act straight away
        if settings.warn_lead == timedelta(0) and settings.warn_grace == timedelta(0):
            return _due(target, f'idle {idle} >= {threshold}')
        return Decision(
            Action.WARN,
            pending_transition=expected_pending,
            reason=f'idle {idle} >= {threshold - settings.warn_lead}',
        )

    if snapshot.pending_transition is not expected_pending or snapshot.warned_at is None:
        return NO_ACTION

    if idle >= threshold and now - snapshot.warned_at >= settings.warn_grace:
        return _due(target, f'idle {idle} >= {threshold}, warned {now - snapshot.warned_at} ago')
    return NO_ACTION


def _due(target: Optional[Tier], reason: str) -> Decision:
    if target is None:
        return Decision(Action.REMOVE, reason=reason)
    return Decision(Action.COMMIT, target_tier=target, reason=reason)
