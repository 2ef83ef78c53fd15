"""
Sweep Scheduler.

Periodically evaluates the lifecycle policy over every tracked member and
applies the result: warnings through the Notifier, tier commits through the
Role Reconciler and the store, removals through the RemovalService.

Timing:
- The first cycle runs as soon as start() is called.
- After each cycle the next one is armed as a one-shot APScheduler job,
  max(0, interval - elapsed) seconds out. A cycle that overruns the interval
  is followed immediately by the next, never overlapping it.
- stop() waits for the in-flight cycle to finish, then disarms the timer.

Communities are processed one after another, and members within a community
one after another, to keep platform API usage bounded. A failure for one
member is logged and the cycle moves on.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from flask import has_app_context
from ..config import LifecycleSettings
from ..gateway.base import PlatformGateway
from ..models import ActivitySnapshot, Tier
from ..utils.clock import utcnow
from ..utils.exceptions import GatewayError, IdleKeeperError, StoreError
from .activity_store import ActivityStore
from .lifecycle_policy import Action, Decision, evaluate
from .notifier import Notifier
from .removal_service import RemovalService
from .role_reconciler import RoleReconciler

logger = logging.getLogger(__name__)

JOB_ID = 'activity_sweep'


def next_delay(interval: float, elapsed: float) -> float:
    """Seconds until the next cycle should start; never negative."""
    return max(0.0, interval - elapsed)


@dataclass
class SweepStats:
    communities: int = 0
    evaluated: int = 0
    warnings: int = 0
    commits: int = 0
    removals: int = 0
    eligible: int = 0
    lost_races: int = 0
    errors: int = 0
    duration_seconds: float = 0.0


class SweepScheduler:
    """
    Drives sweep cycles. Idle or Running, never more than one cycle in flight.

    Usage:
        scheduler = SweepScheduler(gateway, store, reconciler, notifier, removal, settings)
        scheduler.start()          # inside a running event loop
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        gateway: PlatformGateway,
        store: ActivityStore,
        reconciler: RoleReconciler,
        notifier: Notifier,
        removal: RemovalService,
        settings: LifecycleSettings,
        app=None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic
    ):
        self.gateway = gateway
        self.store = store
        self.reconciler = reconciler
        self.notifier = notifier
        self.removal = removal
        self.settings = settings
        self.app = app
        self.clock = clock
        self.monotonic = monotonic

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._started = False
        self._current: Optional[asyncio.Task] = None
        self.last_delay: Optional[float] = None
        self.last_stats: Optional[SweepStats] = None

    # ==================== Lifecycle ====================

    @property
    def started(self) -> bool:
        return self._started

    @property
    def running(self) -> bool:
        """True while a cycle is in flight."""
        return self._current is not None and not self._current.done()

    def start(self) -> None:
        """Run the first cycle now and keep rescheduling. Safe to call twice."""
        if self._started:
            logger.debug('[Sweep] start() called while already started')
            return

        self._started = True
        self._scheduler = AsyncIOScheduler(
            event_loop=asyncio.get_running_loop(),
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # Combine missed runs
                'max_instances': 1,  # Prevent concurrent runs
                'misfire_grace_time': None  # Late is fine, skipped is not
            }
        )
        self._scheduler.start()
        self._current = asyncio.ensure_future(self._tick())
        logger.info(
            f'[Sweep] Started, interval {self.settings.sweep_interval.total_seconds():.0f}s'
        )

    async def stop(self) -> None:
        """Wait for the in-flight cycle, then cancel the pending timer."""
        self._started = False

        task = self._current
        if task is not None and not task.done():
            logger.info('[Sweep] Waiting for in-flight cycle before shutdown')
            await task

        if self._scheduler is not None:
            if self._scheduler.get_job(JOB_ID):
                self._scheduler.remove_job(JOB_ID)
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info('[Sweep] Stopped')

    @property
    def next_run_time(self) -> Optional[datetime]:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    async def _tick(self) -> None:
        # A timer that fired just before stop() must not start a new cycle
        if not self._started:
            return

        self._current = asyncio.current_task()
        started_at = self.monotonic()
        try:
            if self.app is not None and not has_app_context():
                with self.app.app_context():
                    self.last_stats = await self.run_cycle()
            else:
                self.last_stats = await self.run_cycle()
        except Exception as e:
            logger.error(f'[Sweep] Cycle failed: {e}', exc_info=True)
        finally:
            self._current = None

        if not self._started:
            return

        elapsed = self.monotonic() - started_at
        self.last_delay = next_delay(self.settings.sweep_interval.total_seconds(), elapsed)
        self._arm(self.last_delay)

    def _arm(self, delay: float) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay)
        self._scheduler.add_job(
            self._tick,
            trigger=DateTrigger(run_date=run_date),
            id=JOB_ID,
            name='Activity sweep cycle',
            replace_existing=True
        )

    # ==================== Cycle ====================

    async def run_cycle(self) -> SweepStats:
        """One full pass over every community."""
        stats = SweepStats()
        started_at = self.monotonic()
        logger.info('[Sweep] Running sweep...')

        try:
            communities = await self.gateway.list_communities()
        except GatewayError as e:
            stats.errors += 1
            logger.error(f'[Sweep] Could not list communities: {e}')
            return stats

        if not communities:
            logger.warning('[Sweep] No communities to sweep')

        for community_id in communities:
            stats.communities += 1
            try:
                await self.process_community(community_id, stats)
            except Exception as e:
                stats.errors += 1
                logger.error(f'[Sweep] Community {community_id} failed: {e}', exc_info=True)

        stats.duration_seconds = self.monotonic() - started_at
        logger.info(
            f'[Sweep] Complete: {stats.communities} communities, {stats.evaluated} evaluated, '
            f'{stats.warnings} warnings, {stats.commits} commits, {stats.removals} removals, '
            f'{stats.errors} errors in {stats.duration_seconds:.2f}s'
        )
        return stats

    def _candidates(self, community_id: str, now: datetime) -> List[ActivitySnapshot]:
        settings = self.settings
        records = self.store.find_candidates(
            community_id, Tier.ACTIVE, settings.inactive_warn_threshold, now
        )
        records += self.store.find_candidates(
            community_id, Tier.INACTIVE, settings.dormant_warn_threshold, now
        )
        if settings.kick_after is not None:
            records += self.store.find_candidates(
                community_id, Tier.DORMANT, settings.kick_warn_threshold, now
            )
        return [record.snapshot() for record in records]

    async def process_community(self, community_id: str, stats: SweepStats) -> None:
        for snapshot in self._candidates(community_id, self.clock()):
            stats.evaluated += 1
            try:
                await self.process_record(snapshot, stats)
            except StoreError as e:
                stats.errors += 1
                logger.error(f'[Sweep] Store error for {community_id}/{snapshot.member_id}: {e}')
            except IdleKeeperError as e:
                stats.errors += 1
                logger.warning(f'[Sweep] Skipping {community_id}/{snapshot.member_id}: {e}')
            except Exception as e:
                stats.errors += 1
                logger.error(
                    f'[Sweep] Unexpected error for {community_id}/{snapshot.member_id}: {e}',
                    exc_info=True
                )

    async def process_record(self, snapshot: ActivitySnapshot, stats: SweepStats) -> Decision:
        """Evaluate one record and apply the decision."""
        now = self.clock()
        decision = evaluate(snapshot, now, self.settings)
        community_id, member_id = snapshot.community_id, snapshot.member_id
        if not decision.is_noop:
            logger.debug(f'[Sweep] {community_id}/{member_id}: {decision.action.value} ({decision.reason})')

        if decision.action is Action.WARN:
            # Issued once attempted; delivery is best-effort
            delivered = await self.notifier.warn(community_id, member_id, decision.pending_transition)
            if self.store.record_warning(snapshot, decision.pending_transition, now):
                stats.warnings += 1
                logger.info(
                    f'[Sweep] Warned {community_id}/{member_id} '
                    f'({decision.pending_transition.value}, delivered={delivered})'
                )
            else:
                stats.lost_races += 1
                logger.info(f'[Sweep] {community_id}/{member_id} changed before warning was recorded')

        elif decision.action is Action.COMMIT:
            await self.reconciler.reconcile(community_id, member_id, decision.target_tier)
            if self.store.commit_transition(snapshot, decision.target_tier):
                stats.commits += 1
                logger.info(f'[Sweep] {community_id}/{member_id} -> {decision.target_tier.value}')
                await self.notifier.notify_transition(community_id, member_id, decision.target_tier)
            else:
                stats.lost_races += 1
                await self._restore_roles(snapshot)

        elif decision.action is Action.REMOVE:
            if await self.removal.remove_member(snapshot):
                stats.removals += 1
            else:
                stats.lost_races += 1

        elif decision.action is Action.ELIGIBLE:
            stats.eligible += 1

        return decision

    async def _restore_roles(self, snapshot: ActivitySnapshot) -> None:
        """An activity reset won the race; put roles back in line with what is stored now."""
        record = self.store.get(snapshot.member_id, snapshot.community_id)
        if record is None:
            return
        logger.info(
            f'[Sweep] {snapshot.community_id}/{snapshot.member_id} was reset mid-commit, '
            f'restoring {record.tier} roles'
        )
        try:
            await self.reconciler.reconcile(snapshot.community_id, snapshot.member_id, Tier(record.tier))
        except IdleKeeperError as e:
            logger.warning(f'[Sweep] Role restore failed for {snapshot.community_id}/{snapshot.member_id}: {e}')
