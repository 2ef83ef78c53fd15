"""
Activity Ingress.

Turns platform events (message sent, check-in button, member join/leave,
startup sync) into store mutations and role reconciliation, using the same
primitives as the sweep. Each inbound event runs as its own task through
EventDispatcher so a failure in one handler never touches another.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional, Set
from ..gateway.base import PlatformGateway
from ..models import ActivityRecord, Tier
from ..utils.clock import utcnow
from ..utils.exceptions import IdleKeeperError
from .activity_store import ActivityStore
from .role_reconciler import RoleReconciler

logger = logging.getLogger(__name__)


class EventDispatcher:
    """
    Task-per-event runner with per-task error isolation.

    Usage:
        dispatcher.spawn('message', ingress.on_activity(member_id, community_id))
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, name: str, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(self._run(name, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, coro: Awaitable):
        try:
            return await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f'[Ingress] {name} handler failed: {e}', exc_info=True)
            return None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight event task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class ActivityIngress:
    """
    Entry points for platform events.

    Usage:
        ingress = ActivityIngress(gateway, store, reconciler)
        await ingress.on_activity(member_id, community_id)
    """

    def __init__(
        self,
        gateway: PlatformGateway,
        store: ActivityStore,
        reconciler: RoleReconciler,
        clock: Callable[[], datetime] = utcnow
    ):
        self.gateway = gateway
        self.store = store
        self.reconciler = reconciler
        self.clock = clock

    async def on_activity(self, member_id: str, community_id: str) -> ActivityRecord:
        """
        Qualifying activity: reset the record, then make sure the member holds the Active role.

        The reset is committed first and unconditionally; role repair is best-effort
        and is retried by the next ensure_tier or sweep if it fails.
        """
        record = self.store.upsert_active(member_id, community_id, self.clock())
        await self._reconcile_quietly(community_id, member_id, Tier.ACTIVE)
        return record

    async def on_checkin(self, member_id: str, community_id: Optional[str] = None) -> Optional[str]:
        """
        Check-in button pressed.

        A button pressed inside a DM has no community; the first community that
        tracks the member is used.

        Returns:
            The community the check-in was applied to, or None if none was found
        """
        if community_id is None:
            communities = self.store.find_member_communities(member_id)
            if not communities:
                return None
            community_id = communities[0]
        await self.on_activity(member_id, community_id)
        return community_id

    async def ensure_tier(self, member_id: str, community_id: str) -> Tier:
        """
        Idempotently reconcile roles to the member's stored tier.

        Members without a record are created as Active (origin DiscoveredBySync).
        """
        record = self.store.ensure_record(member_id, community_id, self.clock())
        tier = Tier(record.tier)
        await self.reconciler.reconcile(community_id, member_id, tier)
        return tier

    async def on_member_join(self, member_id: str, community_id: str) -> ActivityRecord:
        """A join counts as activity, even when a stale record survived a missed leave."""
        return await self.on_activity(member_id, community_id)

    async def on_member_leave(self, member_id: str, community_id: str) -> bool:
        deleted = self.store.delete(member_id, community_id)
        if deleted:
            logger.info(f'[Ingress] {community_id}/{member_id} left, record removed')
        return deleted

    async def sync_community(self, community_id: str) -> Dict[str, int]:
        """
        Catch-up pass: align records with the member list, then ensure every member's roles.

        Returns:
            Counts of added, removed, reconciled and failed members
        """
        member_ids = await self.gateway.list_member_ids(community_id)
        result = self.store.sync_members(community_id, member_ids, self.clock())
        result['reconciled'] = 0
        result['failed'] = 0

        for member_id in member_ids:
            try:
                await self.ensure_tier(member_id, community_id)
                result['reconciled'] += 1
            except IdleKeeperError as e:
                result['failed'] += 1
                logger.warning(f'[Ingress] ensure_tier failed for {community_id}/{member_id}: {e}')

        logger.info(
            f'[Ingress] Synced community {community_id}: {result["added"]} added, '
            f'{result["removed"]} removed, {result["failed"]} reconcile failures'
        )
        return result

    async def _reconcile_quietly(self, community_id: str, member_id: str, tier: Tier) -> bool:
        try:
            await self.reconciler.reconcile(community_id, member_id, tier)
            return True
        except IdleKeeperError as e:
            logger.warning(f'[Ingress] Role repair failed for {community_id}/{member_id}: {e}')
            return False
