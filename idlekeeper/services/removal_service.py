"""
Removal Service.

Removes Dormant members from a community, either one at a time from the sweep
(when KICK_AFTER_MS is configured) or in bulk from the admin kick command.
A removal only counts once the platform confirms the kick; the record is
deleted after that and never before.

Every removal is checked against the snapshot it was decided on, both before
the farewell and again right before the kick. A member who was active in
between keeps their place.
"""
import logging
from typing import Any, Dict
from ..gateway.base import PlatformGateway
from ..models import ActivitySnapshot, Tier
from ..utils.exceptions import GatewayError, MemberNotFoundError, RemovalError
from .activity_store import ActivityStore
from .notifier import Notifier

logger = logging.getLogger(__name__)

AUTO_KICK_REASON = 'Prolonged inactivity'
ADMIN_KICK_REASON = 'Dormant user (manual kick by admin)'

KICKED = 'kicked'
ALREADY_GONE = 'already_gone'
RETURNED = 'returned'


class RemovalService:
    """
    Kick dormant members and drop their records.

    Usage:
        service = RemovalService(gateway, store, notifier)
        result = await service.kick_dormant(community_id)
    """

    def __init__(self, gateway: PlatformGateway, store: ActivityStore, notifier: Notifier):
        self.gateway = gateway
        self.store = store
        self.notifier = notifier

    async def remove_member(self, snapshot: ActivitySnapshot, reason: str = AUTO_KICK_REASON) -> bool:
        """
        Say goodbye, kick, then delete the record.

        A member who already left is treated as removed.

        Returns:
            False if the member was active again and was left alone

        Raises:
            RemovalError: If the platform did not confirm the kick
        """
        return await self._remove(snapshot, reason) != RETURNED

    def preview_dormant(self, community_id: str) -> Dict[str, Any]:
        """Dormant members that an admin kick would remove."""
        records = self.store.list_by_tier(community_id, Tier.DORMANT)
        return {
            'community_id': community_id,
            'count': len(records),
            'members': [r.to_dict() for r in records],
        }

    async def kick_dormant(self, community_id: str, dry_run: bool = False) -> Dict[str, Any]:
        """
        Remove every Dormant member of a community.

        Args:
            community_id: Community to process
            dry_run: If True, report who would be removed without kicking

        Returns:
            Summary with processed/kicked/failed counts and per-member details
        """
        snapshots = [r.snapshot() for r in self.store.list_by_tier(community_id, Tier.DORMANT)]

        results = {
            'processed': len(snapshots),
            'kicked': 0,
            'failed': 0,
            'details': [],
            'dry_run': dry_run,
        }

        for snapshot in snapshots:
            member_id = snapshot.member_id
            if dry_run:
                results['details'].append({'member_id': member_id, 'status': 'would_kick'})
                continue

            try:
                status = await self._remove(snapshot, ADMIN_KICK_REASON)
            except RemovalError as e:
                results['failed'] += 1
                results['details'].append({'member_id': member_id, 'status': 'failed', 'error': str(e)})
                logger.error(f'[Removal] Failed to kick {community_id}/{member_id}: {e}')
                continue

            if status == KICKED:
                results['kicked'] += 1
            results['details'].append({'member_id': member_id, 'status': status})

        logger.info(
            f'[Removal] Community {community_id}: {results["kicked"]} kicked, '
            f'{results["failed"]} failed{" (dry run)" if dry_run else ""}'
        )
        return results

    async def _remove(self, snapshot: ActivitySnapshot, reason: str) -> str:
        community_id, member_id = snapshot.community_id, snapshot.member_id

        if not self.store.is_unchanged(snapshot):
            logger.info(f'[Removal] {community_id}/{member_id} active again, not removing')
            return RETURNED

        await self.notifier.farewell(community_id, member_id)

        # The farewell await is a window for fresh activity
        if not self.store.is_unchanged(snapshot):
            logger.info(f'[Removal] {community_id}/{member_id} active during farewell, not removing')
            return RETURNED

        status = KICKED
        try:
            await self.gateway.kick_member(community_id, member_id, reason)
        except MemberNotFoundError:
            logger.info(f'[Removal] {community_id}/{member_id} already gone, dropping record')
            status = ALREADY_GONE
        except GatewayError as e:
            raise RemovalError(community_id, member_id, e)

        self.store.delete_unchanged(snapshot)
        logger.info(f'[Removal] Removed {community_id}/{member_id}: {reason}')
        return status
