"""
Activity Store.

Data access for ActivityRecord rows. No policy lives here: callers decide what
should happen and the store makes it durable.

Writes that follow an await (warnings and tier commits) are conditional
UPDATEs guarded by the snapshot the caller read, so an activity reset that
lands in between wins instead of being clobbered.
"""
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from ..extensions import db
from ..models import ActivityRecord, ActivitySnapshot, PendingTransition, RecordOrigin, Tier
from ..utils.clock import utcnow
from ..utils.exceptions import StoreError


class ActivityStore:
    """
    Keyed access to activity records.

    Usage:
        store = ActivityStore()
        store.upsert_active(member_id, community_id, now)
    """

    @property
    def session(self):
        return db.session

    # ==================== Reads ====================

    def get(self, member_id: str, community_id: str) -> Optional[ActivityRecord]:
        return self.session.get(ActivityRecord, (str(member_id), str(community_id)))

    def find_candidates(
        self,
        community_id: str,
        tier: Tier,
        idle_threshold: timedelta,
        now: datetime
    ) -> List[ActivityRecord]:
        """
        Records in a tier that have been idle for at least idle_threshold.

        Served by the (tier, last_activity_at) index; oldest activity first.
        """
        cutoff = now - idle_threshold
        return ActivityRecord.query.filter(
            ActivityRecord.community_id == str(community_id),
            ActivityRecord.tier == tier.value,
            ActivityRecord.last_activity_at <= cutoff
        ).order_by(ActivityRecord.last_activity_at.asc()).all()

    def list_by_tier(self, community_id: str, tier: Tier) -> List[ActivityRecord]:
        return ActivityRecord.query.filter_by(
            community_id=str(community_id),
            tier=tier.value
        ).order_by(ActivityRecord.last_activity_at.asc()).all()

    def find_member_communities(self, member_id: str) -> List[str]:
        """Communities that track this member, oldest record first."""
        rows = ActivityRecord.query.filter_by(member_id=str(member_id)).order_by(
            ActivityRecord.created_at.asc()
        ).all()
        return [row.community_id for row in rows]

    def tier_counts(self, community_id: str) -> Dict[str, int]:
        counts = {tier.value: 0 for tier in Tier}
        rows = self.session.query(
            ActivityRecord.tier, func.count()
        ).filter(
            ActivityRecord.community_id == str(community_id)
        ).group_by(ActivityRecord.tier).all()
        for tier, count in rows:
            counts[tier] = count
        counts['pending_warnings'] = ActivityRecord.query.filter(
            ActivityRecord.community_id == str(community_id),
            ActivityRecord.pending_transition.isnot(None)
        ).count()
        return counts

    # ==================== Writes ====================

    def upsert_active(
        self,
        member_id: str,
        community_id: str,
        now: datetime,
        origin: RecordOrigin = RecordOrigin.OBSERVED_ACTIVITY
    ) -> ActivityRecord:
        """
        Unconditional reset: tier Active, warning cleared, activity = now.

        Creates the record if it does not exist yet.
        """
        record = self.get(member_id, community_id)
        if record is None:
            record = ActivityRecord(member_id=str(member_id), community_id=str(community_id))
            self.session.add(record)
        record.reset(now, origin)
        self._commit('upsert_active')
        return record

    def ensure_record(self, member_id: str, community_id: str, now: datetime) -> ActivityRecord:
        """Return the member's record, creating an Active one found by sync if missing."""
        record = self.get(member_id, community_id)
        if record is not None:
            return record
        record = ActivityRecord(member_id=str(member_id), community_id=str(community_id))
        record.reset(now, RecordOrigin.DISCOVERED_BY_SYNC)
        self.session.add(record)
        self._commit('ensure_record')
        return record

    def record_warning(
        self,
        snapshot: ActivitySnapshot,
        pending_transition: PendingTransition,
        now: datetime
    ) -> bool:
        """
        Mark a warning as issued for pending_transition.

        Returns:
            False if the record changed since the snapshot was taken
        """
        return self._conditional_update(
            snapshot,
            'record_warning',
            warned_at=now,
            pending_transition=pending_transition.value,
        )

    def commit_transition(self, snapshot: ActivitySnapshot, new_tier: Tier) -> bool:
        """
        Advance the tier and clear the warning.

        Returns:
            False if the record changed since the snapshot was taken
        """
        if new_tier.rank <= snapshot.tier.rank:
            raise ValueError(f'Cannot move from {snapshot.tier.value} to {new_tier.value}')
        return self._conditional_update(
            snapshot,
            'commit_transition',
            tier=new_tier.value,
            warned_at=None,
            pending_transition=None,
        )

    def delete(self, member_id: str, community_id: str) -> bool:
        deleted = ActivityRecord.query.filter_by(
            member_id=str(member_id),
            community_id=str(community_id)
        ).delete(synchronize_session='fetch')
        self._commit('delete')
        return deleted > 0

    def delete_unchanged(self, snapshot: ActivitySnapshot) -> bool:
        """
        Delete the record only if its tier and last activity still match the snapshot.

        Returns:
            False if the record is gone or was reset since the snapshot was taken
        """
        try:
            deleted = ActivityRecord.query.filter(
                ActivityRecord.member_id == snapshot.member_id,
                ActivityRecord.community_id == snapshot.community_id,
                ActivityRecord.tier == snapshot.tier.value,
                ActivityRecord.last_activity_at == snapshot.last_activity_at
            ).delete(synchronize_session='fetch')
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(f'delete_unchanged failed for {snapshot.community_id}/{snapshot.member_id}', e)
        self._commit('delete_unchanged')
        return deleted == 1

    def is_unchanged(self, snapshot: ActivitySnapshot) -> bool:
        """True if the record still has the snapshot's tier and last activity."""
        record = self.get(snapshot.member_id, snapshot.community_id)
        return (
            record is not None
            and record.tier == snapshot.tier.value
            and record.last_activity_at == snapshot.last_activity_at
        )

    def sync_members(self, community_id: str, member_ids: Iterable[str], now: datetime) -> Dict[str, int]:
        """
        Align stored records with the community's current member list.

        Members without a record get an Active one (origin DiscoveredBySync);
        records of members that left are deleted.
        """
        current = {str(m) for m in member_ids}
        existing = {
            row.member_id for row in ActivityRecord.query.filter_by(community_id=str(community_id)).all()
        }

        added = 0
        for member_id in sorted(current - existing):
            record = ActivityRecord(member_id=member_id, community_id=str(community_id))
            record.reset(now, RecordOrigin.DISCOVERED_BY_SYNC)
            self.session.add(record)
            added += 1

        departed = existing - current
        removed = 0
        if departed:
            removed = ActivityRecord.query.filter(
                ActivityRecord.community_id == str(community_id),
                ActivityRecord.member_id.in_(departed)
            ).delete(synchronize_session='fetch')

        self._commit('sync_members')
        return {'added': added, 'removed': removed}

    # ==================== Internals ====================

    def _conditional_update(self, snapshot: ActivitySnapshot, operation: str, **values) -> bool:
        pending = snapshot.pending_transition.value if snapshot.pending_transition else None
        stmt = update(ActivityRecord).where(
            ActivityRecord.member_id == snapshot.member_id,
            ActivityRecord.community_id == snapshot.community_id,
            ActivityRecord.tier == snapshot.tier.value,
            ActivityRecord.last_activity_at == snapshot.last_activity_at,
        )
        if pending is None:
            stmt = stmt.where(ActivityRecord.pending_transition.is_(None))
        else:
            stmt = stmt.where(ActivityRecord.pending_transition == pending)

        values['updated_at'] = utcnow()
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(f'{operation} failed for {snapshot.community_id}/{snapshot.member_id}', e)
        self._commit(operation)
        return result.rowcount == 1

    def _commit(self, operation: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(f'{operation} failed: {e}', e)
