"""
Activity record model.

One row per member per community. The row is the source of truth for a
member's tier; role grants on the platform are reconciled to it.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from ..extensions import db
from ..utils.clock import utcnow


# ==================== Enums ====================

class Tier(str, Enum):
    """Activity tiers, in lifecycle order."""
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    DORMANT = 'dormant'

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)


_TIER_ORDER = [Tier.ACTIVE, Tier.INACTIVE, Tier.DORMANT]


class PendingTransition(str, Enum):
    """Transition an outstanding warning is for."""
    TO_INACTIVE = 'to_inactive'
    TO_DORMANT = 'to_dormant'
    TO_REMOVED = 'to_removed'

    @property
    def target_tier(self) -> Optional[Tier]:
        """Tier the transition lands in; None for removal."""
        return _PENDING_TARGETS[self]


_PENDING_TARGETS = {
    PendingTransition.TO_INACTIVE: Tier.INACTIVE,
    PendingTransition.TO_DORMANT: Tier.DORMANT,
    PendingTransition.TO_REMOVED: None,
}


class RecordOrigin(str, Enum):
    """How the record came to exist. Informational only."""
    DISCOVERED_BY_SYNC = 'discovered_by_sync'
    OBSERVED_ACTIVITY = 'observed_activity'


# ==================== Snapshot ====================

@dataclass(frozen=True)
class ActivitySnapshot:
    """Immutable copy of a record's lifecycle fields at read time."""
    member_id: str
    community_id: str
    tier: Tier
    last_activity_at: datetime
    pending_transition: Optional[PendingTransition] = None
    warned_at: Optional[datetime] = None
    origin: RecordOrigin = RecordOrigin.OBSERVED_ACTIVITY

    def idle_for(self, now: datetime) -> timedelta:
        return now - self.last_activity_at


# ==================== Models ====================

class ActivityRecord(db.Model):
    """
    Lifecycle record for a member of a community.

    warned_at and pending_transition are set and cleared together.
    """
    __tablename__ = 'activity_records'

    member_id = db.Column(db.String(32), primary_key=True)
    community_id = db.Column(db.String(32), primary_key=True)

    last_activity_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    tier = db.Column(db.String(20), nullable=False, default=Tier.ACTIVE.value)  # active, inactive, dormant

    # Outstanding warning
    warned_at = db.Column(db.DateTime)
    pending_transition = db.Column(db.String(20))  # to_inactive, to_dormant, to_removed

    origin = db.Column(db.String(30), nullable=False, default=RecordOrigin.OBSERVED_ACTIVITY.value)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.Index('ix_activity_records_tier_last_activity', 'tier', 'last_activity_at'),
        db.Index('ix_activity_records_community_id', 'community_id'),
    )

    def __repr__(self):
        return f'<ActivityRecord {self.community_id}/{self.member_id} {self.tier}>'

    def snapshot(self) -> ActivitySnapshot:
        return ActivitySnapshot(
            member_id=self.member_id,
            community_id=self.community_id,
            tier=Tier(self.tier),
            last_activity_at=self.last_activity_at,
            pending_transition=PendingTransition(self.pending_transition) if self.pending_transition else None,
            warned_at=self.warned_at,
            origin=RecordOrigin(self.origin),
        )

    def reset(self, now: datetime, origin: RecordOrigin = RecordOrigin.OBSERVED_ACTIVITY):
        """Restore full standing after qualifying activity."""
        self.tier = Tier.ACTIVE.value
        self.last_activity_at = now
        self.warned_at = None
        self.pending_transition = None
        self.origin = origin.value

    def to_dict(self):
        return {
            'member_id': self.member_id,
            'community_id': self.community_id,
            'tier': self.tier,
            'last_activity_at': self.last_activity_at.isoformat() if self.last_activity_at else None,
            'warned_at': self.warned_at.isoformat() if self.warned_at else None,
            'pending_transition': self.pending_transition,
            'origin': self.origin,
        }
