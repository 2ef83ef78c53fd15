"""
Database models for IdleKeeper.
"""
from .activity import (
    ActivityRecord,
    ActivitySnapshot,
    PendingTransition,
    RecordOrigin,
    Tier,
)

__all__ = [
    'ActivityRecord',
    'ActivitySnapshot',
    'PendingTransition',
    'RecordOrigin',
    'Tier',
]
