"""
Business logic services for IdleKeeper.
"""
from .activity_store import ActivityStore
from .lifecycle_policy import Action, Decision, evaluate
from .role_reconciler import GrantCache, RoleReconciler
from .notifier import Notifier
from .removal_service import RemovalService
from .activity_ingress import ActivityIngress, EventDispatcher
from .sweep_scheduler import SweepScheduler, SweepStats
