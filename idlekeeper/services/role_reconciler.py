"""
Role Reconciler.

Makes a member's tier roles on the platform match exactly one role, the one
for their stored tier, and only reports success after re-reading the member
and confirming it.

Algorithm per attempt:
1. Resolve the three tier role ids for the community (cached; missing roles
   are created once).
2. Short-circuit if the member already holds exactly the target role among the three.
3. Remove the other tier roles, add the target, re-fetch, verify.

A failed verification or a transient platform error invalidates the
community's cached role ids and retries once. The reconciler never writes
internal state; callers commit after it returns.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional
from ..gateway.base import PlatformGateway
from ..models import Tier
from ..utils.cache import cache_key
from ..utils.exceptions import (
    GatewayError,
    GrantResolutionError,
    MemberNotFoundError,
    ReconciliationError,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2


class GrantCache:
    """
    Per-community tier role ids, kept for the process lifetime.

    Backed by a Flask-Caching instance; entries never expire on their own and
    are dropped with invalidate() when the platform disagrees with them.
    """

    def __init__(self, backend):
        self.backend = backend

    def _key(self, community_id: str) -> str:
        return cache_key('grants', community_id=community_id)

    def get(self, community_id: str) -> Optional[Dict[Tier, str]]:
        raw = self.backend.get(self._key(community_id))
        if not raw:
            return None
        return {Tier(tier): grant_id for tier, grant_id in raw.items()}

    def set(self, community_id: str, grants: Dict[Tier, str]) -> None:
        self.backend.set(
            self._key(community_id),
            {tier.value: grant_id for tier, grant_id in grants.items()},
            timeout=0
        )

    def invalidate(self, community_id: str) -> None:
        self.backend.delete(self._key(community_id))


@dataclass
class ReconcileResult:
    tier: Tier
    mutated: bool
    attempts: int


class RoleReconciler:
    """
    Keeps platform roles consistent with stored tiers.

    Usage:
        reconciler = RoleReconciler(gateway, grant_names, GrantCache(cache))
        await reconciler.reconcile(community_id, member_id, Tier.INACTIVE)
    """

    def __init__(
        self,
        gateway: PlatformGateway,
        grant_names: Dict[Tier, str],
        grant_cache: GrantCache,
        max_attempts: int = MAX_ATTEMPTS
    ):
        missing = [tier.value for tier in Tier if not grant_names.get(tier)]
        if missing:
            raise ValueError(f'No role name configured for tiers: {", ".join(missing)}')
        self.gateway = gateway
        self.grant_names = dict(grant_names)
        self.grant_cache = grant_cache
        self.max_attempts = max_attempts

    @classmethod
    def from_config(cls, gateway: PlatformGateway, config, grant_cache: GrantCache) -> 'RoleReconciler':
        return cls(
            gateway,
            {
                Tier.ACTIVE: config['ACTIVE_ROLE_NAME'],
                Tier.INACTIVE: config['INACTIVE_ROLE_NAME'],
                Tier.DORMANT: config['DORMANT_ROLE_NAME'],
            },
            grant_cache,
        )

    # ==================== Role resolution ====================

    async def resolve_grants(self, community_id: str) -> Dict[Tier, str]:
        """
        Role ids for all three tiers, creating any role the community lacks.

        Raises:
            GrantResolutionError: If a missing role cannot be created
        """
        cached = self.grant_cache.get(community_id)
        if cached:
            return cached

        existing = await self.gateway.list_grants(community_id)
        grants = {}
        for tier, name in self.grant_names.items():
            grant_id = existing.get(name)
            if grant_id is None:
                try:
                    grant_id = await self.gateway.create_grant(community_id, name)
                except GatewayError as e:
                    raise GrantResolutionError(community_id, name, e)
                logger.info(f'[Roles] Created role "{name}" in community {community_id}')
            grants[tier] = grant_id

        self.grant_cache.set(community_id, grants)
        return grants

    # ==================== Reconciliation ====================

    async def reconcile(self, community_id: str, member_id: str, tier: Tier) -> ReconcileResult:
        """
        Bring the member's tier roles in line with tier.

        Returns:
            ReconcileResult; mutated is False when nothing had to change

        Raises:
            ReconciliationError: After max_attempts failed attempts
            MemberNotFoundError: If the member is no longer in the community
            GrantResolutionError: If tier roles cannot be created
        """
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                mutated = await self._attempt(community_id, member_id, tier)
                if mutated is not None:
                    if mutated:
                        logger.info(
                            f'[Roles] {community_id}/{member_id} -> {tier.value} '
                            f'(attempt {attempt})'
                        )
                    return ReconcileResult(tier=tier, mutated=mutated, attempts=attempt)
                logger.warning(
                    f'[Roles] Verification failed for {community_id}/{member_id} -> {tier.value} '
                    f'(attempt {attempt}/{self.max_attempts})'
                )
            except MemberNotFoundError:
                raise
            except GatewayError as e:
                last_error = e
                logger.warning(
                    f'[Roles] Platform error for {community_id}/{member_id} -> {tier.value} '
                    f'(attempt {attempt}/{self.max_attempts}): {e}'
                )

            self.grant_cache.invalidate(community_id)

        raise ReconciliationError(community_id, member_id, tier.value, self.max_attempts, last_error)

    async def _attempt(self, community_id: str, member_id: str, tier: Tier) -> Optional[bool]:
        """One resolve/mutate/verify pass. Returns None when verification fails."""
        grants = await self.resolve_grants(community_id)
        target = grants[tier]
        tier_grants = set(grants.values())

        held = await self.gateway.fetch_member_grants(community_id, member_id) & tier_grants
        if held == {target}:
            return False

        for grant_id in held - {target}:
            await self.gateway.remove_grant(community_id, member_id, grant_id)
        if target not in held:
            await self.gateway.add_grant(community_id, member_id, target)

        verified = await self.gateway.fetch_member_grants(community_id, member_id) & tier_grants
        if verified != {target}:
            return None
        return True
