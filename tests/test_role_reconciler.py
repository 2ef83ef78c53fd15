"""
Tests for RoleReconciler.

Tests cover:
- Exactly one tier role after reconciliation
- Idempotence (no platform writes when already correct)
- Role creation and caching
- Verification failure retry and cache invalidation
- Stale cached role ids
- Terminal failures
"""
import pytest

from idlekeeper.models import Tier
from idlekeeper.services.role_reconciler import GrantCache, RoleReconciler
from idlekeeper.utils.cache import cache
from idlekeeper.utils.exceptions import (
    GrantResolutionError,
    MemberNotFoundError,
    ReconciliationError,
)
from conftest import COMMUNITY, ROLE_NAMES, FakeGateway


@pytest.fixture
def reconciler(fake_gateway):
    return RoleReconciler(fake_gateway, ROLE_NAMES, GrantCache(cache))


class TestReconcile:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_assigns_target_and_strips_other_tiers(self, app, fake_gateway, reconciler):
        fake_gateway.add_member('m1', roles=['Active', 'Inactive'])

        with app.app_context():
            result = await reconciler.reconcile(COMMUNITY, 'm1', Tier.DORMANT)

        assert result.mutated is True
        assert result.attempts == 1
        assert fake_gateway.role_names_of('m1') == {'Dormant'}

    @pytest.mark.asyncio
    async def test_second_call_is_noop(self, app, fake_gateway, reconciler):
        with app.app_context():
            await reconciler.reconcile(COMMUNITY, 'm1', Tier.ACTIVE)
            adds = fake_gateway.calls['add_grant']

            result = await reconciler.reconcile(COMMUNITY, 'm1', Tier.ACTIVE)

        assert result.mutated is False
        assert fake_gateway.calls['add_grant'] == adds
        assert fake_gateway.calls['remove_grant'] == 0

    @pytest.mark.asyncio
    async def test_other_roles_untouched(self, app, fake_gateway, reconciler):
        fake_gateway.roles[COMMUNITY]['Moderator'] = '42'
        fake_gateway.add_member('m1', roles=['Moderator', 'Inactive'])

        with app.app_context():
            await reconciler.reconcile(COMMUNITY, 'm1', Tier.ACTIVE)

        assert fake_gateway.role_names_of('m1') == {'Moderator', 'Active'}


class TestGrantResolution:
    """Tests for role lookup and creation."""

    @pytest.mark.asyncio
    async def test_creates_missing_roles_once(self, app):
        gateway = FakeGateway().add_community(COMMUNITY, members=['m1', 'm2'], with_roles=False)
        reconciler = RoleReconciler(gateway, ROLE_NAMES, GrantCache(cache))

        with app.app_context():
            await reconciler.reconcile(COMMUNITY, 'm1', Tier.ACTIVE)
            await reconciler.reconcile(COMMUNITY, 'm2', Tier.ACTIVE)

        assert gateway.calls['create_grant'] == 3
        assert gateway.calls['list_grants'] == 1
        assert set(gateway.roles[COMMUNITY]) == {'Active', 'Inactive', 'Dormant'}

    @pytest.mark.asyncio
    async def test_create_failure_raises(self, app):
        gateway = FakeGateway().add_community(COMMUNITY, members=['m1'], with_roles=False)
        gateway.fail_next['create_grant'] = 1
        reconciler = RoleReconciler(gateway, ROLE_NAMES, GrantCache(cache))

        with app.app_context():
            with pytest.raises(GrantResolutionError):
                await reconciler.reconcile(COMMUNITY, 'm1', Tier.ACTIVE)

    def test_missing_role_name_rejected(self, fake_gateway):
        with pytest.raises(ValueError):
            RoleReconciler(fake_gateway, {Tier.ACTIVE: 'Active'}, GrantCache(cache))

    def test_from_config(self, app, fake_gateway):
        reconciler = RoleReconciler.from_config(fake_gateway, app.config, GrantCache(cache))
        assert reconciler.grant_names == ROLE_NAMES


class TestRetry:
    """Tests for verification failure and retry."""

    @pytest.mark.asyncio
    async def test_verification_failure_retries(self, app, fake_gateway, reconciler):
        fake_gateway.drop_adds = 1

        with app.app_context():
            result = await reconciler.reconcile(COMMUNITY, 'm1', Tier.INACTIVE)

        assert result.attempts == 2
        assert fake_gateway.role_names_of('m1') == {'Inactive'}
        # Cache was invalidated between attempts
        assert fake_gateway.calls['list_grants'] == 2

    @pytest.mark.asyncio
    async def test_stale_cached_role_recovers(self, app, fake_gateway, reconciler):
        """A tier role deleted and recreated on the platform is re-resolved on retry."""
        with app.app_context():
            await reconciler.reconcile(COMMUNITY, 'm1', Tier.ACTIVE)

            fake_gateway.roles[COMMUNITY]['Inactive'] = '9999'

            result = await reconciler.reconcile(COMMUNITY, 'm1', Tier.INACTIVE)

        assert result.attempts == 2
        assert fake_gateway.members[COMMUNITY]['m1'] == {'9999'}

    @pytest.mark.asyncio
    async def test_persistent_failure_raises(self, app, fake_gateway, reconciler):
        fake_gateway.fail_next['add_grant'] = 2

        with app.app_context():
            with pytest.raises(ReconciliationError) as exc_info:
                await reconciler.reconcile(COMMUNITY, 'm1', Tier.ACTIVE)

        assert exc_info.value.attempts == 2
        assert exc_info.value.code == 'RECONCILIATION_FAILED'

    @pytest.mark.asyncio
    async def test_missing_member_not_retried(self, app, fake_gateway, reconciler):
        with app.app_context():
            with pytest.raises(MemberNotFoundError):
                await reconciler.reconcile(COMMUNITY, 'ghost', Tier.ACTIVE)

        assert fake_gateway.calls['fetch_member_grants'] == 1
