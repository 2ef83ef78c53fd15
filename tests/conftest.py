"""
Shared fixtures for IdleKeeper tests.

The app fixture builds a fresh app with an in-memory SQLite database per test.
Tests push their own application context (`with app.app_context():`), inside
coroutines too, so tasks they spawn inherit it.
"""
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, Optional, Set

import pytest

from idlekeeper import create_app
from idlekeeper.extensions import db
from idlekeeper.gateway.base import PlatformGateway
from idlekeeper.models import ActivityRecord, PendingTransition, RecordOrigin, Tier
from idlekeeper.services.activity_store import ActivityStore
from idlekeeper.utils.exceptions import GatewayError, MemberNotFoundError

NOW = datetime(2026, 1, 15, 12, 0, 0)
COMMUNITY = 'guild-1'

ROLE_NAMES = {
    Tier.ACTIVE: 'Active',
    Tier.INACTIVE: 'Inactive',
    Tier.DORMANT: 'Dormant',
}


class FakeGateway(PlatformGateway):
    """
    In-memory platform.

    Failure injection:
        fail_next['add_grant'] = 2     # next two add_grant calls raise GatewayError
        drop_adds = 1                  # next add_grant is accepted but not applied
        dm_blocked.add(member_id)      # DMs to member raise GatewayError
    """

    def __init__(self):
        self.names: Dict[str, str] = {}
        self.roles: Dict[str, Dict[str, str]] = {}
        self.members: Dict[str, Dict[str, Set[str]]] = {}
        self.dms = []
        self.posts = []
        self.kicked = []
        self.calls = Counter()
        self.fail_next = Counter()
        self.drop_adds = 0
        self.dm_blocked = set()
        self._next_id = 1000

    # ==================== Setup helpers ====================

    def add_community(self, community_id: str = COMMUNITY, name: str = 'Test Server',
                      members=(), with_roles: bool = True):
        self.names[community_id] = name
        self.roles.setdefault(community_id, {})
        self.members.setdefault(community_id, {})
        if with_roles:
            for role_name in ROLE_NAMES.values():
                self.roles[community_id][role_name] = self._new_id()
        for member_id in members:
            self.members[community_id][member_id] = set()
        return self

    def add_member(self, member_id: str, community_id: str = COMMUNITY, roles=()):
        self.members[community_id][member_id] = {self.role_id(r, community_id) for r in roles}

    def role_id(self, name: str, community_id: str = COMMUNITY) -> str:
        return self.roles[community_id][name]

    def role_names_of(self, member_id: str, community_id: str = COMMUNITY) -> Set[str]:
        by_id = {grant_id: name for name, grant_id in self.roles[community_id].items()}
        return {by_id.get(g, g) for g in self.members[community_id][member_id]}

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    def _enter(self, method: str):
        self.calls[method] += 1
        if self.fail_next[method] > 0:
            self.fail_next[method] -= 1
            raise GatewayError(f'{method} failed (injected)')

    def _member_grants(self, community_id: str, member_id: str) -> Set[str]:
        members = self.members.get(community_id, {})
        if member_id not in members:
            raise MemberNotFoundError(member_id, community_id)
        return members[member_id]

    # ==================== PlatformGateway ====================

    async def list_communities(self):
        self._enter('list_communities')
        return list(self.names)

    async def community_name(self, community_id):
        self._enter('community_name')
        if community_id not in self.names:
            raise GatewayError(f'Unknown community {community_id}')
        return self.names[community_id]

    async def list_member_ids(self, community_id):
        self._enter('list_member_ids')
        return list(self.members.get(community_id, {}))

    async def list_grants(self, community_id):
        self._enter('list_grants')
        return dict(self.roles.get(community_id, {}))

    async def create_grant(self, community_id, name):
        self._enter('create_grant')
        grant_id = self._new_id()
        self.roles.setdefault(community_id, {})[name] = grant_id
        return grant_id

    async def fetch_member_grants(self, community_id, member_id):
        self._enter('fetch_member_grants')
        return set(self._member_grants(community_id, member_id))

    async def add_grant(self, community_id, member_id, grant_id):
        self._enter('add_grant')
        grants = self._member_grants(community_id, member_id)
        if grant_id not in self.roles[community_id].values():
            raise GatewayError(f'Unknown role {grant_id}')
        if self.drop_adds > 0:
            self.drop_adds -= 1
            return
        grants.add(grant_id)

    async def remove_grant(self, community_id, member_id, grant_id):
        self._enter('remove_grant')
        self._member_grants(community_id, member_id).discard(grant_id)

    async def kick_member(self, community_id, member_id, reason):
        self._enter('kick_member')
        self._member_grants(community_id, member_id)
        del self.members[community_id][member_id]
        self.kicked.append((community_id, member_id, reason))

    async def send_direct_message(self, member_id, content, checkin_button=False):
        self._enter('send_direct_message')
        if member_id in self.dm_blocked:
            raise GatewayError(f'Cannot send messages to {member_id}')
        self.dms.append((member_id, content, checkin_button))

    async def post_to_channel(self, community_id, channel_id, content, checkin_button=False):
        self._enter('post_to_channel')
        self.posts.append((community_id, channel_id, content, checkin_button))


@pytest.fixture
def app():
    """Create application for testing."""
    app = create_app('testing')

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def settings(app):
    """Lifecycle settings from TestingConfig (lead 2d, inactive 10d, dormant 30d, grace 1d)."""
    return app.extensions['lifecycle_settings']


@pytest.fixture
def store():
    return ActivityStore()


@pytest.fixture
def fake_gateway():
    return FakeGateway().add_community(COMMUNITY, members=['m1', 'm2', 'm3'])


@pytest.fixture
def make_record():
    """
    Insert a record directly. Call inside an app context.

        make_record('m1', tier=Tier.INACTIVE, idle=timedelta(days=29))
    """
    def _make(
        member_id: str,
        community_id: str = COMMUNITY,
        tier: Tier = Tier.ACTIVE,
        idle: timedelta = timedelta(0),
        pending: Optional[PendingTransition] = None,
        warned_ago: Optional[timedelta] = None,
        now: datetime = NOW
    ) -> ActivityRecord:
        record = ActivityRecord(
            member_id=member_id,
            community_id=community_id,
            tier=tier.value,
            last_activity_at=now - idle,
            pending_transition=pending.value if pending else None,
            warned_at=now - warned_ago if warned_ago is not None else None,
            origin=RecordOrigin.OBSERVED_ACTIVITY.value,
            created_at=now - idle,
        )
        db.session.add(record)
        db.session.commit()
        return record

    return _make
