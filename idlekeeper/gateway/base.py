"""
Platform gateway interface.

Everything the lifecycle code needs from the chat platform, expressed with
plain string ids so the core never touches platform objects. Implementations
raise GatewayError for failures and MemberNotFoundError when a member is gone.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Set


class PlatformGateway(ABC):
    """Async boundary to the chat platform."""

    # ==================== Communities ====================

    @abstractmethod
    async def list_communities(self) -> List[str]:
        """Ids of every community the bot is a member of."""

    @abstractmethod
    async def community_name(self, community_id: str) -> str:
        """Display name of a community (used in member-facing copy)."""

    @abstractmethod
    async def list_member_ids(self, community_id: str) -> List[str]:
        """Ids of all human members of a community."""

    # ==================== Role grants ====================

    @abstractmethod
    async def list_grants(self, community_id: str) -> Dict[str, str]:
        """Role name -> role id for the community."""

    @abstractmethod
    async def create_grant(self, community_id: str, name: str) -> str:
        """Create a role and return its id."""

    @abstractmethod
    async def fetch_member_grants(self, community_id: str, member_id: str) -> Set[str]:
        """Role ids the member currently holds, fetched fresh from the platform."""

    @abstractmethod
    async def add_grant(self, community_id: str, member_id: str, grant_id: str) -> None:
        """Give the member a role."""

    @abstractmethod
    async def remove_grant(self, community_id: str, member_id: str, grant_id: str) -> None:
        """Take a role away from the member."""

    # ==================== Membership ====================

    @abstractmethod
    async def kick_member(self, community_id: str, member_id: str, reason: str) -> None:
        """Remove the member from the community."""

    # ==================== Messaging ====================

    @abstractmethod
    async def send_direct_message(self, member_id: str, content: str, checkin_button: bool = False) -> None:
        """DM a member, optionally with the "I'm still here" check-in button."""

    @abstractmethod
    async def post_to_channel(
        self,
        community_id: str,
        channel_id: str,
        content: str,
        checkin_button: bool = False
    ) -> None:
        """Post a message in a community channel."""
