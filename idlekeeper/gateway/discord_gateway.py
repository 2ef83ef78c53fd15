"""
discord.py implementation of PlatformGateway.

Communities are guilds, grants are roles. Every discord.py failure is mapped
to GatewayError; "Unknown Member" / "Unknown User" responses become
MemberNotFoundError so callers can stop retrying a member who left.
"""
import logging
from typing import Awaitable, Dict, List, Optional, Set
import discord
from ..utils.exceptions import GatewayError, MemberNotFoundError
from .base import PlatformGateway

logger = logging.getLogger(__name__)

CHECKIN_CUSTOM_ID = 'activity-register'
CHECKIN_LABEL = "I'm still here!"

# Discord JSON error codes
UNKNOWN_MEMBER = 10007
UNKNOWN_USER = 10013

ROLE_REASON = 'Activity tier update'


def build_checkin_view() -> discord.ui.View:
    """Message component carrying the check-in button. Presses are handled in on_interaction."""
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(
        label=CHECKIN_LABEL,
        style=discord.ButtonStyle.primary,
        custom_id=CHECKIN_CUSTOM_ID
    ))
    return view


class DiscordGateway(PlatformGateway):
    """
    Gateway over a connected discord.Client.

    Usage:
        gateway = DiscordGateway(client)
        grants = await gateway.list_grants(guild_id)
    """

    def __init__(self, client: discord.Client):
        self.client = client

    async def _call(
        self,
        description: str,
        awaitable: Awaitable,
        member_id: Optional[str] = None,
        community_id: Optional[str] = None
    ):
        try:
            return await awaitable
        except discord.NotFound as e:
            if member_id is not None and e.code in (UNKNOWN_MEMBER, UNKNOWN_USER):
                raise MemberNotFoundError(member_id, community_id)
            raise GatewayError(f'{description}: not found ({e.text})', e)
        except discord.HTTPException as e:
            raise GatewayError(f'{description} failed: {e.status} {e.text}', e)
        except discord.DiscordException as e:
            raise GatewayError(f'{description} failed: {e}', e)

    async def _guild(self, community_id: str) -> discord.Guild:
        guild = self.client.get_guild(int(community_id))
        if guild is None:
            guild = await self._call(
                f'Fetch guild {community_id}',
                self.client.fetch_guild(int(community_id))
            )
        return guild

    async def _member(self, guild: discord.Guild, member_id: str) -> discord.Member:
        """Fresh member state from the API, never the gateway cache."""
        return await self._call(
            f'Fetch member {member_id}',
            guild.fetch_member(int(member_id)),
            member_id=member_id,
            community_id=str(guild.id)
        )

    # ==================== Communities ====================

    async def list_communities(self) -> List[str]:
        return [str(guild.id) for guild in self.client.guilds]

    async def community_name(self, community_id: str) -> str:
        guild = await self._guild(community_id)
        return guild.name

    async def list_member_ids(self, community_id: str) -> List[str]:
        guild = await self._guild(community_id)
        try:
            return [str(m.id) async for m in guild.fetch_members(limit=None) if not m.bot]
        except discord.DiscordException as e:
            raise GatewayError(f'Listing members of {community_id} failed: {e}', e)

    # ==================== Role grants ====================

    async def list_grants(self, community_id: str) -> Dict[str, str]:
        guild = await self._guild(community_id)
        roles = await self._call(f'Fetch roles of {community_id}', guild.fetch_roles())
        return {role.name: str(role.id) for role in roles}

    async def create_grant(self, community_id: str, name: str) -> str:
        guild = await self._guild(community_id)
        role = await self._call(
            f'Create role "{name}" in {community_id}',
            guild.create_role(name=name, reason='Activity tier role')
        )
        return str(role.id)

    async def fetch_member_grants(self, community_id: str, member_id: str) -> Set[str]:
        guild = await self._guild(community_id)
        member = await self._member(guild, member_id)
        return {str(role.id) for role in member.roles}

    async def add_grant(self, community_id: str, member_id: str, grant_id: str) -> None:
        guild = await self._guild(community_id)
        member = await self._member(guild, member_id)
        await self._call(
            f'Add role {grant_id} to {member_id}',
            member.add_roles(discord.Object(id=int(grant_id)), reason=ROLE_REASON),
            member_id=member_id,
            community_id=community_id
        )

    async def remove_grant(self, community_id: str, member_id: str, grant_id: str) -> None:
        guild = await self._guild(community_id)
        member = await self._member(guild, member_id)
        await self._call(
            f'Remove role {grant_id} from {member_id}',
            member.remove_roles(discord.Object(id=int(grant_id)), reason=ROLE_REASON),
            member_id=member_id,
            community_id=community_id
        )

    # ==================== Membership ====================

    async def kick_member(self, community_id: str, member_id: str, reason: str) -> None:
        guild = await self._guild(community_id)
        await self._call(
            f'Kick {member_id} from {community_id}',
            guild.kick(discord.Object(id=int(member_id)), reason=reason),
            member_id=member_id,
            community_id=community_id
        )

    # ==================== Messaging ====================

    async def send_direct_message(self, member_id: str, content: str, checkin_button: bool = False) -> None:
        user = self.client.get_user(int(member_id))
        if user is None:
            user = await self._call(
                f'Fetch user {member_id}',
                self.client.fetch_user(int(member_id)),
                member_id=member_id
            )
        kwargs = {'view': build_checkin_view()} if checkin_button else {}
        await self._call(f'DM to {member_id}', user.send(content, **kwargs))

    async def post_to_channel(
        self,
        community_id: str,
        channel_id: str,
        content: str,
        checkin_button: bool = False
    ) -> None:
        guild = await self._guild(community_id)
        channel = guild.get_channel(int(channel_id))
        if channel is None:
            channel = await self._call(
                f'Fetch channel {channel_id}',
                self.client.fetch_channel(int(channel_id))
            )
        kwargs = {'view': build_checkin_view()} if checkin_button else {}
        await self._call(
            f'Post to channel {channel_id}',
            channel.send(content, allowed_mentions=discord.AllowedMentions(users=True), **kwargs)
        )
