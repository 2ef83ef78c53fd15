"""
Tests for the discord.py gateway adapter.

discord.py objects are replaced with mocks; only error mapping and id
conversion are exercised here.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

import discord

from idlekeeper.gateway.discord_gateway import CHECKIN_CUSTOM_ID, DiscordGateway
from idlekeeper.utils.exceptions import GatewayError, MemberNotFoundError


def http_error(cls, status, code, message):
    response = MagicMock(status=status, reason=message)
    return cls(response, {'code': code, 'message': message})


@pytest.fixture
def guild():
    guild = MagicMock()
    guild.id = 111
    guild.name = 'Test Server'
    return guild


@pytest.fixture
def client(guild):
    client = MagicMock()
    client.guilds = [guild]
    client.get_guild.return_value = guild
    return client


@pytest.fixture
def gateway(client):
    return DiscordGateway(client)


class TestCommunities:
    """Tests for guild lookups."""

    @pytest.mark.asyncio
    async def test_list_communities(self, gateway):
        assert await gateway.list_communities() == ['111']

    @pytest.mark.asyncio
    async def test_community_name(self, gateway, client):
        assert await gateway.community_name('111') == 'Test Server'
        client.get_guild.assert_called_with(111)

    @pytest.mark.asyncio
    async def test_list_grants(self, gateway, guild):
        role = MagicMock()
        role.name = 'Active'
        role.id = 555
        guild.fetch_roles = AsyncMock(return_value=[role])

        assert await gateway.list_grants('111') == {'Active': '555'}


class TestErrorMapping:
    """Tests for discord.py exception translation."""

    @pytest.mark.asyncio
    async def test_unknown_member_on_kick(self, gateway, guild):
        guild.kick = AsyncMock(side_effect=http_error(discord.NotFound, 404, 10007, 'Unknown Member'))

        with pytest.raises(MemberNotFoundError):
            await gateway.kick_member('111', '42', 'Prolonged inactivity')

    @pytest.mark.asyncio
    async def test_unknown_role_is_not_member_error(self, gateway, guild):
        member = MagicMock()
        member.add_roles = AsyncMock(side_effect=http_error(discord.NotFound, 404, 10011, 'Unknown Role'))
        guild.fetch_member = AsyncMock(return_value=member)

        with pytest.raises(GatewayError) as exc_info:
            await gateway.add_grant('111', '42', '999')

        assert not isinstance(exc_info.value, MemberNotFoundError)

    @pytest.mark.asyncio
    async def test_fetch_member_grants_for_departed_member(self, gateway, guild):
        guild.fetch_member = AsyncMock(side_effect=http_error(discord.NotFound, 404, 10007, 'Unknown Member'))

        with pytest.raises(MemberNotFoundError):
            await gateway.fetch_member_grants('111', '42')

    @pytest.mark.asyncio
    async def test_closed_dms(self, gateway, client):
        user = MagicMock()
        user.send = AsyncMock(side_effect=http_error(discord.Forbidden, 403, 50007, 'Cannot send messages to this user'))
        client.get_user.return_value = user

        with pytest.raises(GatewayError):
            await gateway.send_direct_message('42', 'hello')


class TestMessaging:
    """Tests for message delivery."""

    @pytest.mark.asyncio
    async def test_dm_with_checkin_button(self, gateway, client):
        user = MagicMock()
        user.send = AsyncMock()
        client.get_user.return_value = user

        await gateway.send_direct_message('42', 'hello', checkin_button=True)

        view = user.send.call_args.kwargs['view']
        assert [item.custom_id for item in view.children] == [CHECKIN_CUSTOM_ID]

    @pytest.mark.asyncio
    async def test_fetches_uncached_user(self, gateway, client):
        user = MagicMock()
        user.send = AsyncMock()
        client.get_user.return_value = None
        client.fetch_user = AsyncMock(return_value=user)

        await gateway.send_direct_message('42', 'hello')

        client.fetch_user.assert_awaited_once_with(42)
        user.send.assert_awaited_once_with('hello')

    @pytest.mark.asyncio
    async def test_post_to_channel(self, gateway, guild):
        channel = MagicMock()
        channel.send = AsyncMock()
        guild.get_channel.return_value = channel

        await gateway.post_to_channel('111', '777', 'notice')

        guild.get_channel.assert_called_once_with(777)
        assert channel.send.call_args.args == ('notice',)
