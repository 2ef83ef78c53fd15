"""
Discord client wiring.

Builds the service graph from the Flask app config and forwards discord.py
events to ActivityIngress through an EventDispatcher. The sweep starts once the
initial member sync has finished, and close() waits for the in-flight cycle
and any running event handlers before disconnecting.
"""
import logging
import discord
from discord import app_commands
from ..services.activity_ingress import ActivityIngress, EventDispatcher
from ..services.activity_store import ActivityStore
from ..services.notifier import Notifier
from ..services.removal_service import RemovalService
from ..services.role_reconciler import GrantCache, RoleReconciler
from ..services.sweep_scheduler import SweepScheduler
from ..utils.cache import cache
from ..utils.exceptions import ConfigurationError, IdleKeeperError
from .discord_gateway import CHECKIN_CUSTOM_ID, DiscordGateway

logger = logging.getLogger(__name__)


def default_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.members = True  # join/leave events and full member lists
    intents.message_content = False
    return intents


class IdleKeeperBot(discord.Client):
    """Activity tier bot. One instance per process."""

    def __init__(self, app, intents: discord.Intents = None):
        super().__init__(intents=intents or default_intents())
        self.app = app
        self.tree = app_commands.CommandTree(self)

        settings = app.extensions['lifecycle_settings']
        self.gateway = DiscordGateway(self)
        self.store = ActivityStore()
        self.reconciler = RoleReconciler.from_config(self.gateway, app.config, GrantCache(cache))
        self.notifier = Notifier(
            self.gateway,
            settings,
            self.reconciler.grant_names,
            app.config.get('FALLBACK_CHANNEL_ID')
        )
        self.removal = RemovalService(self.gateway, self.store, self.notifier)
        self.ingress = ActivityIngress(self.gateway, self.store, self.reconciler)
        self.scheduler = SweepScheduler(
            self.gateway,
            self.store,
            self.reconciler,
            self.notifier,
            self.removal,
            settings,
            app=app
        )
        self.dispatcher = EventDispatcher()
        self._initial_sync_done = False
        self._register_commands()

    # ==================== Slash commands ====================

    def _register_commands(self):
        @self.tree.command(name='kick-dormant', description='Kick all members with the Dormant role')
        @app_commands.describe(confirm='Set to true to kick; leave false to see who would be removed')
        @app_commands.default_permissions(kick_members=True)
        @app_commands.guild_only()
        async def kick_dormant(interaction: discord.Interaction, confirm: bool = False):
            await interaction.response.defer(ephemeral=True, thinking=True)
            community_id = str(interaction.guild_id)
            logger.info(f'[Bot] /kick-dormant confirm={confirm} by {interaction.user.id} in {community_id}')

            if not confirm:
                preview = self.removal.preview_dormant(community_id)
                await interaction.followup.send(
                    f"{preview['count']} dormant member(s) would be kicked. "
                    f"Run again with confirm:true to proceed.",
                    ephemeral=True
                )
                return

            result = await self.removal.kick_dormant(community_id)
            await interaction.followup.send(
                f"Kicked {result['kicked']} dormant member(s). {result['failed']} could not be kicked.",
                ephemeral=True
            )

    async def setup_hook(self) -> None:
        await self.tree.sync()
        logger.info('[Bot] Slash commands synced')

    # ==================== Events ====================

    async def on_ready(self):
        logger.info(f'[Bot] Logged in as {self.user} ({len(self.guilds)} guilds)')
        # on_ready fires again after every reconnect
        if self._initial_sync_done:
            return
        self._initial_sync_done = True

        for guild in self.guilds:
            try:
                await self.ingress.sync_community(str(guild.id))
            except IdleKeeperError as e:
                logger.error(f'[Bot] Initial sync of {guild.id} failed: {e}')

        self.scheduler.start()

    async def on_guild_join(self, guild: discord.Guild):
        self.dispatcher.spawn('guild_join', self.ingress.sync_community(str(guild.id)))

    async def on_message(self, message: discord.Message):
        if message.author.bot or message.guild is None:
            return
        self.dispatcher.spawn(
            'message',
            self.ingress.on_activity(str(message.author.id), str(message.guild.id))
        )

    async def on_member_join(self, member: discord.Member):
        if member.bot:
            return
        self.dispatcher.spawn(
            'member_join',
            self.ingress.on_member_join(str(member.id), str(member.guild.id))
        )

    async def on_member_remove(self, member: discord.Member):
        self.dispatcher.spawn(
            'member_remove',
            self.ingress.on_member_leave(str(member.id), str(member.guild.id))
        )

    async def on_interaction(self, interaction: discord.Interaction):
        if interaction.type is not discord.InteractionType.component:
            return
        if (interaction.data or {}).get('custom_id') != CHECKIN_CUSTOM_ID:
            return
        self.dispatcher.spawn('checkin', self._handle_checkin(interaction))

    async def _handle_checkin(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        community_id = str(interaction.guild_id) if interaction.guild_id else None
        applied = await self.ingress.on_checkin(str(interaction.user.id), community_id)
        if applied is None:
            await interaction.followup.send(
                "I couldn't find a server where you're being tracked.", ephemeral=True
            )
            return
        await interaction.followup.send("✅ You've been marked as active!", ephemeral=True)

    async def close(self) -> None:
        logger.info('[Bot] Shutting down')
        await self.scheduler.stop()
        await self.dispatcher.drain()
        await super().close()


def run_bot(app) -> None:
    """
    Connect to Discord and block until the client closes.

    Raises:
        ConfigurationError: If DISCORD_TOKEN is not configured
    """
    token = app.config.get('DISCORD_TOKEN')
    if not token:
        raise ConfigurationError('DISCORD_TOKEN environment variable is not set', field='DISCORD_TOKEN')

    bot = IdleKeeperBot(app)
    # Event tasks inherit this context, so they all share one scoped session
    with app.app_context():
        bot.run(token, log_handler=None)
