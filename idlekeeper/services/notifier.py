"""
Notifier.

Best-effort member notifications. Delivery order: direct message first, then a
mention in the fallback channel when one is configured. Nothing here raises;
every method reports whether some channel accepted the message.
"""
import logging
from typing import Optional
from ..config import LifecycleSettings
from ..gateway.base import PlatformGateway
from ..models import PendingTransition, Tier
from ..utils.clock import format_duration
from ..utils.exceptions import GatewayError

logger = logging.getLogger(__name__)


WARN_INACTIVE_TEMPLATE = (
    "⚠️ You will lose the **{active_role}** role in **{community}** soon due to inactivity. "
    "Send a message or click the button below to stay active!"
)
WARN_DORMANT_TEMPLATE = (
    "⚠️ You will be marked **{dormant_role}** in **{community}** soon for prolonged inactivity. "
    "Send a message or click the button below to stay!"
)
WARN_REMOVAL_TEMPLATE = (
    "⚠️ You will be **removed** from **{community}** soon for prolonged inactivity. "
    "Click the button below to stay!"
)
INACTIVE_TEMPLATE = (
    "📢 You have been marked as **{inactive_role}** in **{community}**.\n"
    "You haven't been active in the last {inactive_after}.\n\n"
    "To regain your **{active_role}** status, simply send a message in any channel "
    "or click the button below!"
)
DORMANT_TEMPLATE = (
    "🚨 You have been marked as **{dormant_role}** in **{community}**.\n"
    "You haven't been active in the last {dormant_after}.\n\n"
    "To regain your **{active_role}** status, simply send a message in any channel "
    "or click the button below."
)
FAREWELL_TEMPLATE = (
    "You've been removed from **{community}** for prolonged inactivity, but you're "
    "always welcome back whenever you feel like chatting again!"
)
FALLBACK_PREFIX = "📢 Notification for <@{member_id}>:\n"

WARN_TEMPLATES = {
    PendingTransition.TO_INACTIVE: WARN_INACTIVE_TEMPLATE,
    PendingTransition.TO_DORMANT: WARN_DORMANT_TEMPLATE,
    PendingTransition.TO_REMOVED: WARN_REMOVAL_TEMPLATE,
}


class Notifier:
    """
    Member-facing notifications with DM-then-channel fallback.

    Usage:
        notifier = Notifier(gateway, settings, role_names, fallback_channel_id)
        await notifier.warn(community_id, member_id, PendingTransition.TO_INACTIVE)
    """

    def __init__(
        self,
        gateway: PlatformGateway,
        settings: LifecycleSettings,
        role_names: dict,
        fallback_channel_id: Optional[str] = None
    ):
        self.gateway = gateway
        self.settings = settings
        self.role_names = role_names
        self.fallback_channel_id = fallback_channel_id

    # ==================== Lifecycle messages ====================

    async def warn(self, community_id: str, member_id: str, pending: PendingTransition) -> bool:
        template = WARN_TEMPLATES[pending]
        content = await self._render(template, community_id)
        return await self.send(community_id, member_id, content, checkin_button=True)

    async def notify_transition(self, community_id: str, member_id: str, tier: Tier) -> bool:
        if tier is Tier.INACTIVE:
            template = INACTIVE_TEMPLATE
        elif tier is Tier.DORMANT:
            template = DORMANT_TEMPLATE
        else:
            return False
        content = await self._render(template, community_id)
        return await self.send(community_id, member_id, content, checkin_button=True)

    async def farewell(self, community_id: str, member_id: str) -> bool:
        """DM only: the member is about to lose access to the fallback channel."""
        content = await self._render(FAREWELL_TEMPLATE, community_id)
        try:
            await self.gateway.send_direct_message(member_id, content)
            return True
        except GatewayError as e:
            logger.info(f'[Notify] Farewell to {member_id} not delivered: {e}')
            return False

    # ==================== Delivery ====================

    async def send(self, community_id: str, member_id: str, content: str, checkin_button: bool = False) -> bool:
        """
        Deliver content to a member.

        Returns:
            True if the DM or the fallback post was accepted
        """
        try:
            await self.gateway.send_direct_message(member_id, content, checkin_button=checkin_button)
            return True
        except GatewayError as e:
            logger.info(f'[Notify] DM to {member_id} failed ({e}), trying fallback channel')

        if not self.fallback_channel_id:
            logger.warning(f'[Notify] No fallback channel configured, {member_id} not notified')
            return False

        try:
            await self.gateway.post_to_channel(
                community_id,
                self.fallback_channel_id,
                FALLBACK_PREFIX.format(member_id=member_id) + content,
                checkin_button=checkin_button
            )
            return True
        except GatewayError as e:
            logger.warning(
                f'[Notify] Fallback notification for {member_id} in {community_id} failed: {e}'
            )
            return False

    async def _render(self, template: str, community_id: str) -> str:
        try:
            community = await self.gateway.community_name(community_id)
        except GatewayError:
            community = 'this server'
        return template.format(
            community=community,
            active_role=self.role_names[Tier.ACTIVE],
            inactive_role=self.role_names[Tier.INACTIVE],
            dormant_role=self.role_names[Tier.DORMANT],
            inactive_after=format_duration(self.settings.inactive_after),
            dormant_after=format_duration(self.settings.dormant_after),
        )
