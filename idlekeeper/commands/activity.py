"""
CLI Commands for the activity lifecycle.

The bot itself is a long-running process:

    flask activity run-bot

The remaining commands inspect or repair stored state and never talk to Discord.
"""

import click
from flask import current_app
from flask.cli import with_appcontext
from ..config import LifecycleSettings
from ..models import Tier
from ..services.activity_store import ActivityStore
from ..utils.clock import format_duration, utcnow
from ..utils.exceptions import ConfigurationError


@click.group('activity')
def activity_cli():
    """Activity tier commands."""
    pass


@activity_cli.command('run-bot')
@with_appcontext
def run_bot_command():
    """
    Connect to Discord, sync members and start the sweep.

    Blocks until the process is stopped.
    """
    from ..gateway.bot import run_bot

    try:
        run_bot(current_app._get_current_object())
    except ConfigurationError as e:
        raise click.ClickException(e.message)


@activity_cli.command('stats')
@click.option('--community-id', required=True, help='Discord guild ID')
@with_appcontext
def tier_stats(community_id):
    """Show tier counts for a community."""
    counts = ActivityStore().tier_counts(community_id)

    click.echo(f"\nTier statistics for community {community_id}:")
    for tier in Tier:
        click.echo(f"  {tier.value.capitalize()}: {counts[tier.value]}")
    click.echo(f"  Pending warnings: {counts['pending_warnings']}")
    click.echo(f"  Total tracked: {sum(counts[tier.value] for tier in Tier)}")


@activity_cli.command('list-dormant')
@click.option('--community-id', required=True, help='Discord guild ID')
@click.option('--limit', type=int, default=50, help='Maximum members to show (default: 50)')
@with_appcontext
def list_dormant(community_id, limit):
    """
    List Dormant members, oldest activity first.

    These are the members /kick-dormant would remove.
    """
    records = ActivityStore().list_by_tier(community_id, Tier.DORMANT)
    now = utcnow()

    click.echo(f"\nDormant members in community {community_id}: {len(records)}")
    for record in records[:limit]:
        idle = format_duration(now - record.last_activity_at)
        click.echo(f"  {record.member_id}: last active {record.last_activity_at:%Y-%m-%d %H:%M} ({idle} ago)")
    if len(records) > limit:
        click.echo(f"  ... and {len(records) - limit} more")


@activity_cli.command('reset-member')
@click.option('--community-id', required=True, help='Discord guild ID')
@click.option('--member-id', required=True, help='Discord user ID')
@with_appcontext
def reset_member(community_id, member_id):
    """
    Mark a member Active as if they had just posted.

    Roles are brought in line the next time the bot sees the member.
    """
    store = ActivityStore()
    previous = store.get(member_id, community_id)
    previous_tier = previous.tier if previous else None

    record = store.upsert_active(member_id, community_id, utcnow())

    if previous_tier is None:
        click.echo(f"Created Active record for {member_id} in {community_id}")
    else:
        click.echo(f"Reset {member_id} in {community_id}: {previous_tier} -> {record.tier}")
    click.echo("Note: Discord roles are unchanged until the bot next sees this member or runs a sweep.")


@activity_cli.command('check-config')
@with_appcontext
def check_config():
    """Validate lifecycle timings and show the effective values."""
    try:
        settings = LifecycleSettings.from_config(current_app.config)
    except ConfigurationError as e:
        raise click.ClickException(f"Invalid configuration: {e.message}")

    click.echo("\nLifecycle settings:")
    click.echo(f"  Warn lead: {format_duration(settings.warn_lead)}")
    click.echo(f"  Inactive after: {format_duration(settings.inactive_after)}")
    click.echo(f"  Dormant after: {format_duration(settings.dormant_after)}")
    click.echo(f"  Warn grace: {format_duration(settings.warn_grace)}")
    click.echo(f"  Sweep interval: {format_duration(settings.sweep_interval)}")
    if settings.kick_after is None:
        click.echo("  Kick after: disabled (admin kicks only)")
    else:
        click.echo(f"  Kick after: {format_duration(settings.kick_after)}")

    click.echo("\nRoles:")
    for key in ('ACTIVE_ROLE_NAME', 'INACTIVE_ROLE_NAME', 'DORMANT_ROLE_NAME'):
        click.echo(f"  {key}: {current_app.config.get(key)}")

    click.echo(f"\nDISCORD_TOKEN: {'set' if current_app.config.get('DISCORD_TOKEN') else 'NOT SET'}")
    click.echo(f"Fallback channel: {current_app.config.get('FALLBACK_CHANNEL_ID') or 'none'}")
    click.echo("\nConfiguration OK")


def init_app(app):
    """Register CLI commands with the Flask app."""
    app.cli.add_command(activity_cli)
