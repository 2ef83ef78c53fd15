"""
CLI Commands for IdleKeeper.

Usage:
    flask activity run-bot                                   # Connect to Discord and start sweeping
    flask activity stats --community-id 123                  # Tier counts for a community
    flask activity list-dormant --community-id 123           # Dormant members, oldest activity first
    flask activity reset-member --community-id 123 --member-id 456
    flask activity check-config                              # Validate lifecycle timings
"""
from .activity import init_app as init_activity_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_activity_commands(app)
