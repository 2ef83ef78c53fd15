"""Chat platform gateway: the abstract interface and its discord.py implementation."""
from .base import PlatformGateway

__all__ = ['PlatformGateway']
