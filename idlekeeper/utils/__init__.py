"""
Utility modules for IdleKeeper.
"""
from .logging_config import setup_logging, get_logger
from .clock import utcnow, ms_to_timedelta, format_duration
from .exceptions import (
    IdleKeeperError,
    ConfigurationError,
    GatewayError,
    MemberNotFoundError,
    GrantResolutionError,
    ReconciliationError,
    RemovalError,
    StoreError
)
