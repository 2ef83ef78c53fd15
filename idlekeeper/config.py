"""
Configuration management for IdleKeeper.

Durations are read from the environment in milliseconds and converted to
timedeltas by LifecycleSettings, which is the only object the lifecycle code
consumes.
"""
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from dotenv import load_dotenv

from .utils.clock import ms_to_timedelta
from .utils.exceptions import ConfigurationError

load_dotenv()

DAY_MS = 24 * 60 * 60 * 1000


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Platform credentials
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    APP_ID = os.getenv('APP_ID')
    FALLBACK_CHANNEL_ID = os.getenv('FALLBACK_CHANNEL_ID')

    # Tier role names
    ACTIVE_ROLE_NAME = os.getenv('ACTIVE_ROLE_NAME', 'Active')
    INACTIVE_ROLE_NAME = os.getenv('INACTIVE_ROLE_NAME', 'Inactive')
    DORMANT_ROLE_NAME = os.getenv('DORMANT_ROLE_NAME', 'Dormant')

    # Lifecycle timings (milliseconds)
    WARN_LEAD_MS = int(os.getenv('WARN_LEAD_MS', 3 * DAY_MS))
    INACTIVE_AFTER_MS = int(os.getenv('INACTIVE_AFTER_MS', 10 * DAY_MS))
    DORMANT_AFTER_MS = int(os.getenv('DORMANT_AFTER_MS', 30 * DAY_MS))
    WARN_GRACE_MS = int(os.getenv('WARN_GRACE_MS', 3 * DAY_MS))
    SWEEP_INTERVAL_MS = int(os.getenv('SWEEP_INTERVAL_MS', 60 * 1000))
    # Unset = dormant members are only removed by an admin
    KICK_AFTER_MS = int(os.getenv('KICK_AFTER_MS')) if os.getenv('KICK_AFTER_MS') else None

    REDIS_URL = os.getenv('REDIS_URL')


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///idlekeeper_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', 'sqlite:///activity.db')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    @classmethod
    def validate_credentials(cls) -> str:
        """
        Validate platform credentials in production.

        Raises:
            ConfigurationError: If DISCORD_TOKEN or APP_ID is missing
        """
        if not cls.DISCORD_TOKEN:
            raise ConfigurationError(
                "DISCORD_TOKEN environment variable is not set", field='DISCORD_TOKEN'
            )
        if not cls.APP_ID:
            raise ConfigurationError(
                "APP_ID environment variable is not set", field='APP_ID'
            )
        return cls.DISCORD_TOKEN


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    REDIS_URL = None

    WARN_LEAD_MS = 2 * DAY_MS
    INACTIVE_AFTER_MS = 10 * DAY_MS
    DORMANT_AFTER_MS = 30 * DAY_MS
    WARN_GRACE_MS = 1 * DAY_MS
    SWEEP_INTERVAL_MS = 60 * 1000
    KICK_AFTER_MS = None


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


@dataclass(frozen=True)
class LifecycleSettings:
    """
    Validated lifecycle durations.

    Attributes:
        warn_lead: How long before a threshold the warning goes out
        inactive_after: Idle time after which Active members become Inactive
        dormant_after: Idle time after which Inactive members become Dormant
        warn_grace: Minimum time between a warning and its transition
        sweep_interval: Target time between sweep cycle starts
        kick_after: Idle time after which Dormant members are removed (None = never)
    """
    warn_lead: timedelta
    inactive_after: timedelta
    dormant_after: timedelta
    warn_grace: timedelta
    sweep_interval: timedelta
    kick_after: Optional[timedelta] = None

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_config(cls, config) -> 'LifecycleSettings':
        """Build settings from a Flask config mapping (values in milliseconds)."""
        try:
            kick_after = config.get('KICK_AFTER_MS')
            return cls(
                warn_lead=ms_to_timedelta(config['WARN_LEAD_MS']),
                inactive_after=ms_to_timedelta(config['INACTIVE_AFTER_MS']),
                dormant_after=ms_to_timedelta(config['DORMANT_AFTER_MS']),
                warn_grace=ms_to_timedelta(config['WARN_GRACE_MS']),
                sweep_interval=ms_to_timedelta(config['SWEEP_INTERVAL_MS']),
                kick_after=ms_to_timedelta(kick_after) if kick_after is not None else None,
            )
        except KeyError as e:
            raise ConfigurationError(f"Missing lifecycle setting {e.args[0]}", field=e.args[0])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid lifecycle setting: {e}")

    def validate(self) -> None:
        """
        Reject orderings that make the policy table degenerate.

        Raises:
            ConfigurationError: On a negative duration or a lead longer than its threshold
        """
        zero = timedelta(0)
        for name in ('warn_lead', 'inactive_after', 'dormant_after', 'warn_grace', 'sweep_interval'):
            if getattr(self, name) < zero:
                raise ConfigurationError(f"{name} must not be negative", field=name)

        if self.sweep_interval == zero:
            raise ConfigurationError("sweep_interval must be positive", field='sweep_interval')
        if self.warn_lead > self.inactive_after:
            raise ConfigurationError(
                "warn_lead must not exceed inactive_after", field='warn_lead'
            )
        if self.warn_lead > self.dormant_after:
            raise ConfigurationError(
                "warn_lead must not exceed dormant_after", field='warn_lead'
            )
        if self.kick_after is not None:
            if self.kick_after < zero:
                raise ConfigurationError("kick_after must not be negative", field='kick_after')
            if self.kick_after < self.dormant_after:
                raise ConfigurationError(
                    "kick_after must not be shorter than dormant_after", field='kick_after'
                )

    @property
    def inactive_warn_threshold(self) -> timedelta:
        return self.inactive_after - self.warn_lead

    @property
    def dormant_warn_threshold(self) -> timedelta:
        return self.dormant_after - self.warn_lead

    @property
    def kick_warn_threshold(self) -> Optional[timedelta]:
        if self.kick_after is None:
            return None
        return self.kick_after - self.warn_lead


def validate_config(config_name: str = 'development', config=None) -> LifecycleSettings:
    """
    Validate configuration before startup.

    Lifecycle timings are always validated; platform credentials only in production.

    Args:
        config_name: The configuration environment name
        config: Loaded Flask config (defaults to the class for config_name)

    Returns:
        The validated LifecycleSettings

    Raises:
        ConfigurationError: If validation fails
    """
    if config_name == 'production':
        ProductionConfig.validate_credentials()

    if config is None:
        config_class = get_config(config_name)
        config = {k: getattr(config_class, k) for k in dir(config_class) if k.isupper()}

    return LifecycleSettings.from_config(config)
