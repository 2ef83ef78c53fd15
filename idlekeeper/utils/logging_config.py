"""
Logging configuration for IdleKeeper.

Every module logs through ``logging.getLogger(__name__)``; this module only
wires the root handler once per process.
"""
import os
import logging
import logging.config

LOG_FORMAT = '[%(asctime)s] %(levelname)s %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%dT%H:%M:%S'

_configured = False


def setup_logging(level: str = None) -> None:
    """
    Configure root logging.

    Args:
        level: Log level name. Defaults to LOG_LEVEL env var, then INFO.
    """
    global _configured

    if _configured:
        return

    level = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'default': {'format': LOG_FORMAT, 'datefmt': DATE_FORMAT},
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'default',
            },
        },
        'root': {'level': level, 'handlers': ['console']},
        'loggers': {
            # discord.py and APScheduler are chatty at INFO
            'discord': {'level': 'WARNING'},
            'apscheduler': {'level': 'WARNING'},
        },
    })
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a module logger, configuring logging on first use."""
    setup_logging()
    return logging.getLogger(name)
