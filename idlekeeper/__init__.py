"""
IdleKeeper activity tier bot
Flask application factory
"""
import os
import logging
from flask import Flask

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    The app holds configuration, the database session and the cache; the
    Discord client runs inside its application context (see `flask activity run-bot`).

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application

    Raises:
        ConfigurationError: If lifecycle timings or production credentials are invalid
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # Fail fast on bad timings
    app.extensions['lifecycle_settings'] = validate_config(config_name, app.config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Grant cache backend (Redis with graceful fallback)
    from .utils.cache import init_cache
    init_cache(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    logger.info(f'[App] IdleKeeper app created ({config_name})')
    return app
