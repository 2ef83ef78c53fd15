"""
IdleKeeper entry point.

Equivalent to `flask activity run-bot`, for process managers that want a script.
"""
import os
import sys

from idlekeeper.utils.logging_config import get_logger

logger = get_logger('idlekeeper.run')

# Default to production for deployment
config_name = os.getenv('FLASK_ENV', 'production')
logger.info(f"[IdleKeeper] Config: {config_name}")
logger.info(f"[IdleKeeper] DATABASE_URL: {'set' if os.getenv('DATABASE_URL') else 'NOT SET'}")

try:
    from idlekeeper import create_app
    app = create_app(config_name)
except Exception as e:
    logger.critical(f"[IdleKeeper] FATAL ERROR during app creation: {e}", exc_info=True)
    sys.exit(1)

if __name__ == '__main__':
    from idlekeeper.gateway.bot import run_bot
    run_bot(app)
