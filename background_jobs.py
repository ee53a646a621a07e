import logging
import os
from datetime import datetime

import pytz
from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


def now_local(timezone_name='UTC'):
    """Naive wall-clock 'now' in the configured timezone."""
    tz = pytz.timezone(timezone_name or 'UTC')
    return datetime.now(tz).replace(tzinfo=None)


def start_scheduler(app):
    """
    Start the background scheduler used for coalesced view refreshes.
    Returns None when jobs are disabled for this process.
    """
    if str(app.config.get('ENABLE_BACKGROUND_JOBS', '1')) != '1':
        return None
    # Avoid double-start in Flask debug reloader
    if app.debug and os.environ.get('WERKZEUG_RUN_MAIN') != 'true':
        return None
    scheduler = BackgroundScheduler(timezone=app.config.get('DEFAULT_TIMEZONE', 'UTC'))
    scheduler.start()
    logger.info("Background scheduler started (timezone=%s)", app.config.get('DEFAULT_TIMEZONE', 'UTC'))
    return scheduler


def run_in_app_context(app, target, args=(), kwargs=None, on_error=None):
    """Run a callable inside the provided Flask app context, reporting failures to on_error."""
    with app.app_context():
        try:
            return target(*args, **(kwargs or {}))
        except Exception as exc:
            if on_error:
                on_error(exc)
                return None
            raise
