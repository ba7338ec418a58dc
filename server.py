import os

import eventlet
os.environ.setdefault("EVENTLET_NO_GREENDNS", "yes")
eventlet.monkey_patch()

# ─── Imports & Logger Setup ─────────────────────────────────────────────────
import logging

from dotenv import load_dotenv
from eventlet import wsgi

from dashboard_api import create_app
from settings import Settings
from sheet_cache import sheet_cache

# ─── Load .env & Logger ─────────────────────────────────────────────────────
load_dotenv()
settings = Settings.from_env()
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

sheet_cache.default_ttl = settings.cache_default_ttl
app = create_app(settings=settings, cache=sheet_cache)


if __name__ == "__main__":
    logger.info("Projeto Central API routes:")
    for rule in app.url_map.iter_rules():
        logger.info("  %s %s", ",".join(sorted(rule.methods - {"HEAD", "OPTIONS"})), rule)

    port = settings.port
    logger.info("Starting on port %d", port)
    wsgi.server(eventlet.listen(("0.0.0.0", port)), app, log=logging.getLogger("eventlet.wsgi"))
