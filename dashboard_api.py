import logging
import time

from flask import Flask
from flask_compress import Compress
from flask_cors import CORS

import routes_branches
import routes_cache
import routes_carteira
import routes_fluxo_projetado
import routes_gerencial
import routes_gestao_rede
import routes_okr_kpi
import routes_pex
import routes_projetos
import routes_vendas
from errors import register_error_handlers
from settings import Settings
from sheet_cache import SheetCache
from sheets_client import SheetsClient

logger = logging.getLogger(__name__)

BLUEPRINTS = (
    routes_cache.bp,
    routes_pex.bp,
    routes_vendas.bp,
    routes_carteira.bp,
    routes_gestao_rede.bp,
    routes_branches.bp,
    routes_okr_kpi.okr_bp,
    routes_okr_kpi.kpi_bp,
    routes_projetos.bp,
    routes_gerencial.bp,
    routes_fluxo_projetado.bp,
)


def create_app(settings=None, cache=None, sheets=None):
    """
    Build the Flask app. The cache and the Sheets client are passed in (or
    created here) and exposed to routes through ``app.extensions``.
    """
    settings = settings or Settings.from_env()
    cache = cache if cache is not None else SheetCache(default_ttl=settings.cache_default_ttl)
    sheets = sheets if sheets is not None else SheetsClient(settings)

    app = Flask(__name__)
    app.json.ensure_ascii = False
    app.json.sort_keys = False

    Compress(app)

    CORS(app, resources={r"/api/*": {"origins": settings.frontend_url}}, supports_credentials=True)

    app.extensions["settings"] = settings
    app.extensions["sheet_cache"] = cache
    app.extensions["sheets_client"] = sheets
    app.extensions["started_at"] = time.time()

    for bp in BLUEPRINTS:
        app.register_blueprint(bp)
    register_error_handlers(app)

    logger.info("app created with %d routes", len(list(app.url_map.iter_rules())))
    return app
