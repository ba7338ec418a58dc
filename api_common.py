"""Helpers shared by the route modules: injected services, read-through, responses."""
import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from flask import current_app, jsonify, request

from errors import ValidationError

logger = logging.getLogger(__name__)

LOCAL_TZ = ZoneInfo("America/Sao_Paulo")


def cache():
    return current_app.extensions["sheet_cache"]


def sheets():
    return current_app.extensions["sheets_client"]


def settings():
    return current_app.extensions["settings"]


def wants_refresh():
    return "true" in (request.args.get("refresh"), request.args.get("forceRefresh"))


def read_through(key, producer, ttl):
    """Serve ``key`` from the cache, honouring ``?refresh=true`` by dropping it first."""
    c = cache()
    if wants_refresh():
        c.invalidate(key)
        logger.info("[%s] cache invalidated by refresh", key)
    return c.get_or_fetch(key, producer, ttl)


def rows_response(rows, s_maxage, swr, wrap=True):
    payload = {"values": rows, "cached": True} if wrap else rows
    resp = jsonify(payload)
    resp.headers["Cache-Control"] = "public, s-maxage=%d, stale-while-revalidate=%d" % (s_maxage, swr)
    return resp


def no_store(resp):
    resp.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    resp.headers["Pragma"] = "no-cache"
    resp.headers["Expires"] = "0"
    return resp


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Corpo da requisição deve ser um objeto JSON")
    return data


def ok(message, status=200, **extra):
    body = {"success": True, "message": message}
    body.update(extra)
    return jsonify(body), status


def now_local():
    return datetime.now(LOCAL_TZ)


def today_br():
    """Today's date as the sheets store it, dd/mm/yyyy."""
    return now_local().strftime("%d/%m/%Y")
