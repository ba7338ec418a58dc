from flask import Blueprint

from api_common import read_through, rows_response, settings, sheets

bp = Blueprint("carteira", __name__, url_prefix="/api/carteira")

CACHE_KEY = "carteira:data"
CACHE_TTL = 5 * 60
SHEET_NAME = "HISTORICO"


@bp.route("/data", methods=["GET"])
def data():
    sid = settings().require("carteira_spreadsheet_id")
    rows = read_through(CACHE_KEY, lambda: sheets().fetch_public_values(sid, SHEET_NAME), CACHE_TTL)
    return rows_response(rows, 60, 120)
