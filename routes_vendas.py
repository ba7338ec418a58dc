from flask import Blueprint

from api_common import read_through, rows_response, settings, sheets

bp = Blueprint("vendas", __name__, url_prefix="/api/vendas")

FUNIL_KEY = "vendas:funil"
FUNIL_TTL = 5 * 60
METAS_KEY = "vendas:metas"
METAS_TTL = 10 * 60


def _public_reader(spreadsheet_attr, sheet_attr):
    sid, sheet_name = settings().require(spreadsheet_attr, sheet_attr)
    return lambda: sheets().fetch_public_values(sid, sheet_name)


@bp.route("/funil", methods=["GET"])
def funil():
    rows = read_through(FUNIL_KEY, _public_reader("funil_spreadsheet_id", "funil_sheet_name"), FUNIL_TTL)
    return rows_response(rows, 60, 120)


@bp.route("/metas", methods=["GET"])
def metas():
    rows = read_through(METAS_KEY, _public_reader("metas_spreadsheet_id", "metas_sheet_name"), METAS_TTL)
    return rows_response(rows, 120, 300)
