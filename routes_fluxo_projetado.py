"""
Projected cash flow per franchise: monthly revenue lines from the FLUXO
PROJETADO tab summed into semesters and years, with the VVR of new funds
from the NOVOS FUNDOS tab.
"""
import logging

from flask import Blueprint, jsonify, request

from api_common import read_through, settings, sheets, wants_refresh
from locale_format import parse_decimal
from sheet_rows import a1_range, cell

logger = logging.getLogger(__name__)

bp = Blueprint("fluxo_projetado", __name__, url_prefix="/api/fluxo-projetado")

CACHE_TTL = 5 * 60
DEFAULT_FRANQUIA = "JUIZ DE FORA"
FLUXO_SHEET = "FLUXO PROJETADO"
FUNDOS_SHEET = "NOVOS FUNDOS"

MONTH_COL = 0       # A, dd/mm/yyyy
FRANQUIA_COL = 1    # B
YEAR_COL = 2        # C
VVR_COL = 6         # G on NOVOS FUNDOS

# (sum name, column) in D..L order, three per revenue group
REVENUE_COLUMNS = (
    ("somaAntecipacaoCarteira", 3),
    ("somaExecucaoCarteira", 4),
    ("somaDemaisReceitasCarteira", 5),
    ("somaAntecipacaoNovasVendas", 6),
    ("somaExecucaoNovasVendas", 7),
    ("somaDemaisReceitasNovasVendas", 8),
    ("somaAntecipacaoCalcFranqueado", 9),
    ("somaFechamentoCalcFranqueado", 10),
    ("somaDemaisReceitasCalcFranqueado", 11),
)
GROUPS = (
    ("receitaCarteira", REVENUE_COLUMNS[0:3]),
    ("receitaNovosVendas", REVENUE_COLUMNS[3:6]),
    ("receitaCalcFranqueado", REVENUE_COLUMNS[6:9]),
)


def cache_key(franquia):
    return "fluxo-projetado:projecao:%s" % franquia


def _number(value):
    try:
        return parse_decimal(value)
    except ValueError:
        return 0


def month_and_year(text):
    """'15/03/2026' -> (3, 2026); None when the cell is not a dd/mm/yyyy date."""
    parts = str(text or "").split("/")
    if len(parts) < 3:
        return None
    try:
        return int(parts[1]), int(parts[2])
    except ValueError:
        return None


def semester(month):
    return 1 if month <= 6 else 2


def _rows_for(rows, franquia):
    wanted = franquia.upper()
    for row in rows[1:]:
        name = str(cell(row, FRANQUIA_COL))
        if not name or name.upper() != wanted:
            continue
        date = month_and_year(cell(row, MONTH_COL))
        if date is not None:
            yield row, date


def vvr_by_semester(rows, franquia):
    totals = {}
    for row, (month, year) in _rows_for(rows, franquia):
        key = (year, semester(month))
        totals[key] = totals.get(key, 0) + _number(cell(row, VVR_COL))
    return totals


def projection(rows, fundos_rows, franquia):
    if len(rows) <= 1:
        return []
    vvr = vvr_by_semester(fundos_rows, franquia)

    by_semester = {}
    for row, (month, year) in _rows_for(rows, franquia):
        ano = int(_number(cell(row, YEAR_COL))) or year
        by_semester.setdefault((ano, semester(month)), []).append(row)

    years = {}
    for (ano, sem) in sorted(by_semester):
        months = by_semester[(ano, sem)]
        s = {"semestre": "%d-%d" % (ano, sem)}
        for name, col in REVENUE_COLUMNS:
            s[name] = sum(_number(cell(r, col)) for r in months)
        for group, columns in GROUPS:
            s[group] = sum(s[name] for name, _ in columns)
        s["subtotal"] = s["receitaCarteira"] + s["receitaNovosVendas"]
        # expenses are entered on the panel, not in the sheet
        s["custo"] = 0
        s["saldo"] = s["subtotal"]
        s["somaVVR"] = vvr.get((ano, sem), 0)
        years.setdefault(ano, []).append(s)

    out = []
    for ano, semestres in years.items():
        subtotal = sum(s["subtotal"] for s in semestres)
        out.append({
            "ano": ano,
            "receitaCarteira": sum(s["receitaCarteira"] for s in semestres),
            "receitaNovosVendas": sum(s["receitaNovosVendas"] for s in semestres),
            "subtotal": subtotal,
            "custo": 0,
            "saldo": subtotal,
            "semestres": semestres,
        })
    return out


@bp.route("/projecao", methods=["GET"])
def projecao():
    franquia = request.args.get("franquia") or DEFAULT_FRANQUIA
    sid = settings().require("fluxo_spreadsheet_id")

    def produce():
        rows = sheets().fetch_values(sid, a1_range(FLUXO_SHEET, "A", "L"))
        fundos = sheets().fetch_values(sid, a1_range(FUNDOS_SHEET, "A", "G"))
        return projection(rows, fundos, franquia)

    refreshed = wants_refresh()
    data = read_through(cache_key(franquia), produce, CACHE_TTL)
    return jsonify({"success": True, "data": data, "franquia": franquia, "cached": not refreshed})
