"""
PEX (franchise scoring) endpoints: bonus, weights, goals per cluster,
cluster assignment and indicator descriptions. All live in the main
workbook (GOOGLE_SHEET_ID) and are read through the shared cache.
"""
import logging

from flask import Blueprint, jsonify, request

from api_common import cache, json_body, no_store, ok, read_through, rows_response, settings, sheets
from cell_writer import CellWriter
from errors import NotFoundError, UpstreamError, ValidationError, require_fields
from locale_format import format_currency, format_decimal, format_integer, format_percent, format_plain_decimal
from sheet_rows import FieldColumnMap, a1_range, cell, locate_row, normalize_cluster_name

logger = logging.getLogger(__name__)

bp = Blueprint("pex", __name__, url_prefix="/api/pex")

TTL_DEVERIA = 2 * 60
TTL_UNI_CONS = 5 * 60
TTL_CRITERIOS = 10 * 60
TTL_METAS = 10 * 60

# ─── DEVERIA: bonus per unit and quarter ─────────────────────────────────
BONUS_KEY = "pex:bonus"
BONUS_SHEET = "DEVERIA"
BONUS_RANGE = a1_range(BONUS_SHEET, "A", "X")
BONUS_UNIT_COL = 0
BONUS_QUARTER_COL = 23  # X
BONUS_FIELDS = FieldColumnMap(BONUS_SHEET, {"bonus": 3})  # D

# ─── CRITERIOS RANKING: indicator weights per quarter (read from column B) ─
PESOS_KEY = "pex:pesos"
PESOS_SHEET = "CRITERIOS RANKING"
PESOS_RANGE = a1_range(PESOS_SHEET, "B", "F")
PESOS_FIELDS = FieldColumnMap(PESOS_SHEET, {
    "peso_q1": 2,  # C
    "peso_q2": 3,  # D
    "peso_q3": 4,  # E
    "peso_q4": 5,  # F
})
INFO_KEY = "pex:indicadores-info"
INFO_RANGE = a1_range(PESOS_SHEET, "A", "I")

# ─── METAS POR CLUSTER ───────────────────────────────────────────────────
METAS_KEY = "pex:metas"
METAS_SHEET = "METAS POR CLUSTER"
METAS_ALT_SHEET = "METASPORCLUSTER"
METAS_FIELDS = FieldColumnMap(METAS_SHEET, {
    "VVR": 1,
    "% ATIGIMENTO MAC": 2,
    "% ENDIVIDAMENTO": 3,
    "NPS": 4,
    "% MC ENTREGA": 5,
    "E-NPS": 6,
    "CONFORMIDADE": 7,
})
METAS_FORMATTERS = {
    f: (format_currency if f == "VVR"
        else format_percent if ("%" in f or f == "CONFORMIDADE")
        else format_integer)
    for f in METAS_FIELDS
}

# ─── UNI CONS: cluster per unit ──────────────────────────────────────────
CLUSTERS_KEY = "pex:clusters"
CLUSTERS_SHEET = "UNI CONS"
CLUSTERS_FIELDS = FieldColumnMap(CLUSTERS_SHEET, {"cluster": 2})  # C
CLUSTERS = ("CALOURO_INICIANTE", "CALOURO", "GRADUADO", "POS_GRADUADO")


def _sheet_id():
    return settings().require("google_sheet_id")


def _read(range_a1):
    sid = _sheet_id()
    return lambda: sheets().fetch_values(sid, range_a1)


def _fresh_rows(key, range_a1):
    cache().invalidate(key)
    return sheets().fetch_values(_sheet_id(), range_a1)


@bp.route("/bonus", methods=["GET", "POST"])
def bonus():
    if request.method == "GET":
        rows = read_through(BONUS_KEY, _read(BONUS_RANGE), TTL_DEVERIA)
        return rows_response(rows, 60, 120, wrap=False)

    data = json_body()
    require_fields(data, "unidade", "quarter", "valor")
    unidade, quarter = str(data["unidade"]), str(data["quarter"])

    rows = _fresh_rows(BONUS_KEY, BONUS_RANGE)
    if not rows:
        raise NotFoundError("A planilha DEVERIA está vazia")
    row_number = locate_row(rows, [BONUS_UNIT_COL, BONUS_QUARTER_COL], [unidade, quarter])
    if row_number is None:
        raise NotFoundError(
            'Não foi encontrado registro para unidade "%s" no quarter "%s"' % (unidade, quarter)
        )

    writer = CellWriter(sheets(), _sheet_id(), BONUS_FIELDS,
                        formatters={"bonus": lambda v: format_decimal(v, 1)})
    writer.update(BONUS_SHEET, row_number, "bonus", data["valor"])
    cache().invalidate(BONUS_KEY)
    return ok("Bônus atualizado com sucesso para %s no %sº Quarter" % (unidade, quarter))


@bp.route("/pesos", methods=["GET", "POST"])
def pesos():
    if request.method == "GET":
        rows = read_through(PESOS_KEY, _read(PESOS_RANGE), TTL_CRITERIOS)
        return rows_response(rows, 60, 600, wrap=False)

    data = json_body()
    require_fields(data, "indicador", "quarter", "peso")
    indicador, quarter = str(data["indicador"]), str(data["quarter"])
    field = "peso_q%s" % quarter
    if field not in PESOS_FIELDS:
        raise ValidationError("quarter deve ser 1, 2, 3 ou 4")

    rows = _fresh_rows(PESOS_KEY, PESOS_RANGE)
    # range starts at column B, so the indicator is rows[i][0]
    row_number = locate_row(rows, [0], [indicador])
    if row_number is None:
        raise NotFoundError('O indicador "%s" não foi encontrado na planilha' % indicador)

    writer = CellWriter(sheets(), _sheet_id(), PESOS_FIELDS,
                        formatters={f: format_plain_decimal for f in PESOS_FIELDS})
    writer.update(PESOS_SHEET, row_number, field, data["peso"])
    cache().invalidate(PESOS_KEY)
    cache().invalidate(INFO_KEY)
    return ok("Peso atualizado com sucesso para %s no Quarter %s" % (indicador, quarter))


@bp.route("/indicadores-info", methods=["GET"])
def indicadores_info():
    rows = read_through(INFO_KEY, _read(INFO_RANGE), TTL_CRITERIOS)
    info = []
    for r in rows[1:]:
        name = str(cell(r, 1)).strip()
        if not name:
            continue
        info.append({
            "indicador": name,
            "resumo": str(cell(r, 7)).strip(),
            "calculo": str(cell(r, 8)).strip(),
        })
    resp = jsonify({"success": True, "data": info})
    resp.headers["Cache-Control"] = "public, s-maxage=60, stale-while-revalidate=600"
    return resp


def _read_metas():
    sid = _sheet_id()

    def producer():
        try:
            return sheets().fetch_values(sid, a1_range(METAS_SHEET, "A", "H"))
        except UpstreamError as e:
            logger.warning("METAS POR CLUSTER unreadable (%s); trying %s", e.message, METAS_ALT_SHEET)
            try:
                return sheets().fetch_values(sid, a1_range(METAS_ALT_SHEET, "A", "H"))
            except UpstreamError:
                raise e
    return producer


@bp.route("/metas", methods=["GET", "POST"])
def metas():
    if request.method == "GET":
        rows = read_through(METAS_KEY, _read_metas(), TTL_METAS)
        return rows_response(rows, 60, 600, wrap=False)

    data = json_body()
    require_fields(data, "cluster", "coluna", "valor")
    cluster, coluna = str(data["cluster"]), str(data["coluna"])
    col = METAS_FIELDS.column(coluna)  # InvalidFieldError -> 400 before touching the sheet

    rows = _fresh_rows(METAS_KEY, a1_range(METAS_SHEET, "A", "H"))
    if not rows:
        raise NotFoundError("A planilha METAS POR CLUSTER está vazia")
    row_number = locate_row(rows, [0], [cluster])
    if row_number is None:
        raise NotFoundError('O cluster "%s" não foi encontrado na planilha' % cluster)

    writer = CellWriter(sheets(), _sheet_id(), METAS_FIELDS,
                        formatters=METAS_FORMATTERS, raw_fields=("VVR",))
    writer.update(METAS_SHEET, row_number, coluna, data["valor"])
    cache().invalidate(METAS_KEY)
    logger.info("meta %s (col %d) updated for cluster %s", coluna, col, cluster)
    return ok("Meta atualizada com sucesso para %s na coluna %s" % (cluster, coluna))


@bp.route("/clusters", methods=["GET", "POST"])
def clusters():
    if request.method == "GET":
        rows = read_through(CLUSTERS_KEY, _read(a1_range(CLUSTERS_SHEET, "A", "G")), TTL_UNI_CONS)
        return no_store(jsonify(rows))

    data = json_body()
    require_fields(data, "unidade", "cluster")
    unidade, cluster_name = str(data["unidade"]), str(data["cluster"])
    if normalize_cluster_name(cluster_name) not in CLUSTERS:
        raise ValidationError(
            'Cluster "%s" inválido. Use um de: %s' % (cluster_name, ", ".join(CLUSTERS))
        )

    rows = _fresh_rows(CLUSTERS_KEY, a1_range(CLUSTERS_SHEET, "A", "C"))
    row_number = locate_row(rows, [0], [unidade])
    if row_number is None:
        raise NotFoundError('A unidade "%s" não foi encontrada na planilha' % unidade)

    writer = CellWriter(sheets(), _sheet_id(), CLUSTERS_FIELDS, raw_fields=("cluster",))
    writer.update(CLUSTERS_SHEET, row_number, "cluster", cluster_name)
    cache().invalidate(CLUSTERS_KEY)
    logger.info("[clusters] cache invalidated after update of %s", unidade)
    return ok("Cluster atualizado com sucesso para %s" % unidade)
