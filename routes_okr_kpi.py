"""
OKR and KPI endpoints. Both live in the same workbook: one OKR tab per team
and a single KPIS tab with one row per KPI per month.
"""
import logging

from flask import Blueprint, jsonify, request

from api_common import cache, json_body, now_local, ok, read_through, rows_response, settings, sheets
from errors import NotFoundError, UpstreamError, ValidationError, WriteFailedError, require_fields
from locale_format import parse_decimal
from sheet_rows import FieldColumnMap, a1_range, cell, locate_rows

logger = logging.getLogger(__name__)

okr_bp = Blueprint("okr", __name__, url_prefix="/api/okr")
kpi_bp = Blueprint("kpi", __name__, url_prefix="/api/kpi")

OKR_TTL = 10 * 60
KPI_TTL = 10 * 60
KPI_KEY = "kpi:data"
OKR_TEAMS_KEY = "okr:teams"

OKR_FIELDS = FieldColumnMap("OKR", {
    "meta": 7,           # H
    "realizado": 8,      # I
    "medida": 12,        # M
    "formaDeMedir": 13,  # N
    "responsavel": 15,   # P
})

KPI_MONTH_COL = 0       # A, 01/MM/YYYY
KPI_TEAM_COL = 1        # B
KPI_ID_COL = 2          # C
KPI_NAME_COL = 3        # D
KPI_META_COL = 4        # E
KPI_RESULT_COL = 5      # F
KPI_GRANDEZA_COL = 9    # J
KPI_TENDENCIA_COL = 15  # P
KPI_COMPETENCIA_COL = 18  # S, MM/YYYY
KPI_ROW_WIDTH = 31      # A..AE
KPI_FIELDS = FieldColumnMap("KPIS", {"situacao": 32})  # AG
KPI_INACTIVE = "Inativo"
KPI_EDIT_FIELDS = FieldColumnMap("KPIS", {
    "nome": KPI_NAME_COL,
    "meta": KPI_META_COL,
    "grandeza": KPI_GRANDEZA_COL,
    "tendencia": KPI_TENDENCIA_COL,
    "editadoEm": 35,    # AJ
    "editadoPor": 36,   # AK
})

META_FORMATS = {
    "Moeda": {"type": "CURRENCY", "pattern": "\"R$\" #,##0.00"},
    "%": {"type": "PERCENT", "pattern": "0.00%"},
}
DEFAULT_META_FORMAT = {"type": "NUMBER", "pattern": "#,##0"}


def okr_cache_key(sheet_name):
    return "okr:data:%s" % sheet_name


def _workbook():
    return settings().require("okr_spreadsheet_id")


def _write_batch(sid, data, value_input_option="USER_ENTERED"):
    try:
        sheets().batch_update_values(sid, data, value_input_option=value_input_option)
    except UpstreamError as e:
        raise WriteFailedError(e.message)


# ─── OKR ────────────────────────────────────────────────────────────────

@okr_bp.route("/data", methods=["GET"])
def okr_data():
    sheet_name = (request.args.get("sheet") or "").strip()
    if not sheet_name:
        raise ValidationError("Parâmetro obrigatório: sheet")
    sid = _workbook()
    rows = read_through(
        okr_cache_key(sheet_name),
        lambda: sheets().fetch_values(sid, a1_range(sheet_name, "A", "P")),
        OKR_TTL,
    )
    return rows_response(rows, 60, 300)


@okr_bp.route("/update", methods=["POST"])
def okr_update():
    body = json_body()
    updates = body.get("updates")
    if not isinstance(updates, list) or not updates:
        raise ValidationError("Nenhuma atualização fornecida")
    require_fields(body, "sheetName")
    sheet_name = str(body["sheetName"])

    data = []
    for upd in updates:
        # rowIndex arrives as the sheet row number already
        try:
            row_number = int(upd.get("rowIndex"))
        except (AttributeError, TypeError, ValueError):
            raise ValidationError("rowIndex inválido: %r" % (upd,))
        if row_number < 2:
            raise ValidationError("rowIndex deve apontar para uma linha de dados (>= 2)")
        for field in OKR_FIELDS:
            val = upd.get(field)
            # 0 is a real value; booleans are not cell content
            if val is None or isinstance(val, bool) or val == "":
                continue
            data.append({
                "range": a1_range(sheet_name, "%s%d" % (OKR_FIELDS.letter(field), row_number)),
                "values": [[str(val)]],
            })

    if not data:
        raise ValidationError("Nenhum campo foi preenchido para atualização")

    _write_batch(_workbook(), data)
    cache().invalidate(okr_cache_key(sheet_name))
    return ok("Dados do OKR atualizados com sucesso!",
              data={"updatedRows": len(updates), "updatesCount": len(data)})


@okr_bp.route("/teams", methods=["GET"])
def okr_teams():
    """Distinct team names from the panel tab's TIME column, sorted."""
    sid = _workbook()
    panel = settings().okr_panel_sheet_name
    teams = read_through(
        OKR_TEAMS_KEY,
        lambda: teams_from_panel(sheets().fetch_public_values(sid, a1_range(panel, "A", "Z"))),
        OKR_TTL,
    )
    return jsonify({"success": True, "data": teams, "timestamp": now_local().isoformat()})


def teams_from_panel(rows):
    if len(rows) < 2:
        return []
    header = [str(h).strip().lower() for h in rows[0]]
    if "time" not in header:
        return []
    col = header.index("time")
    return sorted({str(cell(r, col)).strip() for r in rows[1:]} - {""})


# ─── KPI ────────────────────────────────────────────────────────────────

def _kpi_rows():
    sid = _workbook()
    sheet_name = settings().kpi_sheet_name
    return read_through(
        KPI_KEY,
        lambda: sheets().fetch_values(sid, a1_range(sheet_name, "A", "AK")),
        KPI_TTL,
    )


@kpi_bp.route("/data", methods=["GET"])
def kpi_data():
    rows = _kpi_rows()
    team = request.args.get("team")
    if team and rows:
        rows = rows[:1] + [r for r in rows[1:] if cell(r, KPI_TEAM_COL) == team]
    return rows_response(rows, 60, 300)


@kpi_bp.route("/teams", methods=["GET"])
def kpi_teams():
    rows = _kpi_rows()
    teams = sorted({str(cell(r, KPI_TEAM_COL)).strip() for r in rows[1:]} - {""})
    return jsonify({"success": True, "teams": teams})


@kpi_bp.route("/inactivate", methods=["POST"])
def kpi_inactivate():
    body = json_body()
    require_fields(body, "team", "kpiName")
    team, kpi_name = str(body["team"]), str(body["kpiName"])

    sid = _workbook()
    sheet_name = settings().kpi_sheet_name
    cache().invalidate(KPI_KEY)
    rows = sheets().fetch_values(sid, a1_range(sheet_name, "A", "AG"))
    # only months without a result are switched off
    targets = locate_rows(
        rows, [KPI_TEAM_COL, KPI_NAME_COL], [team, kpi_name],
        where=lambda r: not str(cell(r, KPI_RESULT_COL)).strip(),
    )
    if not targets:
        return ok("Nenhuma linha para inativar. Todas as linhas já possuem resultado.", rowsUpdated=0)

    col = KPI_FIELDS.letter("situacao")
    _write_batch(sid, [
        {"range": a1_range(sheet_name, "%s%d" % (col, n)), "values": [[KPI_INACTIVE]]}
        for n in targets
    ])
    cache().invalidate(KPI_KEY)
    logger.info("[kpi] %s/%s inactivated on %d rows", team, kpi_name, len(targets))
    return ok("KPI inativado com sucesso.", rowsUpdated=len(targets))


def meta_format(grandeza):
    return META_FORMATS.get(grandeza, DEFAULT_META_FORMAT)


def meta_value(raw, grandeza):
    """Number to store in the META cell; percentages arrive as 0-100."""
    if raw is None or raw == "":
        return ""
    try:
        value = parse_decimal(raw)
    except ValueError:
        raise ValidationError("Meta inválida: %r" % (raw,))
    return value / 100 if grandeza == "%" else value


def _month_number(value, field):
    try:
        month = int(value)
    except (TypeError, ValueError):
        raise ValidationError("%s inválido: %r" % (field, value))
    if not 1 <= month <= 12:
        raise ValidationError("%s deve estar entre 1 e 12" % field)
    return month


def _year_number(value, field):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("%s inválido: %r" % (field, value))


def month_span(start_month, start_year, end_month, end_year):
    """Every month from start to end inclusive, as 01/MM/YYYY."""
    months = []
    for year in range(start_year, end_year + 1):
        first = start_month if year == start_year else 1
        last = end_month if year == end_year else 12
        for month in range(first, last + 1):
            months.append("01/%02d/%d" % (month, year))
    return months


def _next_kpi_id(rows, team):
    ids = [0]
    for r in rows[1:]:
        if cell(r, 0) != team:
            continue
        try:
            ids.append(int(cell(r, 1)))
        except ValueError:
            continue
    return max(ids) + 1


def _apply_meta_format(sid, sheet_name, row_spans, grandeza):
    try:
        sheets().set_number_format(sid, sheet_name, KPI_META_COL, row_spans, meta_format(grandeza))
    except UpstreamError as e:
        raise WriteFailedError(e.message)


@kpi_bp.route("/create", methods=["POST"])
def kpi_create():
    body = json_body()
    require_fields(body, "team", "nome", "inicioMes", "inicioAno", "tendencia", "grandeza")
    team, nome = str(body["team"]), str(body["nome"])
    grandeza, tendencia = str(body["grandeza"]), str(body["tendencia"])
    start_month = _month_number(body["inicioMes"], "inicioMes")
    start_year = _year_number(body["inicioAno"], "inicioAno")
    end_month = _month_number(body.get("terminoMes") or 12, "terminoMes")
    end_year = _year_number(body.get("terminoAno") or start_year, "terminoAno")
    months = month_span(start_month, start_year, end_month, end_year)
    if not months:
        raise ValidationError("O término deve ser igual ou posterior ao início")
    metas = body.get("metas") or {}
    if not isinstance(metas, dict):
        raise ValidationError("metas deve ser um objeto")

    sid = _workbook()
    sheet_name = settings().kpi_sheet_name
    cache().invalidate(KPI_KEY)
    kpi_id = _next_kpi_id(sheets().fetch_values(sid, a1_range(sheet_name, "B", "C")), team)
    last_row = len(sheets().fetch_values(sid, a1_range(sheet_name, "A", "A"))) or 1

    new_rows = []
    for month in months:
        competencia = month[3:]
        row = [""] * KPI_ROW_WIDTH
        row[KPI_MONTH_COL] = month
        row[KPI_TEAM_COL] = team
        row[KPI_ID_COL] = kpi_id
        row[KPI_NAME_COL] = nome
        row[KPI_META_COL] = meta_value(metas.get(competencia), grandeza)
        row[KPI_GRANDEZA_COL] = grandeza
        row[KPI_TENDENCIA_COL] = tendencia
        row[KPI_COMPETENCIA_COL] = competencia
        new_rows.append(row)

    try:
        sheets().append_rows(sid, a1_range(sheet_name, "A", "AE"), new_rows)
    except UpstreamError as e:
        raise WriteFailedError(e.message)
    _apply_meta_format(sid, sheet_name, [(last_row + 1, last_row + len(new_rows))], grandeza)
    cache().invalidate(KPI_KEY)
    logger.info("[kpi] %s/%s created with id %d over %d months", team, nome, kpi_id, len(new_rows))
    return ok('KPI "%s" criado com sucesso!' % nome, status=201,
              kpiId=kpi_id, rowsInserted=len(new_rows))


@kpi_bp.route("/update", methods=["PUT"])
def kpi_update():
    body = json_body()
    require_fields(body, "team", "oldName", "newName")
    team, old_name, new_name = str(body["team"]), str(body["oldName"]), str(body["newName"])
    grandeza = str(body.get("grandeza") or "")
    tendencia = str(body.get("tendencia") or "")
    metas = body.get("metas") or {}
    if not isinstance(metas, dict):
        raise ValidationError("metas deve ser um objeto")

    sid = _workbook()
    sheet_name = settings().kpi_sheet_name
    cache().invalidate(KPI_KEY)
    rows = sheets().fetch_values(sid, a1_range(sheet_name, "A", "AD"))
    if len(rows) < 2:
        raise NotFoundError("Nenhum dado encontrado na planilha")
    targets = locate_rows(rows, [KPI_TEAM_COL, KPI_NAME_COL], [team, old_name])
    if not targets:
        raise NotFoundError('KPI "%s" não encontrado para o time "%s"' % (old_name, team))

    stamp = now_local().strftime("%d/%m/%Y, %H:%M:%S")
    editor = str(body.get("username") or "")
    data = []
    for n in targets:
        month = str(cell(rows[n - 1], KPI_MONTH_COL)).strip()
        values = {
            "nome": new_name,
            "meta": meta_value(metas.get(month), grandeza),
            "grandeza": grandeza,
            "tendencia": tendencia,
            "editadoEm": stamp,
            "editadoPor": editor,
        }
        for field in KPI_EDIT_FIELDS:
            data.append({
                "range": a1_range(sheet_name, "%s%d" % (KPI_EDIT_FIELDS.letter(field), n)),
                "values": [[values[field]]],
            })

    # RAW keeps names and dates as typed; META goes in as a number
    _write_batch(sid, data, value_input_option="RAW")
    _apply_meta_format(sid, sheet_name, [(n, n) for n in targets], grandeza)
    cache().invalidate(KPI_KEY)
    logger.info("[kpi] %s/%s renamed to %s on %d rows", team, old_name, new_name, len(targets))
    return ok('KPI "%s" atualizado com sucesso!' % new_name, rowsUpdated=len(targets))
