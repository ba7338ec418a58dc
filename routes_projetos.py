"""
Project portfolio: one row per project in the Projetos tab (columns A..U),
plus the list of selectable owners kept in column X.
"""
import logging

from flask import Blueprint, jsonify

from api_common import cache, json_body, now_local, ok, read_through, settings, sheets, today_br
from errors import NotFoundError, UpstreamError, ValidationError, WriteFailedError, require_fields
from locale_format import format_percent, parse_decimal
from sheet_rows import a1_range, cell, locate_row

logger = logging.getLogger(__name__)

bp = Blueprint("projetos", __name__, url_prefix="/api/projetos")

CACHE_KEY = "projetos:data"
CACHE_TTL = 30

# sheet column order, A..U
COLUMNS = (
    "id", "projeto", "objetivo", "dataInicio", "prazoFinal", "responsavel",
    "time", "indicador", "tendencia", "resultadoEsperado", "resultadoAtingido",
    "percentualAtingimento", "dataAfericao", "custo", "criadoPor", "dataCriacao",
    "alteradoPor", "dataAlteracao", "inativadoPor", "dataInativacao", "status",
)
COL = {name: i for i, name in enumerate(COLUMNS)}
NUMBER_FIELDS = ("resultadoEsperado", "resultadoAtingido", "percentualAtingimento", "custo")
# fields an update may overwrite with the value sent as-is
EDITABLE = (
    "projeto", "objetivo", "dataInicio", "prazoFinal", "responsavel", "time",
    "indicador", "resultadoEsperado", "resultadoAtingido", "dataAfericao", "custo", "status",
)

TENDENCIA_DOWN = ("DIMINUIR", "DESCER", "BAIXAR")
STATUS_ALIASES = {
    "Finalizado": "Concluído",
    "Em andamento": "Em Andamento",
}
DEFAULT_STATUS = "Em Andamento"
INACTIVE = "Inativo"


def _target():
    return settings().require("projetos_spreadsheet_id", "projetos_sheet_name")


def number_or_zero(value):
    try:
        return parse_decimal(value)
    except ValueError:
        return 0


def tendencia_label(value):
    return "Descer" if str(value or "").strip().upper() in TENDENCIA_DOWN else "Subir"


def tendencia_to_sheet(value):
    return "DIMINUIR" if value == "Descer" else "AUMENTAR"


def status_label(value):
    s = str(value or "").strip()
    if not s:
        return DEFAULT_STATUS
    return STATUS_ALIASES.get(s, s)


def situacao(percentual):
    if percentual >= 80:
        return "verde"
    if percentual >= 50:
        return "amarelo"
    return "vermelho"


def project_from_row(row):
    p = {name: cell(row, i) for i, name in enumerate(COLUMNS)}
    for name in NUMBER_FIELDS:
        p[name] = number_or_zero(p[name])
    p["id"] = str(p["id"])
    p["tendencia"] = tendencia_label(p["tendencia"])
    p["status"] = status_label(p["status"])
    p["progresso"] = min(p["percentualAtingimento"], 100)
    p["situacao"] = situacao(p["percentualAtingimento"])
    return p


def _load(sid, sheet_name):
    rows = sheets().fetch_values(sid, a1_range(sheet_name, "A2", "U"))
    owners = sheets().fetch_values(sid, a1_range(sheet_name, "X2", "X"))
    return {
        "projetos": [project_from_row(r) for r in rows if cell(r, COL["id"]) and cell(r, COL["projeto"])],
        "responsaveis": [str(cell(r, 0)).strip() for r in owners if str(cell(r, 0)).strip()],
    }


@bp.route("", methods=["GET"])
def index():
    sid, sheet_name = _target()
    loaded = read_through(CACHE_KEY, lambda: _load(sid, sheet_name), CACHE_TTL)
    resp = jsonify({
        "success": True,
        "data": loaded["projetos"],
        "responsaveis": loaded["responsaveis"],
        "total": len(loaded["projetos"]),
        "timestamp": now_local().isoformat(),
    })
    resp.headers["Cache-Control"] = "public, s-maxage=30, stale-while-revalidate=60"
    return resp


def _next_id(rows):
    ids = [0]
    for r in rows[1:]:
        try:
            ids.append(int(cell(r, COL["id"])))
        except ValueError:
            continue
    return max(ids) + 1


def _save(call, *args):
    try:
        call(*args)
    except UpstreamError as e:
        raise WriteFailedError(e.message)
    cache().invalidate(CACHE_KEY)


@bp.route("/create", methods=["POST"])
def create():
    body = json_body()
    require_fields(body, "projeto", "time")
    sid, sheet_name = _target()
    cache().invalidate(CACHE_KEY)
    new_id = _next_id(sheets().fetch_values(sid, a1_range(sheet_name, "A", "A")))
    now = today_br()

    row = [""] * len(COLUMNS)
    row[COL["id"]] = new_id
    for name in ("projeto", "objetivo", "prazoFinal", "responsavel", "time", "indicador",
                 "dataAfericao", "criadoPor"):
        row[COL[name]] = body.get(name) or ""
    row[COL["dataInicio"]] = body.get("dataInicio") or now
    row[COL["tendencia"]] = tendencia_to_sheet(body.get("tendencia"))
    row[COL["resultadoEsperado"]] = body.get("resultadoEsperado") or 0
    row[COL["custo"]] = body.get("custo") or 0
    row[COL["dataCriacao"]] = now
    row[COL["status"]] = DEFAULT_STATUS

    _save(sheets().append_row, sid, a1_range(sheet_name, "A", "U"), row)
    logger.info("[projetos] project %d created", new_id)
    return ok("Projeto criado com sucesso", status=201, id=new_id)


def _locate(sid, sheet_name, project_id):
    rows = sheets().fetch_values(sid, a1_range(sheet_name, "A", "U"))
    row_number = locate_row(rows, [COL["id"]], [project_id])
    if row_number is None:
        raise NotFoundError("Projeto ID %s não encontrado" % project_id)
    return row_number, rows[row_number - 1]


def _format_percent(value):
    try:
        return format_percent(value)
    except ValueError:
        raise ValidationError("percentualAtingimento inválido: %r" % (value,))


@bp.route("/update", methods=["POST"])
def update():
    body = json_body()
    require_fields(body, "id")
    project_id = str(body["id"])
    sid, sheet_name = _target()
    cache().invalidate(CACHE_KEY)
    row_number, current = _locate(sid, sheet_name, project_id)

    row = [cell(current, i) for i in range(len(COLUMNS))]
    for name in EDITABLE:
        if body.get(name) is not None:
            row[COL[name]] = body[name]
    if body.get("tendencia"):
        row[COL["tendencia"]] = tendencia_to_sheet(body["tendencia"])
    if body.get("percentualAtingimento") is not None:
        row[COL["percentualAtingimento"]] = _format_percent(body["percentualAtingimento"])
    row[COL["alteradoPor"]] = body.get("alteradoPor") or row[COL["alteradoPor"]]
    row[COL["dataAlteracao"]] = today_br()

    _save(sheets().update_values, sid,
          a1_range(sheet_name, "A%d" % row_number, "U%d" % row_number), [row])
    logger.info("[projetos] project %s updated at row %d", project_id, row_number)
    return ok("Projeto atualizado com sucesso")


@bp.route("/inactivate", methods=["POST"])
def inactivate():
    body = json_body()
    require_fields(body, "id")
    project_id = str(body["id"])
    sid, sheet_name = _target()
    cache().invalidate(CACHE_KEY)
    row_number, _ = _locate(sid, sheet_name, project_id)

    _save(sheets().update_values, sid,
          a1_range(sheet_name, "S%d" % row_number, "U%d" % row_number),
          [[body.get("inativadoPor") or "", today_br(), INACTIVE]])
    logger.info("[projetos] project %s inactivated", project_id)
    return ok("Projeto inativado com sucesso")
