"""
Branch / release tracking. Each record is one row of the BASE tab, keyed by
the opaque ``id`` in column A.
"""
import logging

from flask import Blueprint, jsonify

from api_common import cache, json_body, ok, read_through, settings, sheets
from cell_writer import CellWriter
from errors import NotFoundError, ValidationError, require_fields
from sheet_rows import FieldColumnMap, a1_range, column_index_to_letter, locate_row

logger = logging.getLogger(__name__)

bp = Blueprint("branches", __name__, url_prefix="/api/branches")

CACHE_KEY = "branches:data"
CACHE_TTL = 30

HEADERS = [
    "id", "tipo", "versao", "nome_completo", "criado_por", "criado_por_nome",
    "modulo", "data_criacao", "status", "link", "descricao", "release_id",
    "aprovado_por", "aprovado_por_nome", "data_aprovacao",
    "entregue_por", "entregue_por_nome", "data_entrega",
]
LAST_COL = column_index_to_letter(len(HEADERS) - 1)  # R

EDITABLE = (
    "modulo", "status", "link", "descricao",
    "aprovado_por", "aprovado_por_nome", "data_aprovacao",
    "entregue_por", "entregue_por_nome", "data_entrega",
)
FIELDS = FieldColumnMap("BASE", {name: HEADERS.index(name) for name in EDITABLE})

# dashboard modules a branch can target
MODULES = (
    "analise-mercado", "branches", "carteira", "fluxo-projetado", "gestao-rede",
    "kpi", "okr", "painel-gerencial", "pex", "projetos", "vendas",
)


def _target():
    return settings().require("branches_spreadsheet_id", "branches_sheet_name")


@bp.route("/data", methods=["GET"])
def data():
    sid, sheet_name = _target()
    rows = read_through(
        CACHE_KEY,
        lambda: sheets().fetch_values(sid, a1_range(sheet_name, "A", LAST_COL)),
        CACHE_TTL,
    )
    resp = jsonify({"values": rows, "cached": True})
    resp.headers["Cache-Control"] = "no-cache"
    return resp


@bp.route("/modules", methods=["GET"])
def modules():
    return jsonify({"modules": sorted(MODULES)})


@bp.route("/create", methods=["POST"])
def create():
    values = json_body().get("values")
    if not isinstance(values, list) or not values:
        raise ValidationError("Dados inválidos. Envie { values: [array de valores] }")
    sid, sheet_name = _target()
    sheets().append_row(sid, a1_range(sheet_name, "A", LAST_COL), values)
    cache().invalidate(CACHE_KEY)
    return ok("Registro criado com sucesso", status=201)


@bp.route("/init", methods=["POST"])
def init():
    """Write the header row when it is missing or predates the newest columns."""
    sid, sheet_name = _target()
    header_range = a1_range(sheet_name, "A1", "%s1" % LAST_COL)
    rows = sheets().fetch_values(sid, header_range)
    existing = rows[0] if rows else []
    complete = (
        len(existing) >= len(HEADERS)
        and existing[0] == HEADERS[0]
        and existing[-1] == HEADERS[-1]
    )
    if complete:
        return ok("Headers já existem", headers=existing)
    sheets().update_values(sid, header_range, [HEADERS])
    cache().invalidate(CACHE_KEY)
    return ok("Headers criados com sucesso", status=201, headers=HEADERS)


@bp.route("/update", methods=["PUT"])
def update():
    body = json_body()
    require_fields(body, "id", "field")
    if "value" not in body or body["value"] is None:
        raise ValidationError("Dados inválidos. Envie { id, field, value }")
    record_id, field = str(body["id"]), str(body["field"])
    FIELDS.column(field)

    sid, sheet_name = _target()
    cache().invalidate(CACHE_KEY)
    rows = sheets().fetch_values(sid, a1_range(sheet_name, "A", LAST_COL))
    row_number = locate_row(rows, [0], [record_id])
    if row_number is None:
        raise NotFoundError('Registro com id "%s" não encontrado' % record_id)

    CellWriter(sheets(), sid, FIELDS).update(sheet_name, row_number, field, body["value"])
    cache().invalidate(CACHE_KEY)
    return ok("Campo atualizado com sucesso")
