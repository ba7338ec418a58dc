"""
Network management: franchise health and structural flags. The BASE GESTAO
REDE tab holds one row per unit per reference date, keyed by ``chave_data``
in column A.
"""
import logging

from flask import Blueprint, jsonify

from api_common import cache, json_body, ok, read_through, rows_response, settings, sheets
from cell_writer import CellWriter
from errors import NotFoundError, ValidationError, require_fields
from locale_format import parse_decimal
from sheet_rows import FieldColumnMap, a1_range, cell, locate_row

logger = logging.getLogger(__name__)

bp = Blueprint("gestao_rede", __name__, url_prefix="/api/gestao-rede")

CACHE_KEY = "gestao-rede:data"
CACHE_TTL = 5 * 60
KEY_COL = 0
FIELDS = FieldColumnMap("BASE GESTAO REDE", {
    "saude": 8,   # I
    "flags": 9,   # J
})

SAUDE_VALUES = {
    "UTI_RECUPERACAO": "UTI RECUPERAÇÃO",
    "UTI_REPASSE": "UTI REPASSE",
}

# order is the order labels appear in the cell
FLAG_LABELS = (
    ("governanca", "GOVERNANÇA"),
    ("necessidadeCapitalGiro", "NECESSIDADE CAPITAL DE GIRO"),
    ("timeCritico", "TIME CRÍTICO"),
    ("socioOperador", "SÓCIO OPERADOR"),
)


def flags_to_cell(flags):
    return ", ".join(label for name, label in FLAG_LABELS if flags.get(name))


# (substring, category) checked in order against the upper-cased cell
SAUDE_PATTERNS = (
    ("RECUPERA", "UTI_RECUPERACAO"),
    ("REPASSE", "UTI_REPASSE"),
    ("TOP", "TOP_PERFORMANCE"),
    ("PERFORMANDO", "PERFORMANDO"),
    ("CONSOLIDA", "EM_CONSOLIDACAO"),
    ("ATEN", "ATENCAO"),
)
MATURIDADE_YEARS = ("1", "2", "3")


def header_key(text):
    return "_".join(str(text).strip().lower().split())


def map_saude(value):
    s = str(value or "").strip().upper()
    for needle, category in SAUDE_PATTERNS:
        if needle in s:
            return category
    if s == "UTI":
        return "UTI_RECUPERACAO"
    return "SEM_AVALIACAO"


def map_maturidade(value):
    s = str(value or "").strip().upper()
    if "IMPLANTA" in s:
        return "IMPLANTACAO"
    if "ANO" in s:
        for year in MATURIDADE_YEARS:
            if year in s:
                return "%sº ANO OP." % year
    if "MADURA" in s:
        return "MADURA"
    return "IMPLANTACAO"


def map_status_inativacao(value):
    s = str(value or "").strip().upper()
    if "OPERA" in s:
        return "ENCERRADA_OPERACAO"
    if "IMPLANTA" in s:
        return "ENCERRADA_IMPLANTACAO"
    return None


def cell_to_flags(value):
    s = str(value or "").strip().upper()
    return {
        "socioOperador": "SOCIO" in s or "SÓCIO" in s,
        "timeCritico": "TIME" in s or "CRITICO" in s or "CRÍTICO" in s,
        "governanca": "GOVERNA" in s,
        "necessidadeCapitalGiro": "CAPITAL" in s or "GIRO" in s,
    }


def _number(value, default):
    try:
        return parse_decimal(value)
    except ValueError:
        return default


def franquias_from_rows(rows):
    """
    One entry per unit (``nm_unidade``), taken from its most recent ``data``
    row. Older rows give the previous health and how many consecutive
    periods the unit has kept its current one.
    """
    if len(rows) < 2:
        return []
    columns = {}
    for i, h in enumerate(rows[0]):
        columns.setdefault(header_key(h), i)

    def value(row, name):
        idx = columns.get(name)
        return "" if idx is None else str(cell(row, idx))

    by_unit = {}
    for row in rows[1:]:
        nome = value(row, "nm_unidade").strip()
        if nome:
            by_unit.setdefault(nome, []).append(row)

    franquias = []
    for nome, history in by_unit.items():
        history.sort(key=lambda r: value(r, "data").strip(), reverse=True)
        current = history[0]
        saudes = [map_saude(value(r, "saude")) for r in history]
        streak = 1
        for s in saudes[1:]:
            if s != saudes[0]:
                break
            streak += 1
        postos = [p.strip() for p in value(current, "posto_avancado").split(",") if p.strip()]
        franquias.append({
            "id": "fr-%d" % (len(franquias) + 1),
            "chaveData": value(current, "chave_data"),
            "dataReferencia": value(current, "data"),
            "nome": nome,
            "status": "ATIVA" if value(current, "status").strip().upper() == "ATIVA" else "INATIVA",
            "statusInativacao": map_status_inativacao(value(current, "status_inativacao")),
            "dataInauguracao": value(current, "dt_inauguracao"),
            "maturidade": map_maturidade(value(current, "maturidade")),
            "pontuacaoPex": _number(value(current, "pontuacao_pex"), 0),
            "saude": saudes[0],
            "flags": cell_to_flags(value(current, "flags")),
            "postosAvancados": postos,
            "mercado": value(current, "mercado").strip(),
            "cidade": value(current, "cidade").strip(),
            "estado": value(current, "estado").strip(),
            "latitude": _number(value(current, "latitude"), None),
            "longitude": _number(value(current, "longitude"), None),
            "saudeAnterior": saudes[1] if len(saudes) > 1 else None,
            "mesesNaSaudeAtual": streak,
        })
    return franquias


def _target():
    return settings().require("gestao_rede_spreadsheet_id", "gestao_rede_sheet_name")


@bp.route("/data", methods=["GET"])
def data():
    sid, sheet_name = _target()
    rows = read_through(
        CACHE_KEY,
        lambda: sheets().fetch_values(sid, a1_range(sheet_name, "A", "P")),
        CACHE_TTL,
    )
    if not rows:
        return jsonify({"success": True, "data": [], "message": "Nenhum dado encontrado na planilha"})
    franquias = franquias_from_rows(rows)
    return rows_response({
        "success": True,
        "data": franquias,
        "dataReferencia": franquias[0]["dataReferencia"] if franquias else "",
    }, 60, 300, wrap=False)


def _write(chave, field, value):
    sid, sheet_name = _target()
    cache().invalidate(CACHE_KEY)
    rows = sheets().fetch_values(sid, a1_range(sheet_name, "A", "A"))
    row_number = locate_row(rows, [KEY_COL], [chave])
    if row_number is None:
        raise NotFoundError('Franquia com chaveData "%s" não encontrada' % chave)
    CellWriter(sheets(), sid, FIELDS).update(sheet_name, row_number, field, value)
    cache().invalidate(CACHE_KEY)
    logger.info("[gestao-rede] %s of %s written at row %d", field, chave, row_number)


@bp.route("/update-saude", methods=["POST"])
def update_saude():
    body = json_body()
    require_fields(body, "chaveData", "novoStatus")
    novo = body["novoStatus"]
    if novo not in SAUDE_VALUES:
        raise ValidationError("novoStatus deve ser %s" % " ou ".join(SAUDE_VALUES))
    _write(str(body["chaveData"]), "saude", SAUDE_VALUES[novo])
    return ok("Saúde atualizada para %s" % SAUDE_VALUES[novo])


@bp.route("/update-flags", methods=["POST"])
def update_flags():
    body = json_body()
    require_fields(body, "chaveData", "flags")
    flags = body["flags"]
    if not isinstance(flags, dict):
        raise ValidationError("flags deve ser um objeto")
    _write(str(body["chaveData"]), "flags", flags_to_cell(flags))
    active = sum(1 for name, _ in FLAG_LABELS if flags.get(name))
    msg = "Todas as flags foram removidas" if not active else "%d flag(s) atualizada(s)" % active
    return ok(msg)
