"""
Management panel: KPI and OKR summaries read from the OKR workbook, and the
FCA (fato, causa, ação) notes written next to each monthly KPI row.
"""
import logging

from flask import Blueprint, jsonify, request

from api_common import cache, json_body, ok, read_through, settings, sheets, today_br
from errors import NotFoundError, UpstreamError, WriteFailedError, require_fields
from locale_format import parse_decimal
from routes_okr_kpi import KPI_KEY
from sheet_rows import a1_range, cell, locate_row

logger = logging.getLogger(__name__)

bp = Blueprint("gerencial", __name__, url_prefix="/api/gerencial")

CACHE_TTL = 5 * 60
KPIS_KEY = "gerencial:kpis"
OKRS_KEY = "gerencial:okrs"

KPI_COLUMNS = ("equipe", "nome", "meta", "realizado", "percentual", "unidade", "competencia")
OKR_COLUMNS = ("equipe", "objetivo", "keyResult", "meta", "realizado", "percentual", "trimestre")
NUMBER_FIELDS = ("meta", "realizado", "percentual")

ON_TARGET = 100
ATTENTION_BELOW = 80
EBITDA_NAMES = ("ebitda", "resultado")

# FCA columns on the KPIS tab
FCA_COLUMNS = (
    ("criadoEm", "V"),
    ("fato", "W"),
    ("causa", "X"),
    ("efeito", "Y"),
    ("acao", "Z"),
    ("responsavel", "AA"),
    ("terminoPrevisto", "AB"),
    ("realizado", "AC"),
)


def _number(value):
    try:
        return parse_decimal(value)
    except ValueError:
        return 0


def records(rows, columns, required):
    out = []
    for row in rows[1:]:
        rec = {name: cell(row, i) for i, name in enumerate(columns)}
        for name in NUMBER_FIELDS:
            rec[name] = _number(rec[name])
        if all(rec[name] for name in required):
            out.append(rec)
    return out


def ebitda(kpis):
    for k in kpis:
        name = str(k["nome"]).lower()
        if any(n in name for n in EBITDA_NAMES):
            return {"valor": k["realizado"], "meta": k["meta"], "percentual": k["percentual"]}
    realizado = sum(k["realizado"] for k in kpis)
    meta = sum(k["meta"] for k in kpis)
    return {
        "valor": realizado,
        "meta": meta,
        "percentual": realizado / meta * 100 if meta > 0 else 0,
    }


def team_performance(kpis):
    by_team = {}
    for k in kpis:
        by_team.setdefault(k["equipe"], []).append(k)
    out = []
    for equipe, team_kpis in by_team.items():
        pcts = [k["percentual"] for k in team_kpis]
        out.append({
            "equipe": equipe,
            "totalKpis": len(team_kpis),
            "kpisNaMeta": sum(1 for p in pcts if p >= ON_TARGET),
            "kpisAbaixoMeta": sum(1 for p in pcts if p < ATTENTION_BELOW),
            "mediaPercentual": sum(pcts) / len(pcts),
        })
    return out


def _public_rows(key, sheet_name):
    sid = settings().require("okr_spreadsheet_id")
    return read_through(
        key,
        lambda: sheets().fetch_public_values(sid, a1_range(sheet_name, "A", "G")),
        CACHE_TTL,
    )


@bp.route("/data", methods=["GET"])
def data():
    cfg = settings()
    kpis = records(_public_rows(KPIS_KEY, cfg.kpi_sheet_name), KPI_COLUMNS, ("nome", "equipe"))
    okrs = records(_public_rows(OKRS_KEY, cfg.okr_summary_sheet_name), OKR_COLUMNS, ("objetivo", "equipe"))

    equipe = request.args.get("equipe")
    if equipe and equipe != "Todas":
        kpis = [k for k in kpis if k["equipe"] == equipe]
        okrs = [o for o in okrs if o["equipe"] == equipe]
    trimestre = request.args.get("trimestre")
    if trimestre and trimestre != "Todos":
        okrs = [o for o in okrs if o["trimestre"] == trimestre]

    equipes = []
    for rec in kpis + okrs:
        if rec["equipe"] not in equipes:
            equipes.append(rec["equipe"])

    return jsonify({
        "success": True,
        "data": {
            "kpis": kpis,
            "okrs": okrs,
            "ebitda": ebitda(kpis),
            "teamPerformance": team_performance(kpis),
            "kpisAtencao": [k for k in kpis if k["percentual"] < ATTENTION_BELOW],
            "equipes": equipes,
        },
    })


def _header_index(header, *names):
    for i, h in enumerate(header):
        if str(h).strip().upper() in names:
            return i
    return None


@bp.route("/fca", methods=["POST"])
def fca():
    body = json_body()
    require_fields(body, "time", "kpi", "competencia")
    keys = [str(body[f]).strip() for f in ("time", "kpi", "competencia")]

    sid = settings().require("okr_spreadsheet_id")
    sheet_name = settings().kpi_sheet_name
    rows = sheets().fetch_values(sid, a1_range(sheet_name, "A", "S"))
    if not rows:
        raise NotFoundError("A planilha KPIS está vazia")

    key_columns = [
        _header_index(rows[0], "TIME"),
        _header_index(rows[0], "KPI"),
        _header_index(rows[0], "COMPETÊNCIA", "COMPETENCIA"),
    ]
    if None in key_columns:
        raise UpstreamError("Colunas TIME, KPI ou COMPETÊNCIA não encontradas")

    trimmed = [[str(c).strip() for c in r] for r in rows]
    row_number = locate_row(trimmed, key_columns, keys)
    if row_number is None:
        raise NotFoundError('Não foi encontrado KPI "%s" do time "%s" na competência "%s"'
                            % (keys[1], keys[0], keys[2]))

    complete = body.get("action") == "complete"
    values = {name: body.get(name) or "" for name, _ in FCA_COLUMNS}
    values["criadoEm"] = today_br()
    values["realizado"] = "Sim" if complete else "Não"
    try:
        sheets().batch_update_values(sid, [
            {"range": a1_range(sheet_name, "%s%d" % (col, row_number)), "values": [[values[name]]]}
            for name, col in FCA_COLUMNS
        ])
    except UpstreamError as e:
        raise WriteFailedError(e.message)
    cache().invalidate(KPI_KEY)
    cache().invalidate(KPIS_KEY)
    logger.info("[gerencial] FCA for %s/%s %s written at row %d", keys[0], keys[1], keys[2], row_number)

    values.update(time=keys[0], kpi=keys[1], competencia=keys[2], rowUpdated=row_number)
    return ok("FCA concluído com sucesso!" if complete else "FCA salvo com sucesso!", data=values)
