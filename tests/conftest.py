"""
Pytest configuration and fixtures.

``FakeSheets`` stands in for SheetsClient: it keeps one in-memory table per
tab, answers A1 reads by slicing it, and applies writes to it so a later
read sees them (the way USER_ENTERED input lands in the real sheet).
"""
import copy
import re

import pytest

from dashboard_api import create_app
from errors import UpstreamError
from settings import Settings
from sheet_cache import SheetCache
from sheet_rows import column_index_to_letter, column_letter_to_index

_A1 = re.compile(r"^(?P<c1>[A-Z]+)(?P<r1>\d*)(?::(?P<c2>[A-Z]+)(?P<r2>\d*))?$")


def split_range(range_a1):
    if "!" not in range_a1:
        return range_a1, None
    sheet, rng = range_a1.rsplit("!", 1)
    if sheet.startswith("'") and sheet.endswith("'"):
        sheet = sheet[1:-1].replace("''", "'")
    return sheet, rng


class FakeSheets:
    def __init__(self, tables=None):
        self.tables = {}
        for name, rows in (tables or {}).items():
            self.tables[name] = [list(r) for r in rows]
        self.reads = []
        self.public_reads = []
        self.writes = []
        self.appends = []
        self.formats = []
        self.fail_reads = None
        self.fail_writes = None

    def _slice(self, range_a1):
        sheet, rng = split_range(range_a1)
        if sheet not in self.tables:
            raise UpstreamError("Unable to parse range: %s" % range_a1)
        rows = self.tables[sheet]
        if rng is None:
            return copy.deepcopy(rows)
        m = _A1.match(rng)
        c1 = column_letter_to_index(m.group("c1"))
        c2 = column_letter_to_index(m.group("c2")) if m.group("c2") else c1
        r1 = int(m.group("r1")) if m.group("r1") else 1
        r2 = int(m.group("r2")) if m.group("r2") else len(rows)
        out = [list(r[c1:c2 + 1]) for r in rows[r1 - 1:r2]]
        # the API drops trailing empty rows
        while out and not any(out[-1]):
            out.pop()
        return out

    def _write_cell(self, range_a1, value):
        sheet, rng = split_range(range_a1)
        m = _A1.match(rng)
        col = column_letter_to_index(m.group("c1"))
        row = int(m.group("r1"))
        rows = self.tables.setdefault(sheet, [])
        while len(rows) < row:
            rows.append([])
        r = rows[row - 1]
        while len(r) <= col:
            r.append("")
        r[col] = value

    # ─── SheetsClient surface ───────────────────────────────────────────

    def fetch_values(self, spreadsheet_id, range_a1, value_render_option=None):
        self.reads.append((spreadsheet_id, range_a1))
        if self.fail_reads:
            raise UpstreamError(self.fail_reads)
        return self._slice(range_a1)

    def fetch_public_values(self, spreadsheet_id, range_a1):
        self.public_reads.append((spreadsheet_id, range_a1))
        if self.fail_reads:
            raise UpstreamError(self.fail_reads)
        return self._slice(range_a1)

    def update_values(self, spreadsheet_id, range_a1, values, value_input_option="USER_ENTERED"):
        if self.fail_writes:
            raise UpstreamError(self.fail_writes)
        self.writes.append((spreadsheet_id, range_a1, values, value_input_option))
        sheet, rng = split_range(range_a1)
        m = _A1.match(rng)
        col0 = column_letter_to_index(m.group("c1"))
        row0 = int(m.group("r1"))
        for dr, vals in enumerate(values):
            for dc, v in enumerate(vals):
                self._write_cell("%s!%s%d" % (sheet, column_index_to_letter(col0 + dc), row0 + dr), v)
        return {"updatedCells": sum(len(v) for v in values)}

    def batch_update_values(self, spreadsheet_id, data, value_input_option="USER_ENTERED"):
        for item in data:
            self.update_values(spreadsheet_id, item["range"], item["values"], value_input_option)
        return {"totalUpdatedCells": len(data)}

    def append_row(self, spreadsheet_id, range_a1, row):
        return self.append_rows(spreadsheet_id, range_a1, [row])

    def append_rows(self, spreadsheet_id, range_a1, rows):
        if self.fail_writes:
            raise UpstreamError(self.fail_writes)
        sheet, _ = split_range(range_a1)
        table = self.tables.setdefault(sheet, [])
        for row in rows:
            self.appends.append((spreadsheet_id, range_a1, row))
            table.append(list(row))
        return {"updates": {"updatedRows": len(rows)}}

    def set_number_format(self, spreadsheet_id, sheet_name, column, row_spans, number_format):
        self.formats.append((sheet_name, column, list(row_spans), number_format))


TEST_SETTINGS = dict(
    google_sheet_id="pex-sheet",
    service_account_b64="unused-in-tests",
    google_api_key="test-key",
    funil_spreadsheet_id="funil-sheet",
    metas_spreadsheet_id="metas-sheet",
    carteira_spreadsheet_id="carteira-sheet",
    gestao_rede_spreadsheet_id="rede-sheet",
    branches_spreadsheet_id="branches-sheet",
    okr_spreadsheet_id="okr-sheet",
    projetos_spreadsheet_id="projetos-sheet",
    fluxo_spreadsheet_id="fluxo-sheet",
)


@pytest.fixture
def fake_sheets():
    return FakeSheets()


@pytest.fixture
def cache():
    return SheetCache(default_ttl=60)


@pytest.fixture
def settings():
    return Settings(**TEST_SETTINGS)


@pytest.fixture
def app(settings, cache, fake_sheets):
    app = create_app(settings=settings, cache=cache, sheets=fake_sheets)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
