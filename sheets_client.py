import base64
import json
import logging
import threading
import urllib.parse

import httplib2
import requests
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
VALUES_URL = "https://sheets.googleapis.com/v4/spreadsheets/{sid}/values/{rng}"
PUBLIC_READ_TIMEOUT = 30  # seconds


def load_service_account_credentials(encoded=None, path=None):
    """
    Build service-account credentials from a base64-encoded JSON key
    (GOOGLE_SERVICE_ACCOUNT_BASE64) or, failing that, a key file path.
    """
    if encoded:
        try:
            info = json.loads(base64.b64decode(encoded).decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise ConfigurationError("GOOGLE_SERVICE_ACCOUNT_BASE64 inválido: %s" % e)
        if not info.get("client_email") or not info.get("private_key"):
            raise ConfigurationError("Service Account inválido: client_email/private_key ausentes")
        return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
    if path:
        try:
            return service_account.Credentials.from_service_account_file(path, scopes=SCOPES)
        except (OSError, ValueError) as e:
            raise ConfigurationError("GOOGLE_APPLICATION_CREDENTIALS inválido: %s" % e)
    raise ConfigurationError(
        "Variáveis de ambiente não configuradas: GOOGLE_SERVICE_ACCOUNT_BASE64"
    )


class SheetsClient:
    """
    Thin wrapper over the Sheets v4 values API.

    Reads return a list of rows (lists of strings; the API omits trailing
    empty cells and rows). Transport and API failures surface as
    UpstreamError with the upstream message attached. Nothing is retried.
    """

    def __init__(self, settings, service=None, http_session=None):
        self.settings = settings
        self._service = service
        self._service_lock = threading.Lock()
        self._http = http_session or requests.Session()

    def _spreadsheets(self):
        with self._service_lock:
            if self._service is None:
                creds = load_service_account_credentials(
                    self.settings.service_account_b64,
                    self.settings.service_account_file,
                )
                self._service = build("sheets", "v4", credentials=creds, cache_discovery=False)
            return self._service.spreadsheets()

    def _values(self):
        return self._spreadsheets().values()

    def _execute(self, what, call):
        try:
            return call.execute()
        except (HttpError, httplib2.HttpLib2Error, GoogleAuthError, OSError) as e:
            raise UpstreamError("%s falhou: %s" % (what, e))

    # ─── reads ──────────────────────────────────────────────────────────

    def fetch_values(self, spreadsheet_id, range_a1, value_render_option=None):
        params = dict(spreadsheetId=spreadsheet_id, range=range_a1, majorDimension="ROWS")
        if value_render_option:
            params["valueRenderOption"] = value_render_option
        resp = self._execute("Leitura de %s" % range_a1, self._values().get(**params))
        rows = resp.get("values", []) or []
        logger.debug("fetched %d rows from %s", len(rows), range_a1)
        return rows

    def fetch_public_values(self, spreadsheet_id, range_a1):
        """Read a range with the public API key instead of the service account."""
        api_key = self.settings.require("google_api_key")
        url = VALUES_URL.format(
            sid=spreadsheet_id, rng=urllib.parse.quote(range_a1, safe="")
        )
        try:
            r = self._http.get(url, params={"key": api_key}, timeout=PUBLIC_READ_TIMEOUT)
        except requests.RequestException as e:
            raise UpstreamError("Falha ao buscar dados: %s" % e)
        if not r.ok:
            raise UpstreamError("Falha ao buscar dados: %s" % r.text)
        return r.json().get("values", []) or []

    # ─── writes ─────────────────────────────────────────────────────────

    def update_values(self, spreadsheet_id, range_a1, values, value_input_option="USER_ENTERED"):
        body = {"range": range_a1, "majorDimension": "ROWS", "values": values}
        return self._execute(
            "Escrita em %s" % range_a1,
            self._values().update(
                spreadsheetId=spreadsheet_id,
                range=range_a1,
                valueInputOption=value_input_option,
                body=body,
            ),
        )

    def batch_update_values(self, spreadsheet_id, data, value_input_option="USER_ENTERED"):
        body = {"valueInputOption": value_input_option, "data": data}
        return self._execute(
            "Escrita em lote (%d intervalos)" % len(data),
            self._values().batchUpdate(spreadsheetId=spreadsheet_id, body=body),
        )

    def append_row(self, spreadsheet_id, range_a1, row):
        return self.append_rows(spreadsheet_id, range_a1, [row])

    def append_rows(self, spreadsheet_id, range_a1, rows):
        return self._execute(
            "Inclusão em %s" % range_a1,
            self._values().append(
                spreadsheetId=spreadsheet_id,
                range=range_a1,
                valueInputOption="USER_ENTERED",
                insertDataOption="INSERT_ROWS",
                body={"values": rows},
            ),
        )

    # ─── formatting ─────────────────────────────────────────────────────

    def sheet_id(self, spreadsheet_id, sheet_name):
        meta = self._execute(
            "Leitura das abas",
            self._spreadsheets().get(spreadsheetId=spreadsheet_id, fields="sheets.properties"),
        )
        for sheet in meta.get("sheets", []):
            props = sheet.get("properties", {})
            if props.get("title") == sheet_name:
                return props.get("sheetId", 0)
        raise UpstreamError("Aba %s não encontrada na planilha" % sheet_name)

    def set_number_format(self, spreadsheet_id, sheet_name, column, row_spans, number_format):
        """
        Apply ``number_format`` (``{"type", "pattern"}``) to one zero-based
        column over each ``(first_row, last_row)`` span, 1-based and inclusive.
        """
        sid = self.sheet_id(spreadsheet_id, sheet_name)
        reqs = [
            {"repeatCell": {
                "range": {
                    "sheetId": sid,
                    "startRowIndex": first - 1,
                    "endRowIndex": last,
                    "startColumnIndex": column,
                    "endColumnIndex": column + 1,
                },
                "cell": {"userEnteredFormat": {"numberFormat": number_format}},
                "fields": "userEnteredFormat.numberFormat",
            }}
            for first, last in row_spans
        ]
        return self._execute(
            "Formatação de %s" % sheet_name,
            self._spreadsheets().batchUpdate(spreadsheetId=spreadsheet_id, body={"requests": reqs}),
        )
