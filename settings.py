import os

from errors import ConfigurationError

# Workbooks that ship with a fixed id in the dashboard; env vars override them.
DEFAULT_BRANCHES_SPREADSHEET_ID = "1zjb2Z9pvNeJ2I29LPYCT5OVhKNonzze098QrmDH1YLs"
DEFAULT_OKR_SPREADSHEET_ID = "1saWDiU5tILtSheGgykJEz-xR0pmemz29256Y7pfZvSs"
DEFAULT_PROJETOS_SPREADSHEET_ID = "182mM7NKo8IxLe1QKP7kSvAP-pNTZQbWPEaLje7oE7s4"
DEFAULT_FLUXO_SPREADSHEET_ID = "1ymgmW6ISadb8xKBpcNDXTnGr0buoOFVszSZmxaOxKBQ"

_ENV_MAP = {
    # attribute                  env var                           default
    "google_sheet_id":           ("GOOGLE_SHEET_ID",               None),
    "service_account_b64":       ("GOOGLE_SERVICE_ACCOUNT_BASE64", None),
    "service_account_file":      ("GOOGLE_APPLICATION_CREDENTIALS", None),
    "google_api_key":            ("GOOGLE_API_KEY",                None),
    "funil_spreadsheet_id":      ("SPREADSHEET_FUNIL",             "1t67xdPLHB34pZw8WzBUphGRqFye0ZyrTLvDhC7jbVEc"),
    "funil_sheet_name":          ("SHEET_FUNIL",                   "base"),
    "metas_spreadsheet_id":      ("SPREADSHEET_METAS",             None),
    "metas_sheet_name":          ("SHEET_METAS",                   "metas"),
    "carteira_spreadsheet_id":   ("CARTEIRA_SHEET_ID",             None),
    "gestao_rede_spreadsheet_id": ("GESTAO_REDE_SPREADSHEET_ID",   None),
    "gestao_rede_sheet_name":    ("GESTAO_REDE_SHEET_NAME",        "BASE GESTAO REDE"),
    "branches_spreadsheet_id":   ("BRANCHES_SPREADSHEET_ID",       DEFAULT_BRANCHES_SPREADSHEET_ID),
    "branches_sheet_name":       ("BRANCHES_SHEET_NAME",           "BASE"),
    "okr_spreadsheet_id":        ("OKR_SPREADSHEET_ID",            DEFAULT_OKR_SPREADSHEET_ID),
    "kpi_sheet_name":            ("KPI_SHEET_NAME",                "KPIS"),
    "okr_panel_sheet_name":      ("OKR_PANEL_SHEET_NAME",          "NOVO PAINEL OKR"),
    "okr_summary_sheet_name":    ("OKR_SUMMARY_SHEET_NAME",        "OKRS VC"),
    "projetos_spreadsheet_id":   ("PROJETOS_SPREADSHEET_ID",       DEFAULT_PROJETOS_SPREADSHEET_ID),
    "projetos_sheet_name":       ("PROJETOS_SHEET_NAME",           "Projetos"),
    "fluxo_spreadsheet_id":      ("FLUXO_SPREADSHEET_ID",          DEFAULT_FLUXO_SPREADSHEET_ID),
    "frontend_url":              ("FRONTEND_URL",                  "http://localhost:3000"),
}


class Settings:
    """
    Environment-backed configuration, read once when the app is created.

    Values stay optional here; a route that needs one calls ``require`` so a
    missing variable turns into a ConfigurationError naming it, at request
    time, instead of stopping the whole server.
    """

    def __init__(self, **values):
        for attr, (_, default) in _ENV_MAP.items():
            setattr(self, attr, values.pop(attr, default))
        self.cache_default_ttl = float(values.pop("cache_default_ttl", 120))
        self.log_level = values.pop("log_level", "INFO")
        self.port = int(values.pop("port", 10000))
        if values:
            raise TypeError("unknown settings: %s" % ", ".join(sorted(values)))

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        values = {}
        for attr, (var, default) in _ENV_MAP.items():
            raw = (env.get(var) or "").strip()
            values[attr] = raw or default
        values["cache_default_ttl"] = env.get("CACHE_DEFAULT_TTL") or 120
        values["log_level"] = (env.get("LOG_LEVEL") or "INFO").upper()
        values["port"] = env.get("PORT") or 10000
        return cls(**values)

    def require(self, *attrs):
        """Return the requested values, raising ConfigurationError if any is unset."""
        missing = [_ENV_MAP[a][0] for a in attrs if not getattr(self, a)]
        if missing:
            raise ConfigurationError(
                "Variáveis de ambiente não configuradas: %s" % ", ".join(missing)
            )
        vals = tuple(getattr(self, a) for a in attrs)
        return vals[0] if len(vals) == 1 else vals
