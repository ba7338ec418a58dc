from flask import jsonify, request
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """Base for errors that map to a JSON ``{error, message}`` response."""

    status_code = 500
    category = "Erro interno"

    def __init__(self, message, category=None):
        super().__init__(message)
        self.message = message
        if category:
            self.category = category

    def to_dict(self):
        return {"error": self.category, "message": self.message}


class ConfigurationError(ApiError):
    status_code = 500
    category = "Configuração incompleta"


class ValidationError(ApiError):
    status_code = 400
    category = "Dados inválidos"


class InvalidFieldError(ValidationError):
    category = "Campo inválido"


class NotFoundError(ApiError):
    status_code = 404
    category = "Registro não encontrado"


class MethodNotAllowedError(ApiError):
    status_code = 405
    category = "Método não permitido"


class UpstreamError(ApiError):
    status_code = 500
    category = "Erro ao acessar planilha"


class WriteFailedError(UpstreamError):
    category = "Erro ao gravar na planilha"


def require_fields(data, *names):
    """Raise ValidationError naming every field that is missing or blank."""
    missing = []
    for name in names:
        val = data.get(name)
        if val is None or (isinstance(val, str) and not val.strip()):
            missing.append(name)
    if missing:
        raise ValidationError("Campos obrigatórios: %s" % ", ".join(missing))


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def _api_error(e):
        if e.status_code >= 500:
            app.logger.error("%s: %s", e.category, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e):
        if e.code == 405:
            body = MethodNotAllowedError("Método %s não permitido" % request.method).to_dict()
        else:
            body = {"error": e.name, "message": e.description}
        return jsonify(body), e.code

    @app.errorhandler(Exception)
    def _unexpected(e):
        app.logger.exception("unhandled error: %s", e)
        return jsonify({"error": "Erro interno", "message": str(e) or "Erro desconhecido"}), 500
