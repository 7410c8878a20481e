# backend/app/core/exception_handlers.py
# Gestionnaires globaux : toutes les erreurs sortent dans l'enveloppe `{success: false, error: {code, message}}`.

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.dto.response_format import ErrorResponse
from app.core.errors import AggregateDriftError, IntegrationError, ScoringError
from app.core.logging_config import get_loggers

# Erreurs métier qui signalent une anomalie côté serveur (pas un rejet d'entrée)
SERVER_SIDE_ERRORS = (AggregateDriftError, IntegrationError)


def _error(status_code: int, code: str, message, details=None) -> JSONResponse:
    detail = {"code": code, "message": message}
    if details is not None:
        detail["details"] = details
    return JSONResponse(status_code=status_code, content=ErrorResponse.from_detail(detail).model_dump(mode="json"))


def register_exception_handlers(app: FastAPI):
    """Enregistre les gestionnaires d'exceptions globaux."""

    @app.exception_handler(ScoringError)
    async def scoring_exception_handler(request: Request, exc: ScoringError):
        """Erreurs métier : code stable, statut porté par la classe d'erreur."""
        if isinstance(exc, SERVER_SIDE_ERRORS):
            _, error_logger, _ = get_loggers()
            error_logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse.from_scoring_error(exc).model_dump(mode="json"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, f"HTTP_{exc.status_code}", exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Erreurs de validation Pydantic, une entrée par champ fautif."""
        errors = [
            {"field": " -> ".join(str(loc) for loc in error["loc"]), "message": error["msg"], "type": error["type"]}
            for error in exc.errors()
        ]
        return _error(422, "VALIDATION_ERROR", "Validation failed", errors)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        _, error_logger, _ = get_loggers()
        error_logger.error(f"Unhandled error on {request.url.path}: {exc!r}")
        return _error(500, "INTERNAL_ERROR", "An unexpected error occurred")
