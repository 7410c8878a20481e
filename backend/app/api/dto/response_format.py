# backend/app/api/dto/response_format.py
# Enveloppes de réponse communes : succès `{success, data, message}` et erreur `{success, error{code, message}}`.

from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel

T = TypeVar("T")


class SuccessResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Réponse d'erreur.

    Attributes:
        error (dict): `code` stable (ex. 'CAP_EXCEEDED'), `message`, et `details` éventuels.
    """

    success: bool = False
    error: dict[str, Any]

    @classmethod
    def from_detail(cls, detail: Union[str, dict[str, Any]], code: str = "VALIDATION_ERROR"):
        if isinstance(detail, str):
            return cls(error={"code": code, "message": detail})
        return cls(error={"code": code, **detail})

    @classmethod
    def from_scoring_error(cls, exc) -> "ErrorResponse":
        """Erreur métier (`ScoringError`) : code, message et détails s'il y en a."""
        detail: dict[str, Any] = {"code": exc.code, "message": exc.message}
        if exc.details:
            detail["details"] = exc.details
        return cls(error=detail)
