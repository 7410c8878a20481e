# backend/app/core/errors.py
# Taxonomie des erreurs métier du moteur de scoring (codes stables, statut HTTP associé).

from __future__ import annotations

from typing import Any, Optional


class ScoringError(Exception):
    """Erreur métier de base.

    Description:
        Porte un `code` stable (exposé dans `ErrorResponse`) et le statut HTTP à renvoyer
        par le gestionnaire d'exceptions global.
    """

    code = "SCORING_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- validation (rejet avant persistance) ---

class OutOfChallengeWindow(ScoringError):
    code = "OUT_OF_CHALLENGE_WINDOW"


class ActivityTypeNotLoggableThisWeek(ScoringError):
    code = "ACTIVITY_TYPE_NOT_LOGGABLE_THIS_WEEK"


class CapExceeded(ScoringError):
    code = "CAP_EXCEEDED"
    status_code = 409


class UnknownScoringConfigType(ScoringError):
    code = "UNKNOWN_SCORING_CONFIG_TYPE"
    status_code = 422


class ChallengeOrTypeNotFound(ScoringError):
    code = "CHALLENGE_OR_TYPE_NOT_FOUND"
    status_code = 404


class ActivityNotFound(ScoringError):
    code = "ACTIVITY_NOT_FOUND"
    status_code = 404


class NotParticipating(ScoringError):
    code = "NOT_PARTICIPATING"
    status_code = 403


class PaymentRequired(ScoringError):
    code = "PAYMENT_REQUIRED"
    status_code = 402


class MissingAuditComment(ScoringError):
    code = "MISSING_AUDIT_COMMENT"


class VariablePointsNotAllowed(ScoringError):
    code = "VARIABLE_POINTS_NOT_ALLOWED"
    status_code = 403


class NotAVariableType(ScoringError):
    code = "NOT_A_VARIABLE_TYPE"


class PrivateChallenge(ScoringError):
    code = "PRIVATE_CHALLENGE"
    status_code = 403


class InvalidCursor(ScoringError):
    code = "INVALID_CURSOR"


# --- idempotence (résolue en update, jamais remontée) ---

class DuplicateExternalActivity(ScoringError):
    code = "DUPLICATE_EXTERNAL_ACTIVITY"
    status_code = 409


# --- cohérence des agrégats (fatal / alerte) ---

class AggregateDriftError(ScoringError):
    code = "AGGREGATE_DRIFT"
    status_code = 500


# --- intégrations externes ---

class IntegrationError(ScoringError):
    code = "INTEGRATION_ERROR"
    status_code = 502


class IntegrationReconnectRequired(IntegrationError):
    code = "INTEGRATION_RECONNECT_REQUIRED"
