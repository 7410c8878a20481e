# backend/app/models/integration.py
# Intégrations externes (Strava) : jetons utilisateur, correspondances de types, payloads webhook bruts.

from __future__ import annotations

import datetime as dt
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from app.core.bson_utils import MongoBaseModel, PyObjectId
from app.core.utils import utcnow
from app.models._shared import Timestamped


class UserIntegration(MongoBaseModel, Timestamped):
    """Connexion OAuth d'un utilisateur à un service externe.

    Attributes:
        service (str): 'strava'.
        access_token (str): Jeton d'accès.
        refresh_token (str | None): Jeton de rafraîchissement.
        expires_at (int | None): Expiration (secondes epoch, format Strava).
        athlete_id (int | None): Identifiant athlète (clé des webhooks).
        revoked (bool): Révoquée par l'utilisateur.
        needs_reconnect (bool): Rafraîchissement en échec, reconnexion requise.
    """

    user_id: PyObjectId
    service: Literal["strava"] = "strava"
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    athlete_id: Optional[int] = None
    revoked: bool = False
    needs_reconnect: bool = False


class MetricMapping(BaseModel):
    """Conversion de la métrique principale d'une activité externe vers la métrique du type."""

    primary_metric: str
    conversion_factor: float = 1.0
    target_metric: str


class IntegrationMapping(MongoBaseModel, Timestamped):
    """Correspondance type externe (ex. 'Run') -> type d'activité du challenge."""

    challenge_id: PyObjectId
    service: Literal["strava"] = "strava"
    external_type: str
    activity_type_id: PyObjectId
    metric_mapping: Optional[MetricMapping] = None
    is_active: bool = True


class WebhookPayload(MongoBaseModel):
    """Livraison webhook brute, conservée pour audit et rejeu."""

    service: Literal["strava"] = "strava"
    event_type: str
    payload: dict[str, Any]
    status: Literal["received", "processed", "failed"] = "received"
    error: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=lambda: utcnow())
    processed_at: Optional[dt.datetime] = None
