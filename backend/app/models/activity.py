# backend/app/models/activity.py
# Activité loggée (manuelle, Strava, bonus d'achievement, ajout admin) et ses champs de modération.

from __future__ import annotations

import datetime as dt
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from app.core.bson_utils import MongoBaseModel, PyObjectId
from app.models._shared import DateOnly, Timestamped

ActivitySource = Literal["manual", "strava", "achievement", "admin"]
ResolutionStatus = Literal["pending", "resolved"]


class TriggeredBonus(BaseModel):
    """Bonus appliqué lors du scoring (seuil atteint, photo, bonus optionnel)."""

    metric: str
    threshold: Optional[float] = None
    bonus_points: float
    description: Optional[str] = None


class Activity(MongoBaseModel, Timestamped):
    """Document Mongo d'une activité.

    Attributes:
        challenge_id (PyObjectId): Challenge.
        user_id (PyObjectId): Participant.
        activity_type_id (PyObjectId): Type d'activité.
        logged_date (date): Jour déclaré (date-only UTC).
        metrics (dict): Métriques brutes (ex. `{"miles": 5.2}`).
        selected_bonuses (list[str]): Bonus optionnels choisis, rejoués au re-scoring.
        variable_points (float | None): Points attribués par un admin (variante `variable`).
        base_points (float): Points issus de la règle de scoring.
        bonus_points (float): Somme des bonus déclenchés.
        points_earned (float): Total signé (négatif pour les pénalités).
        triggered_bonuses (list[TriggeredBonus]): Détail des bonus.
        source (str): Origine ('manual', 'strava', 'achievement', 'admin').
        external_source (str | None): Service externe (ex. 'strava').
        external_id (str | None): Identifiant externe (clé d'idempotence).
        flagged (bool): Signalée pour modération.
        deleted_at (datetime | None): Suppression logique.
    """

    challenge_id: PyObjectId
    user_id: PyObjectId
    activity_type_id: PyObjectId
    logged_date: DateOnly
    metrics: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    image_urls: list[str] = Field(default_factory=list)
    selected_bonuses: list[str] = Field(default_factory=list)
    variable_points: Optional[float] = None

    base_points: float = 0.0
    bonus_points: float = 0.0
    points_earned: float = 0.0
    triggered_bonuses: list[TriggeredBonus] = Field(default_factory=list)
    points_overridden: bool = False

    source: ActivitySource = "manual"
    external_source: Optional[str] = None
    external_id: Optional[str] = None
    external_data: Optional[dict[str, Any]] = None

    flagged: bool = False
    flagged_at: Optional[dt.datetime] = None
    flagged_reason: Optional[str] = None
    resolution_status: Optional[ResolutionStatus] = None
    admin_comment: Optional[str] = None

    deleted_at: Optional[dt.datetime] = None
    deleted_reason: Optional[str] = None
