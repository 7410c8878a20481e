# backend/app/api/dto/activity.py
# DTOs d'entrée/sortie du pipeline d'ingestion (log manuel, import externe, corrections admin).

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.bson_utils import PyObjectId
from app.models._shared import DateOnly
from app.models.activity import ActivitySource, TriggeredBonus


class LogActivityInput(BaseModel):
    """Soumission d'une activité.

    Attributes:
        challenge_id (PyObjectId): Challenge.
        user_id (PyObjectId | None): Participant (renseigné côté serveur pour un log manuel).
        activity_type_id (PyObjectId): Type d'activité.
        logged_date (date): Jour déclaré.
        metrics (dict): Métriques brutes.
        selected_bonuses (list[str]): Bonus optionnels choisis (`completion`).
        variable_points (float | None): Points fournis (`variable`).
        external_source (str | None): Service externe (ex. 'strava').
        external_id (str | None): Identifiant externe (clé d'idempotence).
    """

    challenge_id: PyObjectId
    user_id: Optional[PyObjectId] = None
    activity_type_id: PyObjectId
    logged_date: DateOnly
    metrics: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = Field(default=None, max_length=2000)
    image_urls: list[str] = Field(default_factory=list)
    selected_bonuses: list[str] = Field(default_factory=list)
    variable_points: Optional[float] = None
    source: ActivitySource = "manual"
    external_source: Optional[str] = None
    external_id: Optional[str] = None
    external_data: Optional[dict[str, Any]] = None


class ActivityOut(BaseModel):
    """Projection d'une activité renvoyée par l'API."""

    id: PyObjectId = Field(alias="_id")
    challenge_id: PyObjectId
    user_id: PyObjectId
    activity_type_id: PyObjectId
    logged_date: DateOnly
    metrics: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    base_points: float = 0.0
    bonus_points: float = 0.0
    points_earned: float = 0.0
    triggered_bonuses: list[TriggeredBonus] = Field(default_factory=list)
    source: ActivitySource = "manual"
    external_id: Optional[str] = None
    flagged: bool = False
    deleted_at: Optional[dt.datetime] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class IngestionResult(BaseModel):
    """Résultat d'une ingestion : activité stockée et delta appliqué à la participation."""

    activity: ActivityOut
    delta: float
    created: bool


class AdminOverrideInput(BaseModel):
    points: float
    comment: str = Field(..., min_length=1, max_length=2000)


class AdminAwardInput(BaseModel):
    """Attribution de points admin sur un type `variable` (bonus ponctuel, correction d'équipe)."""

    user_id: PyObjectId
    activity_type_id: PyObjectId
    logged_date: DateOnly
    points: float
    notes: Optional[str] = Field(default=None, max_length=2000)
    comment: str = Field(..., min_length=1, max_length=2000)


class AdminEditInput(BaseModel):
    metrics: Optional[dict[str, Any]] = None
    logged_date: Optional[DateOnly] = None
    notes: Optional[str] = None
    comment: str = Field(..., min_length=1, max_length=2000)


class FlagActivityInput(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class ResolveFlagInput(BaseModel):
    comment: Optional[str] = Field(default=None, max_length=2000)
