# backend/app/models/achievement.py
# Achievements : critères (union discriminée), fréquence d'attribution et attribution utilisateur.

from __future__ import annotations

import datetime as dt
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from app.core.bson_utils import MongoBaseModel, PyObjectId
from app.core.utils import utcnow
from app.models._shared import Timestamped

Frequency = Literal["once_per_challenge", "once_per_week", "unlimited"]


class CountThresholdCriteria(BaseModel):
    """N activités (parmi des types autorisés) atteignant un seuil sur une métrique."""

    type: Literal["count_threshold"] = "count_threshold"
    activity_type_ids: list[PyObjectId]
    metric: str
    threshold: float
    required_count: int = Field(..., ge=1)


class TypeRequirement(BaseModel):
    activity_type_id: PyObjectId
    metric: str
    threshold: float


class AllActivityTypeThresholdsCriteria(BaseModel):
    """Chaque exigence {type, métrique, seuil} doit être satisfaite par au moins une activité."""

    type: Literal["all_activity_type_thresholds"] = "all_activity_type_thresholds"
    requirements: list[TypeRequirement] = Field(..., min_length=1)


AchievementCriteria = Annotated[
    Union[CountThresholdCriteria, AllActivityTypeThresholdsCriteria],
    Field(discriminator="type"),
]


class Achievement(MongoBaseModel, Timestamped):
    """Document Mongo d'un achievement.

    Attributes:
        challenge_id (PyObjectId): Challenge.
        name (str): Nom.
        bonus_points (float): Points attribués au déblocage.
        criteria (AchievementCriteria): Critères de déblocage.
        frequency (str): 'once_per_challenge' | 'once_per_week' | 'unlimited'.
    """

    challenge_id: PyObjectId
    name: str
    description: Optional[str] = None
    bonus_points: float
    criteria: AchievementCriteria
    frequency: Frequency = "once_per_challenge"

    @model_validator(mode="before")
    @classmethod
    def _default_criteria_tag(cls, data):
        # Forme historique sans tag : count_threshold
        if isinstance(data, dict):
            criteria = data.get("criteria")
            if isinstance(criteria, dict) and "type" not in criteria:
                data = {**data, "criteria": {**criteria, "type": "count_threshold"}}
        return data


class UserAchievement(MongoBaseModel):
    """Attribution d'un achievement à un utilisateur.

    Attributes:
        grant_key (str): Clé unique d'attribution (achievement, utilisateur, portée) anti double-attribution.
        week_number (int | None): Semaine du challenge (fréquence 'once_per_week').
        qualifying_activity_ids (list[PyObjectId]): Activités ayant satisfait les critères.
        bonus_activity_id (PyObjectId | None): Activité bonus portant les points.
    """

    challenge_id: PyObjectId
    user_id: PyObjectId
    achievement_id: PyObjectId
    grant_key: str
    week_number: Optional[int] = None
    qualifying_activity_ids: list[PyObjectId] = Field(default_factory=list)
    bonus_activity_id: Optional[PyObjectId] = None
    earned_at: dt.datetime = Field(default_factory=lambda: utcnow())
