# backend/app/api/dto/participation.py
# DTOs de sortie d'une participation (inscription, état courant).

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.bson_utils import PyObjectId
from app.models._shared import DateOnly
from app.models.participation import PaymentStatus


class ParticipationOut(BaseModel):
    id: PyObjectId = Field(alias="_id")
    challenge_id: PyObjectId
    user_id: PyObjectId
    joined_at: dt.datetime
    total_points: float = 0.0
    current_streak: int = 0
    last_streak_day: Optional[DateOnly] = None
    modifier_factor: float = 1.0
    payment_status: PaymentStatus = "not_required"

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JoinResult(BaseModel):
    """Inscription : participation stockée et indicateur de création (False si déjà inscrit)."""

    participation: ParticipationOut
    created: bool
