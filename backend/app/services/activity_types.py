# backend/app/services/activity_types.py
# Catalogue des types d'activité d'un challenge, filtré selon la visibilité à une date donnée.

from __future__ import annotations

import datetime as dt
from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.errors import ChallengeOrTypeNotFound
from app.core.utils import today_utc
from app.models.activity_type import ActivityType
from app.models.challenge import Challenge
from app.services.scoring.score_evaluator import load_activity_type
from app.services.streaks.week_calculator import is_type_loggable


async def list_loggable_types(
    db: AsyncIOMotorDatabase, challenge_id: ObjectId, on: Optional[dt.date] = None
) -> list[ActivityType]:
    """Types loggables à la date `on` (aujourd'hui UTC par défaut).

    Description:
        Exclut les types système (bonus d'achievement) et ceux hors de leurs semaines de
        validité, hors « final days ». Tri par `display_order` puis nom.

    Raises:
        ChallengeOrTypeNotFound: Challenge inexistant.
    """
    doc = await db.challenges.find_one({"_id": challenge_id})
    if doc is None:
        raise ChallengeOrTypeNotFound("Challenge not found", details={"challenge_id": str(challenge_id)})
    challenge = Challenge.model_validate(doc)
    on = on or today_utc()

    types = []
    async for raw in db.activity_types.find({"challenge_id": challenge_id, "deleted_at": None}):
        if raw.get("is_system"):
            continue
        activity_type = load_activity_type(raw)
        if is_type_loggable(activity_type, challenge, on):
            types.append(activity_type)
    types.sort(key=lambda t: (t.display_order or 0, t.name.lower()))
    return types
