# backend/app/api/routes/achievements.py
# Progression de l'utilisateur courant sur les achievements d'un challenge.

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.dto.response_format import SuccessResponse
from app.core.bson_utils import PyObjectId
from app.core.security import CurrentUserId
from app.db.mongodb import get_db
from app.services.achievements.achievement_service import AchievementProgress, AchievementService

router = APIRouter(tags=["achievements"])


@router.get(
    "/challenges/{challenge_id}/achievements/me",
    response_model=SuccessResponse[list[AchievementProgress]],
    summary="Ma progression sur les achievements",
)
async def my_achievements(
    user_id: CurrentUserId,
    db: Annotated[AsyncIOMotorDatabase, Depends(get_db)],
    challenge_id: PyObjectId = Path(..., description="Identifiant du challenge."),
):
    items = await AchievementService(db).progress_for_user(challenge_id, user_id)
    return SuccessResponse(data=items)
