# backend/app/api/routes/leaderboards.py
# Routes de classement : cumulé (paginé par curseur), hebdomadaire, par catégorie.

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.dto.leaderboard import CumulativeCategoryBoard, LeaderboardPage, WeeklyCategoryBoard
from app.api.dto.response_format import SuccessResponse
from app.core.bson_utils import PyObjectId
from app.core.security import get_current_user
from app.db.mongodb import get_db
from app.services.leaderboards.leaderboard_service import LeaderboardService

router = APIRouter(
    prefix="/challenges/{challenge_id}/leaderboard",
    tags=["leaderboards"],
    dependencies=[Depends(get_current_user)],
)

Db = Annotated[AsyncIOMotorDatabase, Depends(get_db)]
ChallengeId = Annotated[PyObjectId, Path(description="Identifiant du challenge.")]


@router.get(
    "",
    response_model=SuccessResponse[LeaderboardPage],
    summary="Classement cumulé",
    description=(
        "Participants triés par total décroissant, puis date d'inscription, puis identifiant.\n\n"
        "- Pagination par `cursor` (valeur `next_cursor` de la page précédente)\n"
        "- `is_done` indique la dernière page"
    ),
)
async def cumulative(
    challenge_id: ChallengeId,
    db: Db,
    limit: int = Query(25, ge=1, le=100, description="Taille de page (1–100)."),
    cursor: Optional[str] = Query(default=None, description="Curseur opaque."),
):
    page = await LeaderboardService(db).cumulative(challenge_id, limit=limit, cursor=cursor)
    return SuccessResponse(data=page)


@router.get(
    "/weekly",
    response_model=SuccessResponse[LeaderboardPage],
    summary="Classement d'une semaine",
    description="Somme des points des activités de la semaine (semaine ramenée dans les bornes du challenge).",
)
async def weekly(
    challenge_id: ChallengeId,
    db: Db,
    week: int = Query(1, description="Numéro de semaine (base 1)."),
    limit: int = Query(25, ge=1, le=100),
    cursor: Optional[str] = Query(default=None),
):
    page = await LeaderboardService(db).weekly(challenge_id, week, limit=limit, cursor=cursor)
    return SuccessResponse(data=page)


@router.get(
    "/categories/weekly",
    response_model=SuccessResponse[WeeklyCategoryBoard],
    summary="Top 10 hebdomadaire par catégorie",
)
async def weekly_by_category(
    challenge_id: ChallengeId,
    db: Db,
    week: int = Query(1, description="Numéro de semaine (base 1)."),
):
    board = await LeaderboardService(db).weekly_by_category(challenge_id, week)
    return SuccessResponse(data=board)


@router.get(
    "/categories",
    response_model=SuccessResponse[CumulativeCategoryBoard],
    summary="Top 5 cumulé par catégorie et par genre",
)
async def cumulative_by_category(challenge_id: ChallengeId, db: Db):
    board = await LeaderboardService(db).cumulative_by_category(challenge_id)
    return SuccessResponse(data=board)
