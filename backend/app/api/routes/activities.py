# backend/app/api/routes/activities.py
# Routes participant : log d'une activité, suppression, signalement, types d'activité loggables.

from __future__ import annotations

import datetime as dt
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.dto.activity import ActivityOut, FlagActivityInput, IngestionResult, LogActivityInput
from app.api.dto.response_format import SuccessResponse
from app.core.bson_utils import PyObjectId
from app.core.errors import ActivityNotFound
from app.core.security import CurrentUserId, get_current_user
from app.db.mongodb import get_db
from app.models.activity_type import ActivityType
from app.services.activity_types import list_loggable_types
from app.services.admin.moderation_service import AdminActivityService
from app.services.ingestion.activity_ingestion_service import ActivityIngestionService

router = APIRouter(tags=["activities"], dependencies=[Depends(get_current_user)])

Db = Annotated[AsyncIOMotorDatabase, Depends(get_db)]


@router.post(
    "/activities",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[IngestionResult],
    summary="Logger une activité",
    description=(
        "Valide, score et enregistre une activité manuelle de l'utilisateur courant, puis met à jour "
        "sa participation (total, streak) et ses achievements.\n\n"
        "- 400 hors fenêtre du challenge ou type non loggable cette semaine\n"
        "- 402 paiement requis, 403 non participant, 409 plafond atteint"
    ),
)
async def log_activity(payload: LogActivityInput, user_id: CurrentUserId, db: Db):
    """Logger une activité manuelle.

    Description:
        L'utilisateur est toujours celui du jeton ; les champs d'import externe et les points
        `variable` (réservés aux attributions admin) sont ignorés.

    Returns:
        SuccessResponse[IngestionResult]: Activité créée et delta appliqué.
    """
    data = payload.model_copy(
        update={
            "user_id": user_id,
            "source": "manual",
            "external_source": None,
            "external_id": None,
            "variable_points": None,
        }
    )
    result = await ActivityIngestionService(db).log_activity(data, user_id)
    return SuccessResponse(data=result, message="Activity logged")


@router.delete(
    "/activities/{activity_id}",
    response_model=SuccessResponse[ActivityOut],
    summary="Supprimer une de mes activités",
)
async def delete_activity(
    user_id: CurrentUserId,
    db: Db,
    activity_id: PyObjectId = Path(..., description="Identifiant de l'activité."),
):
    """Suppression logique ; la contribution de l'activité est retirée de la participation."""
    service = ActivityIngestionService(db)
    previous = await service.delete_activity(activity_id, reason="user_delete", user_id=user_id)
    if previous is None:
        return SuccessResponse(data=None, message="Activity already deleted")
    return SuccessResponse(data=ActivityOut.model_validate(previous), message="Activity deleted")


@router.post(
    "/activities/{activity_id}/flag",
    response_model=SuccessResponse[ActivityOut],
    summary="Signaler une activité",
    description="Marque l'activité pour revue par un admin. Aucun effet sur les points.",
)
async def flag_activity(
    payload: FlagActivityInput,
    user_id: CurrentUserId,
    db: Db,
    activity_id: PyObjectId = Path(..., description="Identifiant de l'activité."),
):
    activity = await db.activities.find_one({"_id": activity_id})
    if activity is None or await db.participations.find_one(
        {"challenge_id": activity["challenge_id"], "user_id": user_id}
    ) is None:
        raise ActivityNotFound("Activity not found", details={"activity_id": str(activity_id)})
    flagged = await AdminActivityService(db).flag_activity(activity_id, payload.reason, reporter_id=user_id)
    return SuccessResponse(data=ActivityOut.model_validate(flagged))


@router.get(
    "/challenges/{challenge_id}/activity-types",
    response_model=SuccessResponse[list[ActivityType]],
    summary="Types d'activité loggables",
    description="Types visibles à la date donnée (aujourd'hui UTC par défaut), triés par `display_order`.",
)
async def loggable_activity_types(
    db: Db,
    challenge_id: PyObjectId = Path(..., description="Identifiant du challenge."),
    on: Optional[dt.date] = Query(default=None, description="Date de référence (YYYY-MM-DD)."),
):
    types = await list_loggable_types(db, challenge_id, on)
    return SuccessResponse(data=types)
