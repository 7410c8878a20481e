# backend/app/api/routes/admin.py
# Routes admin : forçage et attribution de points, édition, modération, inscriptions, historique d'audit.

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Path
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.dto.activity import (
    ActivityOut,
    AdminAwardInput,
    AdminEditInput,
    AdminOverrideInput,
    IngestionResult,
    ResolveFlagInput,
)
from app.api.dto.participation import JoinResult
from app.api.dto.response_format import SuccessResponse
from app.core.bson_utils import PyObjectId
from app.core.security import AdminUser, require_admin
from app.db.mongodb import get_db
from app.models.audit import AdminAuditEntry
from app.services.admin.moderation_service import AdminActivityService
from app.services.participation_service import ParticipationService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

Db = Annotated[AsyncIOMotorDatabase, Depends(get_db)]
ActivityId = Annotated[PyObjectId, Path(description="Identifiant de l'activité.")]


@router.post(
    "/activities/{activity_id}/override",
    response_model=SuccessResponse[ActivityOut],
    summary="Forcer les points d'une activité",
    description=(
        "Remplace `points_earned` sans passer par le barème. Commentaire d'audit obligatoire.\n\n"
        "Le total et la streak de la participation sont mis à jour."
    ),
)
async def override_points(activity_id: ActivityId, payload: AdminOverrideInput, admin: AdminUser, db: Db):
    activity = await AdminActivityService(db).admin_override(activity_id, payload.points, payload.comment, admin.id)
    return SuccessResponse(data=ActivityOut.model_validate(activity), message="Points overridden")


@router.patch(
    "/activities/{activity_id}",
    response_model=SuccessResponse[ActivityOut],
    summary="Éditer une activité (re-scorée)",
)
async def edit_activity(activity_id: ActivityId, payload: AdminEditInput, admin: AdminUser, db: Db):
    activity = await AdminActivityService(db).edit_activity(activity_id, payload, admin.id)
    return SuccessResponse(data=ActivityOut.model_validate(activity), message="Activity updated")


@router.post(
    "/activities/{activity_id}/resolve",
    response_model=SuccessResponse[ActivityOut],
    summary="Résoudre un signalement",
)
async def resolve_flag(
    activity_id: ActivityId,
    admin: AdminUser,
    db: Db,
    payload: ResolveFlagInput = Body(default_factory=ResolveFlagInput),
):
    activity = await AdminActivityService(db).resolve_flag(activity_id, admin.id, payload.comment)
    return SuccessResponse(data=ActivityOut.model_validate(activity))


@router.delete(
    "/activities/{activity_id}",
    response_model=SuccessResponse[ActivityOut],
    summary="Supprimer une activité (admin)",
)
async def delete_activity(
    activity_id: ActivityId,
    admin: AdminUser,
    db: Db,
    comment: str = Body(..., embed=True, min_length=1),
):
    previous = await AdminActivityService(db).delete_activity(activity_id, comment, admin.id)
    if previous is None:
        return SuccessResponse(data=None, message="Activity already deleted")
    return SuccessResponse(data=ActivityOut.model_validate(previous), message="Activity deleted")


@router.get(
    "/activities/{activity_id}/audit",
    response_model=SuccessResponse[list[AdminAuditEntry]],
    summary="Historique d'audit d'une activité",
)
async def audit_trail(activity_id: ActivityId, db: Db) -> Any:
    entries = await AdminActivityService(db).audit_trail(activity_id)
    return SuccessResponse(data=[AdminAuditEntry.model_validate(e) for e in entries])


@router.post(
    "/challenges/{challenge_id}/awards",
    status_code=201,
    response_model=SuccessResponse[IngestionResult],
    summary="Attribuer des points (type `variable`)",
    description=(
        "Crée une activité `admin` sur un type à barème `variable` avec les points fournis.\n\n"
        "Seul chemin acceptant des points fixés par l'appelant. Commentaire d'audit obligatoire."
    ),
)
async def award_points(
    payload: AdminAwardInput,
    admin: AdminUser,
    db: Db,
    challenge_id: PyObjectId = Path(..., description="Identifiant du challenge."),
):
    result = await AdminActivityService(db).award_variable_points(challenge_id, payload, admin.id)
    return SuccessResponse(data=result, message="Points awarded")


@router.post(
    "/challenges/{challenge_id}/participants",
    response_model=SuccessResponse[JoinResult],
    summary="Inscrire un utilisateur à un challenge",
    description="Inscription par un admin, y compris pour un challenge privé. Idempotent.",
)
async def add_participant(
    admin: AdminUser,
    db: Db,
    challenge_id: PyObjectId = Path(..., description="Identifiant du challenge."),
    user_id: PyObjectId = Body(..., embed=True),
):
    result = await ParticipationService(db).join(challenge_id, user_id, invited_by=admin.id)
    return SuccessResponse(data=result)
