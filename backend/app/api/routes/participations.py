# backend/app/api/routes/participations.py
# Routes participant : inscription à un challenge et état de sa participation.

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.dto.participation import JoinResult, ParticipationOut
from app.api.dto.response_format import SuccessResponse
from app.core.bson_utils import PyObjectId
from app.core.security import CurrentUserId
from app.db.mongodb import get_db
from app.services.participation_service import ParticipationService

router = APIRouter(prefix="/challenges/{challenge_id}", tags=["participations"])

Db = Annotated[AsyncIOMotorDatabase, Depends(get_db)]
ChallengeId = Annotated[PyObjectId, Path(description="Identifiant du challenge.")]


@router.post(
    "/join",
    response_model=SuccessResponse[JoinResult],
    summary="Rejoindre un challenge",
    description=(
        "Crée la participation de l'utilisateur courant (idempotent : `created=false` si déjà inscrit).\n\n"
        "- 403 `PRIVATE_CHALLENGE` : challenge privé (inscription par un admin)\n"
        "- Challenge payant : `payment_status=unpaid` jusqu'au paiement"
    ),
)
async def join_challenge(challenge_id: ChallengeId, user_id: CurrentUserId, db: Db):
    result = await ParticipationService(db).join(challenge_id, user_id)
    return SuccessResponse(data=result, message="Joined" if result.created else "Already joined")


@router.get(
    "/participation/me",
    response_model=SuccessResponse[ParticipationOut],
    summary="Ma participation",
)
async def my_participation(challenge_id: ChallengeId, user_id: CurrentUserId, db: Db):
    doc = await ParticipationService(db).get(challenge_id, user_id)
    return SuccessResponse(data=ParticipationOut.model_validate(doc))
