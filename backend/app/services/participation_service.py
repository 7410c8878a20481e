# backend/app/services/participation_service.py
# Inscription d'un utilisateur à un challenge (création idempotente de la participation).

from __future__ import annotations

import logging
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.api.dto.participation import JoinResult, ParticipationOut
from app.core.bson_utils import dump_mongo
from app.core.errors import ChallengeOrTypeNotFound, NotParticipating, PrivateChallenge
from app.core.logging_config import extract_user_data, get_loggers
from app.models.challenge import Challenge
from app.models.participation import Participation

logger = logging.getLogger(__name__)


class ParticipationService:
    """Gestion des participations.

    Description:
        Une participation par (utilisateur, challenge), garantie par l'index unique
        `uniq_participation`. `joined_at` sert au départage des classements et
        `payment_status` conditionne le log d'activités des challenges payants.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def join(
        self, challenge_id: ObjectId, user_id: ObjectId, invited_by: Optional[ObjectId] = None
    ) -> JoinResult:
        """Inscrire un utilisateur (idempotent).

        Description:
            Upsert atomique sur (challenge, utilisateur) : une seconde inscription renvoie la
            participation existante sans toucher à `joined_at` ni aux agrégats. Un challenge
            payant démarre en `unpaid`, les autres en `not_required`. Un challenge privé
            n'accepte que les inscriptions faites par un admin (`invited_by`).

        Args:
            challenge_id (ObjectId): Challenge.
            user_id (ObjectId): Utilisateur.
            invited_by (ObjectId | None): Admin à l'origine de l'inscription.

        Returns:
            JoinResult: Participation et indicateur de création.

        Raises:
            ChallengeOrTypeNotFound: Challenge inexistant.
            PrivateChallenge: Auto-inscription à un challenge privé.
        """
        doc = await self.db.challenges.find_one({"_id": challenge_id})
        if doc is None:
            raise ChallengeOrTypeNotFound("Challenge not found", details={"challenge_id": str(challenge_id)})
        challenge = Challenge.model_validate(doc)
        if challenge.visibility == "private" and invited_by is None:
            raise PrivateChallenge("This challenge is private; an admin must add you")

        participation = Participation(
            challenge_id=challenge_id,
            user_id=user_id,
            payment_status="unpaid" if challenge.payment_required else "not_required",
            invited_by=invited_by,
        )
        on_insert = dump_mongo(participation)
        for key in ("challenge_id", "user_id"):
            on_insert.pop(key)

        key = {"challenge_id": challenge_id, "user_id": user_id}
        try:
            previous = await self.db.participations.find_one_and_update(
                key, {"$setOnInsert": on_insert}, upsert=True, return_document=ReturnDocument.BEFORE
            )
        except DuplicateKeyError:
            # Inscription concurrente : l'autre requête a créé la participation
            previous = await self.db.participations.find_one(key)

        stored = await self.db.participations.find_one(key)
        created = previous is None
        if created:
            generic_logger, _, data_logger = get_loggers()
            generic_logger.info(f"User {user_id} joined challenge {challenge_id}")
            data_logger.log_data(
                "join_challenge",
                {"challenge_id": challenge_id, "payment_status": stored.get("payment_status")},
                extract_user_data(user_id),
            )
        return JoinResult(participation=ParticipationOut.model_validate(stored), created=created)

    async def get(self, challenge_id: ObjectId, user_id: ObjectId) -> dict[str, Any]:
        """Participation de l'utilisateur, `NotParticipating` s'il n'est pas inscrit."""
        doc = await self.db.participations.find_one({"challenge_id": challenge_id, "user_id": user_id})
        if doc is None:
            raise NotParticipating("You are not part of this challenge")
        return doc
