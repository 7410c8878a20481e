# backend/app/services/ingestion/activity_ingestion_service.py
# Pipeline d'ingestion : validé -> scoré -> persisté -> agrégé -> achievements -> notifié.

from __future__ import annotations

import logging
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.api.dto.activity import ActivityOut, IngestionResult, LogActivityInput
from app.core.errors import ActivityNotFound, DuplicateExternalActivity, ScoringError, VariablePointsNotAllowed
from app.core.logging_config import get_loggers
from app.core.utils import utcnow
from app.models.challenge import Challenge
from app.services.achievements.achievement_service import AchievementService
from app.services.scoring.score_evaluator import ScoreResult, compute_score

from .activity_validator import ActivityValidator, IngestionContext
from .participation_ledger import ParticipationLedger

logger = logging.getLogger(__name__)


class ActivityIngestionService:
    """Service d'ingestion des activités (manuel, import externe, suppression).

    Description:
        Unique chemin d'écriture des activités scorées. Les validations se font avant toute
        écriture ; l'agrégation passe par `ParticipationLedger` (ledger + `$inc` + streak).
        Les imports externes sont idempotents : clé (challenge, utilisateur, source, id externe).
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.validator = ActivityValidator(db)
        self.ledger = ParticipationLedger(db)
        self.achievements = AchievementService(db, self.ledger)

    # ------------------------------------------------------------------ helpers

    async def _score(
        self, ctx: IngestionContext, data: LogActivityInput, user_id: ObjectId, exclude_id: Optional[ObjectId] = None
    ) -> ScoreResult:
        self.validator.check_date(ctx.challenge, ctx.activity_type, data.logged_date)
        prior = await self.validator.prior_award_count(
            data.challenge_id, user_id, data.activity_type_id, exclude_id=exclude_id
        )
        same_day = await self.validator.same_day_units(
            ctx.activity_type, user_id, data.logged_date, exclude_id=exclude_id
        )
        return compute_score(
            ctx.activity_type,
            data.metrics,
            prior_award_count=prior,
            same_day_prior_units=same_day,
            selected_bonuses=data.selected_bonuses,
            variable_points=data.variable_points,
            has_media=bool(data.image_urls),
        )

    def _scored_fields(self, data: LogActivityInput, score: ScoreResult) -> dict[str, Any]:
        return {
            "activity_type_id": data.activity_type_id,
            "logged_date": data.logged_date.isoformat(),
            "metrics": data.metrics,
            "notes": data.notes,
            "image_urls": data.image_urls,
            "selected_bonuses": data.selected_bonuses,
            "variable_points": data.variable_points,
            "base_points": score.base_points,
            "bonus_points": score.bonus_points,
            "points_earned": score.points_earned,
            "triggered_bonuses": [b.model_dump() for b in score.triggered_bonuses],
            "points_overridden": False,
        }

    async def aggregate(
        self,
        challenge: Challenge,
        user_id: ObjectId,
        delta: float,
        reason: str,
        activity: dict[str, Any],
        check_achievements: bool = True,
    ) -> None:
        """Étape « agrégé » : delta au ledger, streak recalculée, puis achievements."""
        await self.ledger.apply_delta(challenge.id, user_id, delta, reason, activity.get("_id"))
        await self.ledger.recompute_streak(challenge.id, user_id, challenge.streak_min_points)
        if check_achievements and activity.get("deleted_at") is None:
            await self.achievements.check_and_award(challenge, user_id, activity)

    def _notify(self, event: str, activity: dict[str, Any], delta: float) -> None:
        generic_logger, _, _ = get_loggers()
        generic_logger.info(
            f"{event}: activity={activity.get('_id')} user={activity.get('user_id')} "
            f"challenge={activity.get('challenge_id')} points={activity.get('points_earned')} delta={delta}"
        )

    # ------------------------------------------------------------------ operations

    async def log_activity(
        self, data: LogActivityInput, user_id: Optional[ObjectId] = None, admin_awarded: bool = False
    ) -> IngestionResult:
        """Logger une activité manuelle.

        Description:
            Les points `variable` fournis par l'appelant ne sont acceptés que pour une
            attribution admin (`admin_awarded=True`) et sont refusés sinon ; sans eux, la
            variante vaut `default_points`.

        Args:
            data (LogActivityInput): Soumission.
            user_id (ObjectId | None): Utilisateur authentifié (prioritaire sur `data.user_id`).
            admin_awarded (bool): Attribution par un admin (autorise `variable_points`).

        Returns:
            IngestionResult: Activité créée et delta appliqué.

        Raises:
            VariablePointsNotAllowed: Points `variable` fournis hors attribution admin.
            ScoringError: Toute erreur de validation, avant écriture.
        """
        user_id = user_id or data.user_id
        if data.variable_points is not None and not admin_awarded:
            raise VariablePointsNotAllowed("Only an admin can award variable points")
        if data.external_id:
            return await self.upsert_external_activity(data, user_id)

        ctx = await self.validator.load_context(data.challenge_id, user_id, data.activity_type_id)
        try:
            score = await self._score(ctx, data, user_id)
        except ScoringError as e:
            logger.info(f"Activity rejected for user {user_id}: {e}")
            raise

        now = utcnow()
        doc = {
            "challenge_id": data.challenge_id,
            "user_id": user_id,
            **self._scored_fields(data, score),
            "source": data.source,
            "external_source": None,
            "external_id": None,
            "flagged": False,
            "deleted_at": None,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.db.activities.insert_one(doc)
        doc["_id"] = result.inserted_id

        await self.aggregate(ctx.challenge, user_id, score.points_earned, "activity_logged", doc)
        self._notify("activity_logged", doc, score.points_earned)
        return IngestionResult(activity=ActivityOut.model_validate(doc), delta=score.points_earned, created=True)

    async def upsert_external_activity(
        self, data: LogActivityInput, user_id: Optional[ObjectId] = None
    ) -> IngestionResult:
        """Créer ou mettre à jour une activité importée (idempotent par identifiant externe).

        Description:
            Un seul `find_one_and_update(upsert=True)` atomique sur la clé d'idempotence renvoie
            le document précédent : le delta appliqué vaut `nouveau - précédent` (0 pour un
            rejeu identique). Une activité supprimée logiquement est restaurée (delta = nouveau).
            Deux créations concurrentes sur la même clé : la perdante reçoit `DuplicateKeyError`
            et rejoue en mise à jour.

        Returns:
            IngestionResult: Activité stockée, delta et indicateur de création.
        """
        user_id = user_id or data.user_id
        if data.variable_points is not None:
            raise VariablePointsNotAllowed("Imported activities cannot carry variable points")
        source = data.external_source or data.source
        key = {
            "challenge_id": data.challenge_id,
            "user_id": user_id,
            "external_source": source,
            "external_id": data.external_id,
        }

        ctx = await self.validator.load_context(data.challenge_id, user_id, data.activity_type_id)
        existing = await self.db.activities.find_one(key, {"_id": 1})
        score = await self._score(ctx, data, user_id, exclude_id=existing["_id"] if existing else None)

        now = utcnow()
        update = {
            "$set": {
                **self._scored_fields(data, score),
                "external_data": data.external_data,
                "deleted_at": None,
                "deleted_reason": None,
                "updated_at": now,
            },
            "$setOnInsert": {"source": data.source, "flagged": False, "created_at": now},
        }

        previous = None
        for attempt in range(2):
            try:
                previous = await self.db.activities.find_one_and_update(
                    key, update, upsert=True, return_document=ReturnDocument.BEFORE
                )
                break
            except DuplicateKeyError as e:
                if attempt == 1:
                    raise DuplicateExternalActivity(
                        "Concurrent import of the same external activity",
                        details={k: str(v) for k, v in key.items()},
                    ) from e
                logger.info(f"Duplicate external activity {data.external_id}, retrying as update")

        stored = await self.db.activities.find_one(key)
        created = previous is None
        if created:
            delta, reason = score.points_earned, "activity_logged"
        elif previous.get("deleted_at") is not None:
            delta, reason = score.points_earned, "activity_restored"
        else:
            delta, reason = score.points_earned - float(previous.get("points_earned") or 0.0), "activity_updated"

        await self.aggregate(ctx.challenge, user_id, delta, reason, stored)
        self._notify("external_activity_created" if created else "external_activity_updated", stored, delta)
        return IngestionResult(activity=ActivityOut.model_validate(stored), delta=delta, created=created)

    async def delete_activity(
        self, activity_id: ObjectId, reason: str = "user_delete", user_id: Optional[ObjectId] = None
    ) -> Optional[dict[str, Any]]:
        """Supprimer (logiquement) une activité et inverser sa contribution.

        Args:
            activity_id (ObjectId): Activité.
            reason (str): Motif de suppression.
            user_id (ObjectId | None): Si fourni, l'activité doit appartenir à cet utilisateur.

        Returns:
            dict | None: Document avant suppression, None si déjà supprimée (no-op).

        Raises:
            ActivityNotFound: Activité inexistante (ou d'un autre utilisateur).
        """
        query: dict[str, Any] = {"_id": activity_id}
        if user_id is not None:
            query["user_id"] = user_id
        current = await self.db.activities.find_one(query)
        if current is None:
            raise ActivityNotFound("Activity not found", details={"activity_id": str(activity_id)})

        previous = await self.db.activities.find_one_and_update(
            {**query, "deleted_at": None},
            {"$set": {"deleted_at": utcnow(), "deleted_reason": reason, "updated_at": utcnow()}},
            return_document=ReturnDocument.BEFORE,
        )
        if previous is None:
            return None

        challenge = await self.validator.load_challenge(previous["challenge_id"])
        delta = -float(previous.get("points_earned") or 0.0)
        await self.aggregate(
            challenge, previous["user_id"], delta, "activity_deleted", {**previous, "deleted_at": utcnow()},
            check_achievements=False,
        )
        await self.achievements.revoke_for_activity(previous)
        self._notify("activity_deleted", previous, delta)
        return previous

    async def delete_external_activity(self, external_source: str, external_id: str, reason: str) -> int:
        """Supprimer une activité externe dans tous les challenges où elle a été importée."""
        cursor = self.db.activities.find(
            {"external_source": external_source, "external_id": external_id, "deleted_at": None}, {"_id": 1}
        )
        deleted = 0
        for doc in [d async for d in cursor]:
            if await self.delete_activity(doc["_id"], reason=reason) is not None:
                deleted += 1
        return deleted
