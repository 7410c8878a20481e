# backend/app/services/ingestion/activity_validator.py
# Validation d'une soumission d'activité avant toute persistance (contexte, fenêtre, semaines, plafond).

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, ConfigDict

from app.core.errors import (
    ActivityTypeNotLoggableThisWeek,
    ChallengeOrTypeNotFound,
    NotParticipating,
    OutOfChallengeWindow,
    PaymentRequired,
)
from app.models.activity_type import ActivityType, UnitBasedConfig
from app.models.challenge import Challenge
from app.services.scoring.metric_resolver import resolve_metric_value
from app.services.scoring.score_evaluator import load_activity_type
from app.services.streaks.week_calculator import (
    is_in_challenge_window,
    is_type_loggable,
    week_number,
)


class IngestionContext(BaseModel):
    """Contexte chargé pour une ingestion (challenge, type, participation)."""

    challenge: Challenge
    activity_type: ActivityType
    participation: dict[str, Any]

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ActivityValidator:
    """Contrôles d'ingestion.

    Description:
        Toute erreur est levée avant écriture : aucune activité partielle n'est stockée.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def load_challenge(self, challenge_id: ObjectId) -> Challenge:
        doc = await self.db.challenges.find_one({"_id": challenge_id})
        if doc is None:
            raise ChallengeOrTypeNotFound("Challenge not found", details={"challenge_id": str(challenge_id)})
        return Challenge.model_validate(doc)

    async def load_activity_type(self, challenge_id: ObjectId, activity_type_id: ObjectId) -> ActivityType:
        doc = await self.db.activity_types.find_one({"_id": activity_type_id})
        if doc is None or doc.get("challenge_id") != challenge_id or doc.get("is_system"):
            raise ChallengeOrTypeNotFound(
                "Activity type not found or does not belong to this challenge",
                details={"activity_type_id": str(activity_type_id)},
            )
        return load_activity_type(doc)

    async def load_context(
        self, challenge_id: ObjectId, user_id: ObjectId, activity_type_id: ObjectId
    ) -> IngestionContext:
        """Charger et vérifier participation, paiement, challenge et type.

        Raises:
            NotParticipating: L'utilisateur n'a pas rejoint le challenge.
            PaymentRequired: Challenge payant non réglé.
            ChallengeOrTypeNotFound: Challenge ou type introuvable / type d'un autre challenge.
            UnknownScoringConfigType: Configuration de scoring inconnue.
        """
        challenge = await self.load_challenge(challenge_id)
        participation = await self.db.participations.find_one({"challenge_id": challenge_id, "user_id": user_id})
        if participation is None:
            raise NotParticipating("You are not part of this challenge")
        if challenge.payment_required and participation.get("payment_status") != "paid":
            raise PaymentRequired("Payment required to log activities")

        activity_type = await self.load_activity_type(challenge_id, activity_type_id)
        return IngestionContext(challenge=challenge, activity_type=activity_type, participation=participation)

    def check_date(self, challenge: Challenge, activity_type: ActivityType, logged_date: dt.date) -> None:
        """Fenêtre du challenge puis semaines valides (ou exception « final days »)."""
        if not is_in_challenge_window(challenge, logged_date):
            raise OutOfChallengeWindow(
                f"Logged date {logged_date.isoformat()} is outside the challenge window "
                f"({challenge.start_date.isoformat()} to {challenge.end_date.isoformat()})",
                details={"logged_date": logged_date.isoformat()},
            )
        if not is_type_loggable(activity_type, challenge, logged_date):
            week = week_number(challenge.start_date, logged_date)
            weeks = ", ".join(str(w) for w in activity_type.valid_weeks or [])
            raise ActivityTypeNotLoggableThisWeek(
                f"This activity type is only available during week(s) {weeks}. Current week: {week}",
                details={"week": week, "valid_weeks": activity_type.valid_weeks},
            )

    async def prior_award_count(
        self,
        challenge_id: ObjectId,
        user_id: ObjectId,
        activity_type_id: ObjectId,
        exclude_id: Optional[ObjectId] = None,
    ) -> int:
        """Activités non supprimées déjà attribuées pour (utilisateur, challenge, type)."""
        query: dict[str, Any] = {
            "challenge_id": challenge_id,
            "user_id": user_id,
            "activity_type_id": activity_type_id,
            "deleted_at": None,
        }
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        return await self.db.activities.count_documents(query)

    async def same_day_units(
        self,
        activity_type: ActivityType,
        user_id: ObjectId,
        logged_date: dt.date,
        exclude_id: Optional[ObjectId] = None,
    ) -> float:
        """Unités déjà loggées le même jour pour ce type (franchise journalière)."""
        config = activity_type.scoring_config
        if not isinstance(config, UnitBasedConfig) or config.daily_free_units is None:
            return 0.0
        query: dict[str, Any] = {
            "challenge_id": activity_type.challenge_id,
            "user_id": user_id,
            "activity_type_id": activity_type.id,
            "logged_date": logged_date.isoformat(),
            "deleted_at": None,
        }
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        total = 0.0
        async for doc in self.db.activities.find(query, {"metrics": 1}):
            total += resolve_metric_value(doc.get("metrics") or {}, config.metric) or 0.0
        return total
