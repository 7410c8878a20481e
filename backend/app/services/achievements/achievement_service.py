# backend/app/services/achievements/achievement_service.py
# Attribution des achievements après ingestion (fréquence, activité bonus, ledger) et suivi de progression.

from __future__ import annotations

import logging
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo import ReturnDocument

from app.core.utils import parse_date_only, utcnow
from app.models.achievement import Achievement
from app.models.challenge import Challenge
from app.services.ingestion.participation_ledger import ParticipationLedger
from app.services.streaks.week_calculator import week_date_range, week_number

from .criteria_evaluator import CriteriaProgress, criteria_activity_type_ids, evaluate

logger = logging.getLogger(__name__)

ACHIEVEMENT_BONUS_TYPE_NAME = "Achievement Bonus"


class AchievementProgress(BaseModel):
    achievement_id: str
    name: str
    description: Optional[str] = None
    bonus_points: float
    frequency: str
    current_count: int
    required_count: int
    unlocked: bool
    times_earned: int


class AchievementService:
    """Service d'achievements.

    Description:
        L'évaluateur de critères est pur ; ce service porte les effets de bord :
        - garde de fréquence (`once_per_challenge`, `once_per_week` par semaine du challenge,
          `unlimited` par ensembles d'activités disjoints)
        - création d'une activité bonus (type système « Achievement Bonus ») pour que
          `total_points` reste égal à la somme des activités
        - révocation si une activité qualifiante est supprimée
    """

    def __init__(self, db: AsyncIOMotorDatabase, ledger: Optional[ParticipationLedger] = None):
        self.db = db
        self.ledger = ledger or ParticipationLedger(db)

    async def _achievements(self, challenge_id: ObjectId) -> list[Achievement]:
        cursor = self.db.achievements.find({"challenge_id": challenge_id})
        return [Achievement.model_validate(doc) async for doc in cursor]

    async def _user_activities(
        self,
        challenge_id: ObjectId,
        user_id: ObjectId,
        type_ids: list[ObjectId],
        week_bounds: Optional[tuple[str, str]] = None,
    ) -> list[dict[str, Any]]:
        query: dict[str, Any] = {
            "challenge_id": challenge_id,
            "user_id": user_id,
            "activity_type_id": {"$in": type_ids},
            "deleted_at": None,
        }
        if week_bounds is not None:
            query["logged_date"] = {"$gte": week_bounds[0], "$lt": week_bounds[1]}
        cursor = self.db.activities.find(query, sort=[("logged_date", 1), ("created_at", 1), ("_id", 1)])
        return [doc async for doc in cursor]

    async def get_or_create_bonus_type(self, challenge_id: ObjectId) -> dict[str, Any]:
        """Type système porteur des points d'achievement (ne compte pas pour la streak)."""
        now = utcnow()
        return await self.db.activity_types.find_one_and_update(
            {"challenge_id": challenge_id, "name": ACHIEVEMENT_BONUS_TYPE_NAME, "is_system": True},
            {
                "$setOnInsert": {
                    "description": "Bonus points from earning achievements",
                    "scoring_config": {"type": "variable", "default_points": 0},
                    "contributes_to_streak": False,
                    "is_negative": False,
                    "bonus_thresholds": [],
                    "available_in_final_days": False,
                    "created_at": now,
                }
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    def _grant_scope(self, achievement: Achievement, week: int, previous_grants: int) -> str:
        if achievement.frequency == "once_per_week":
            return f"week:{week}"
        if achievement.frequency == "unlimited":
            return f"n:{previous_grants + 1}"
        return "challenge"

    async def check_and_award(
        self, challenge: Challenge, user_id: ObjectId, triggering_activity: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Évaluer les achievements du challenge après une ingestion et attribuer ceux débloqués.

        Args:
            challenge (Challenge): Challenge.
            user_id (ObjectId): Participant.
            triggering_activity (dict): Activité qui vient d'être ingérée.

        Returns:
            list[dict]: Attributions créées (documents `user_achievements`).
        """
        granted = []
        trigger_type = triggering_activity.get("activity_type_id")
        logged_day = parse_date_only(triggering_activity["logged_date"])
        week = week_number(challenge.start_date, logged_day)

        for achievement in await self._achievements(challenge.id):
            type_ids = criteria_activity_type_ids(achievement.criteria)
            if trigger_type not in type_ids:
                continue

            previous = [
                doc
                async for doc in self.db.user_achievements.find(
                    {"user_id": user_id, "achievement_id": achievement.id}
                )
            ]
            if achievement.frequency == "once_per_challenge" and previous:
                continue
            if achievement.frequency == "once_per_week" and any(p.get("week_number") == week for p in previous):
                continue

            week_bounds = None
            if achievement.frequency == "once_per_week":
                start, end = week_date_range(challenge.start_date, week)
                week_bounds = (start.isoformat(), end.isoformat())
            activities = await self._user_activities(challenge.id, user_id, type_ids, week_bounds)

            if achievement.frequency == "unlimited":
                # Chaque attribution consomme un ensemble d'activités disjoint
                used = {aid for p in previous for aid in p.get("qualifying_activity_ids", [])}
                activities = [a for a in activities if a["_id"] not in used]

            progress = evaluate(achievement.criteria, activities)
            if not progress.unlocked:
                continue

            grant = await self._award(challenge, user_id, achievement, progress, logged_day, week, len(previous))
            if grant is not None:
                granted.append(grant)
        return granted

    async def _award(
        self,
        challenge: Challenge,
        user_id: ObjectId,
        achievement: Achievement,
        progress: CriteriaProgress,
        logged_day,
        week: int,
        previous_grants: int,
    ) -> Optional[dict[str, Any]]:
        grant_key = f"{achievement.id}:{user_id}:{self._grant_scope(achievement, week, previous_grants)}"
        qualifying_ids = progress.qualifying_activity_ids[: progress.required_count]
        now = utcnow()

        # Réservation atomique de l'attribution : un second évaluateur concurrent voit le document existant
        existing = await self.db.user_achievements.find_one_and_update(
            {"grant_key": grant_key},
            {
                "$setOnInsert": {
                    "challenge_id": challenge.id,
                    "user_id": user_id,
                    "achievement_id": achievement.id,
                    "week_number": week if achievement.frequency == "once_per_week" else None,
                    "qualifying_activity_ids": qualifying_ids,
                    "earned_at": now,
                }
            },
            upsert=True,
            return_document=ReturnDocument.BEFORE,
        )
        if existing is not None:
            return None

        bonus_type = await self.get_or_create_bonus_type(challenge.id)
        bonus_activity = {
            "challenge_id": challenge.id,
            "user_id": user_id,
            "activity_type_id": bonus_type["_id"],
            "logged_date": logged_day.isoformat(),
            "metrics": {"achievement_id": str(achievement.id), "achievement_name": achievement.name},
            "notes": f"Achievement earned: {achievement.name}",
            "variable_points": achievement.bonus_points,
            "base_points": achievement.bonus_points,
            "bonus_points": 0.0,
            "points_earned": achievement.bonus_points,
            "triggered_bonuses": [],
            "source": "achievement",
            "flagged": False,
            "deleted_at": None,
            "created_at": now,
        }
        result = await self.db.activities.insert_one(bonus_activity)
        grant = await self.db.user_achievements.find_one_and_update(
            {"grant_key": grant_key},
            {"$set": {"bonus_activity_id": result.inserted_id}},
            return_document=ReturnDocument.AFTER,
        )
        await self.ledger.apply_delta(
            challenge.id, user_id, achievement.bonus_points, "achievement_bonus", result.inserted_id
        )
        logger.info(f"Achievement '{achievement.name}' granted to user {user_id} ({grant_key})")
        return grant

    async def revoke_for_activity(self, activity: dict[str, Any]) -> int:
        """Révoquer les attributions dont une activité qualifiante vient d'être supprimée.

        Returns:
            int: Nombre d'attributions révoquées.
        """
        revoked = 0
        cursor = self.db.user_achievements.find({"qualifying_activity_ids": activity["_id"]})
        for grant in [doc async for doc in cursor]:
            bonus_id = grant.get("bonus_activity_id")
            bonus = None
            if bonus_id is not None:
                bonus = await self.db.activities.find_one_and_update(
                    {"_id": bonus_id, "deleted_at": None},
                    {"$set": {"deleted_at": utcnow(), "deleted_reason": "achievement_revoked"}},
                    return_document=ReturnDocument.BEFORE,
                )
            await self.db.user_achievements.delete_one({"_id": grant["_id"]})
            if bonus is not None:
                await self.ledger.apply_delta(
                    grant["challenge_id"],
                    grant["user_id"],
                    -float(bonus.get("points_earned") or 0.0),
                    "activity_deleted",
                    bonus_id,
                )
            revoked += 1
            logger.info(f"Achievement grant {grant['grant_key']} revoked (activity {activity['_id']} deleted)")
        return revoked

    async def progress_for_user(self, challenge_id: ObjectId, user_id: ObjectId) -> list[AchievementProgress]:
        """Progression de l'utilisateur sur chaque achievement du challenge."""
        items = []
        for achievement in await self._achievements(challenge_id):
            activities = await self._user_activities(
                challenge_id, user_id, criteria_activity_type_ids(achievement.criteria)
            )
            progress = evaluate(achievement.criteria, activities)
            times_earned = await self.db.user_achievements.count_documents(
                {"user_id": user_id, "achievement_id": achievement.id}
            )
            items.append(
                AchievementProgress(
                    achievement_id=str(achievement.id),
                    name=achievement.name,
                    description=achievement.description,
                    bonus_points=achievement.bonus_points,
                    frequency=achievement.frequency,
                    current_count=progress.current_count,
                    required_count=progress.required_count,
                    unlocked=progress.unlocked,
                    times_earned=times_earned,
                )
            )
        return items
