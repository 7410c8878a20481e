# backend/app/services/ingestion/participation_ledger.py
# Unique écrivain des agrégats de participation : ledger immuable, `$inc` atomique, streak en compare-and-set.

from __future__ import annotations

import logging
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from app.core.errors import NotParticipating
from app.core.utils import utcnow
from app.services.streaks.streak_calculator import StreakState, compute_streak, daily_points

logger = logging.getLogger(__name__)

# Tentatives du compare-and-set sur `revision` avant abandon
MAX_STREAK_CAS_ATTEMPTS = 8


class ParticipationLedger:
    """Maintien des agrégats `total_points` / `current_streak` d'une participation.

    Description:
        - chaque variation de points est d'abord écrite dans `point_ledger` (immuable),
          puis appliquée par `$inc` atomique (aucune écriture perdue entre logs concurrents)
        - la streak est toujours recalculée par re-scan des activités et écrite en
          compare-and-set sur `revision` (un recalcul concurrent force une relecture)
        - la reconstruction depuis les activités / le ledger est une opération de réparation
          (voir `MaintenanceService`), jamais le chemin nominal
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def get_participation(self, challenge_id: ObjectId, user_id: ObjectId) -> Optional[dict[str, Any]]:
        return await self.db.participations.find_one({"challenge_id": challenge_id, "user_id": user_id})

    async def apply_delta(
        self,
        challenge_id: ObjectId,
        user_id: ObjectId,
        delta: float,
        reason: str,
        activity_id: Optional[ObjectId] = None,
    ) -> dict[str, Any]:
        """Appliquer un delta de points à la participation.

        Args:
            challenge_id (ObjectId): Challenge.
            user_id (ObjectId): Utilisateur.
            delta (float): Variation (0 => aucune écriture).
            reason (str): Motif du ledger.
            activity_id (ObjectId | None): Activité source.

        Returns:
            dict: Participation après mise à jour.

        Raises:
            NotParticipating: Aucune participation pour (utilisateur, challenge).
        """
        if delta == 0:
            participation = await self.get_participation(challenge_id, user_id)
            if participation is None:
                raise NotParticipating("User is not part of this challenge")
            return participation

        now = utcnow()
        await self.db.point_ledger.insert_one(
            {
                "challenge_id": challenge_id,
                "user_id": user_id,
                "activity_id": activity_id,
                "delta": delta,
                "reason": reason,
                "created_at": now,
            }
        )
        participation = await self.db.participations.find_one_and_update(
            {"challenge_id": challenge_id, "user_id": user_id},
            {"$inc": {"total_points": delta, "revision": 1}, "$set": {"updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if participation is None:
            raise NotParticipating("User is not part of this challenge")
        return participation

    async def contributing_type_ids(self, challenge_id: ObjectId) -> set:
        cursor = self.db.activity_types.find(
            {"challenge_id": challenge_id, "contributes_to_streak": {"$ne": False}}, {"_id": 1}
        )
        return {doc["_id"] async for doc in cursor}

    async def scan_streak(self, challenge_id: ObjectId, user_id: ObjectId, streak_min_points: float) -> StreakState:
        """Recalculer la streak depuis l'ensemble des activités non supprimées."""
        type_ids = await self.contributing_type_ids(challenge_id)
        cursor = self.db.activities.find(
            {"challenge_id": challenge_id, "user_id": user_id, "deleted_at": None},
            {"activity_type_id": 1, "logged_date": 1, "points_earned": 1, "deleted_at": 1},
        )
        activities = [doc async for doc in cursor]
        return compute_streak(daily_points(activities, type_ids), streak_min_points)

    async def recompute_streak(
        self, challenge_id: ObjectId, user_id: ObjectId, streak_min_points: float
    ) -> StreakState:
        """Recalcul de la streak avec écriture en compare-and-set sur `revision`.

        Description:
            Lit la révision, re-scanne les activités, puis écrit uniquement si la révision n'a
            pas bougé. Sinon (écriture concurrente), recommence : le dernier écrivain voit
            toujours l'état complet des activités.

        Returns:
            StreakState: Streak écrite.
        """
        state = StreakState()
        for _ in range(MAX_STREAK_CAS_ATTEMPTS):
            participation = await self.get_participation(challenge_id, user_id)
            if participation is None:
                raise NotParticipating("User is not part of this challenge")
            revision = participation.get("revision")

            state = await self.scan_streak(challenge_id, user_id, streak_min_points)
            last_day = state.last_streak_day.isoformat() if state.last_streak_day else None
            result = await self.db.participations.update_one(
                {"_id": participation["_id"], "revision": revision},
                {
                    "$set": {
                        "current_streak": state.current_streak,
                        "last_streak_day": last_day,
                        "updated_at": utcnow(),
                    },
                    "$inc": {"revision": 1},
                },
            )
            if result.matched_count == 1:
                return state
            logger.info(f"Streak CAS conflict for user {user_id} / challenge {challenge_id}, retrying")

        logger.warning(f"Streak recompute gave up after {MAX_STREAK_CAS_ATTEMPTS} attempts (user {user_id})")
        return state

    async def sum_activity_points(self, challenge_id: ObjectId, user_id: ObjectId) -> float:
        """Somme des `points_earned` des activités non supprimées (réparation, tests)."""
        cursor = self.db.activities.find(
            {"challenge_id": challenge_id, "user_id": user_id, "deleted_at": None}, {"points_earned": 1}
        )
        return sum([float(doc.get("points_earned") or 0.0) async for doc in cursor])

    async def sum_ledger(self, challenge_id: ObjectId, user_id: ObjectId) -> float:
        cursor = self.db.point_ledger.find({"challenge_id": challenge_id, "user_id": user_id}, {"delta": 1})
        return sum([float(doc.get("delta") or 0.0) async for doc in cursor])
