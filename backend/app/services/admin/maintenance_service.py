# backend/app/services/admin/maintenance_service.py
# Réparation des agrégats (réconciliation depuis les activités / le ledger) et purge en cascade d'un challenge.

from __future__ import annotations

from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from app.core.errors import AggregateDriftError, ChallengeOrTypeNotFound, NotParticipating
from app.core.logging_config import extract_user_data, get_loggers
from app.core.utils import utcnow
from app.services.ingestion.participation_ledger import ParticipationLedger

# Tolérance des comparaisons de sommes flottantes
DRIFT_EPSILON = 1e-6

# Collections rattachées à un challenge (ordre de purge : dépendants d'abord)
CHALLENGE_CHILD_COLLECTIONS = [
    "user_achievements",
    "point_ledger",
    "activities",
    "participations",
    "achievements",
    "integration_mappings",
    "activity_types",
    "categories",
]


class ReconciliationReport(BaseModel):
    """Rapport de réconciliation d'une participation.

    Attributes:
        stored_total (float): `total_points` avant réparation.
        activity_total (float): Somme des activités non supprimées (source de vérité).
        ledger_total (float): Somme des écritures du ledger.
        drift (float): `activity_total - stored_total`.
        repaired (bool): Correction appliquée.
    """

    challenge_id: str
    user_id: str
    stored_total: float
    activity_total: float
    ledger_total: float
    drift: float
    current_streak: int
    repaired: bool = False


class MaintenanceService:
    """Opérations de maintenance (admin)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.ledger = ParticipationLedger(db)

    async def reconcile_participation(
        self,
        challenge_id: ObjectId,
        user_id: ObjectId,
        repair: bool = True,
        admin_id: Optional[ObjectId] = None,
    ) -> ReconciliationReport:
        """Comparer `total_points` à la somme des activités et réparer si besoin.

        Description:
            Toute dérive est une anomalie du pipeline d'agrégation : elle est journalisée sur
            le logger d'erreurs (et le rapport complet via le DataLogger). En mode réparation,
            une écriture `reconciliation` est ajoutée au ledger puis appliquée par `$inc`,
            et la streak est recalculée.

        Args:
            challenge_id (ObjectId): Challenge.
            user_id (ObjectId): Utilisateur.
            repair (bool): Appliquer la correction (sinon lever `AggregateDriftError`).
            admin_id (ObjectId | None): Auteur, consigné dans `admin_audit`.

        Returns:
            ReconciliationReport: Rapport.

        Raises:
            AggregateDriftError: Dérive détectée et `repair=False`.
            NotParticipating: Participation inexistante.
        """
        participation = await self.ledger.get_participation(challenge_id, user_id)
        if participation is None:
            raise NotParticipating("User is not part of this challenge")
        challenge = await self.db.challenges.find_one({"_id": challenge_id})
        if challenge is None:
            raise ChallengeOrTypeNotFound("Challenge not found")

        stored = float(participation.get("total_points") or 0.0)
        activity_total = await self.ledger.sum_activity_points(challenge_id, user_id)
        ledger_total = await self.ledger.sum_ledger(challenge_id, user_id)
        drift = activity_total - stored

        report = ReconciliationReport(
            challenge_id=str(challenge_id),
            user_id=str(user_id),
            stored_total=stored,
            activity_total=activity_total,
            ledger_total=ledger_total,
            drift=drift,
            current_streak=participation.get("current_streak", 0),
        )

        if abs(drift) > DRIFT_EPSILON:
            _, error_logger, data_logger = get_loggers()
            error_logger.error(
                f"Aggregate drift for user {user_id} / challenge {challenge_id}: "
                f"stored={stored} activities={activity_total} ledger={ledger_total}"
            )
            data_logger.log_data("reconcile_participation", report.model_dump())
            if not repair:
                raise AggregateDriftError(
                    "Stored total diverges from the sum of activities", details=report.model_dump()
                )
            await self.ledger.apply_delta(challenge_id, user_id, drift, "reconciliation")
            await self.db.admin_audit.insert_one(
                {
                    "admin_id": admin_id,
                    "activity_id": None,
                    "participation_id": participation["_id"],
                    "action": "reconcile",
                    "changes": {"total_points": {"from": stored, "to": activity_total}},
                    "comment": "Aggregate repaired from activity set",
                    "created_at": utcnow(),
                }
            )
            report.repaired = True

        streak = await self.ledger.recompute_streak(
            challenge_id, user_id, float(challenge.get("streak_min_points") or 0.0)
        )
        report.current_streak = streak.current_streak
        return report

    async def reconcile_challenge(
        self, challenge_id: ObjectId, repair: bool = True, admin_id: Optional[ObjectId] = None
    ) -> list[ReconciliationReport]:
        """Réconcilier toutes les participations d'un challenge (rapports avec dérive uniquement)."""
        reports = []
        cursor = self.db.participations.find({"challenge_id": challenge_id}, {"user_id": 1})
        for doc in [d async for d in cursor]:
            report = await self.reconcile_participation(challenge_id, doc["user_id"], repair=repair, admin_id=admin_id)
            if abs(report.drift) > DRIFT_EPSILON:
                reports.append(report)
        return reports

    async def analyze_challenge_purge(self, challenge_id: ObjectId) -> dict[str, int]:
        """Compter les documents qui seraient supprimés par `purge_challenge`."""
        if await self.db.challenges.find_one({"_id": challenge_id}) is None:
            raise ChallengeOrTypeNotFound("Challenge not found")
        counts = {}
        for name in CHALLENGE_CHILD_COLLECTIONS:
            counts[name] = await self.db[name].count_documents({"challenge_id": challenge_id})
        counts["challenges"] = 1
        return counts

    async def purge_challenge(self, challenge_id: ObjectId, admin_id: Optional[ObjectId] = None) -> dict[str, Any]:
        """Suppression en cascade d'un challenge et de toutes ses données."""
        deleted = {}
        for name in CHALLENGE_CHILD_COLLECTIONS:
            result = await self.db[name].delete_many({"challenge_id": challenge_id})
            deleted[name] = result.deleted_count
        result = await self.db.challenges.delete_one({"_id": challenge_id})
        deleted["challenges"] = result.deleted_count

        generic_logger, _, data_logger = get_loggers()
        generic_logger.info(f"Challenge {challenge_id} purged by {admin_id}: {deleted}")
        data_logger.log_data(
            "purge_challenge", {"challenge_id": challenge_id, "deleted": deleted}, extract_user_data(admin_id)
        )
        return {"deleted": deleted, "total_deleted": sum(deleted.values()), "timestamp": utcnow().isoformat()}
