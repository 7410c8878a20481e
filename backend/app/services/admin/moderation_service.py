# backend/app/services/admin/moderation_service.py
# Corrections admin (forçage de points, édition de métriques) et modération (signalement, résolution), auditées.

from __future__ import annotations

import logging
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from app.api.dto.activity import AdminAwardInput, AdminEditInput, IngestionResult, LogActivityInput
from app.core.errors import ActivityNotFound, MissingAuditComment, NotAVariableType
from app.core.utils import utcnow
from app.models.activity_type import ActivityType, VariableConfig
from app.services.ingestion.activity_ingestion_service import ActivityIngestionService
from app.services.scoring.score_evaluator import compute_score

logger = logging.getLogger(__name__)


class AdminActivityService:
    """Actions admin sur les activités.

    Description:
        Toute correction passe par les mêmes étapes d'agrégation que l'ingestion (ledger,
        recalcul de streak) et laisse une entrée dans `admin_audit`.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.ingestion = ActivityIngestionService(db)

    async def _get_activity(self, activity_id: ObjectId) -> dict[str, Any]:
        activity = await self.db.activities.find_one({"_id": activity_id})
        if activity is None:
            raise ActivityNotFound("Activity not found", details={"activity_id": str(activity_id)})
        return activity

    async def _audit(
        self,
        action: str,
        activity: dict[str, Any],
        admin_id: Optional[ObjectId],
        changes: dict[str, dict[str, Any]],
        comment: Optional[str],
    ) -> None:
        await self.db.admin_audit.insert_one(
            {
                "admin_id": admin_id,
                "activity_id": activity["_id"],
                "action": action,
                "changes": changes,
                "comment": comment,
                "created_at": utcnow(),
            }
        )

    async def admin_override(
        self, activity_id: ObjectId, points: float, comment: str, admin_id: Optional[ObjectId] = None
    ) -> dict[str, Any]:
        """Forcer les points d'une activité (contourne l'évaluateur).

        Args:
            activity_id (ObjectId): Activité.
            points (float): Nouveau total signé.
            comment (str): Justification (obligatoire).
            admin_id (ObjectId | None): Auteur.

        Returns:
            dict: Activité mise à jour.

        Raises:
            MissingAuditComment: Commentaire vide.
            ActivityNotFound: Activité inexistante.
        """
        if not comment or not comment.strip():
            raise MissingAuditComment("An audit comment is required to override points")

        await self._get_activity(activity_id)
        previous = await self.db.activities.find_one_and_update(
            {"_id": activity_id},
            {
                "$set": {
                    "points_earned": points,
                    "points_overridden": True,
                    "admin_comment": comment,
                    "updated_at": utcnow(),
                }
            },
            return_document=ReturnDocument.BEFORE,
        )
        old_points = float(previous.get("points_earned") or 0.0)
        await self._audit(
            "override_points", previous, admin_id, {"points_earned": {"from": old_points, "to": points}}, comment
        )

        updated = await self._get_activity(activity_id)
        if previous.get("deleted_at") is None:
            challenge = await self.ingestion.validator.load_challenge(previous["challenge_id"])
            await self.ingestion.aggregate(
                challenge, previous["user_id"], points - old_points, "admin_override", updated,
                check_achievements=False,
            )
        logger.info(f"Admin {admin_id} overrode activity {activity_id}: {old_points} -> {points}")
        return updated

    def _variable_points(self, activity_type: ActivityType, activity: dict[str, Any]) -> Optional[float]:
        """Points `variable` à rejouer : ceux attribués, à défaut les points de base stockés."""
        if not isinstance(activity_type.scoring_config, VariableConfig):
            return None
        if activity.get("variable_points") is not None:
            return float(activity["variable_points"])
        return float(activity.get("base_points") or 0.0)

    async def edit_activity(
        self, activity_id: ObjectId, data: AdminEditInput, admin_id: Optional[ObjectId] = None
    ) -> dict[str, Any]:
        """Éditer métriques / date / notes puis re-scorer l'activité.

        Description:
            La nouvelle date est revalidée (fenêtre, semaines). Le re-scoring rejoue les
            entrées stockées avec l'activité (bonus optionnels choisis, points `variable`
            attribués) : une édition qui ne touche ni métriques ni date ne change pas le score.
            Des points forcés (`points_overridden`) sont conservés tant que métriques et date
            sont inchangées. Le delta `nouveau - ancien` est appliqué à la participation.
        """
        if not data.comment or not data.comment.strip():
            raise MissingAuditComment("An audit comment is required to edit an activity")

        activity = await self._get_activity(activity_id)
        challenge_id, user_id = activity["challenge_id"], activity["user_id"]
        ctx = await self.ingestion.validator.load_context(challenge_id, user_id, activity["activity_type_id"])

        submission = LogActivityInput(
            challenge_id=challenge_id,
            user_id=user_id,
            activity_type_id=activity["activity_type_id"],
            logged_date=data.logged_date or activity["logged_date"],
            metrics=data.metrics if data.metrics is not None else activity.get("metrics") or {},
            notes=data.notes if data.notes is not None else activity.get("notes"),
            image_urls=activity.get("image_urls") or [],
            selected_bonuses=activity.get("selected_bonuses") or [],
            variable_points=self._variable_points(ctx.activity_type, activity),
        )
        self.ingestion.validator.check_date(ctx.challenge, ctx.activity_type, submission.logged_date)

        old_points = float(activity.get("points_earned") or 0.0)
        rescore = not activity.get("points_overridden") or (
            submission.metrics != (activity.get("metrics") or {})
            or submission.logged_date.isoformat() != activity.get("logged_date")
        )
        scored: dict[str, Any] = {}
        new_points = old_points
        if rescore:
            prior = await self.ingestion.validator.prior_award_count(
                challenge_id, user_id, activity["activity_type_id"], exclude_id=activity_id
            )
            same_day = await self.ingestion.validator.same_day_units(
                ctx.activity_type, user_id, submission.logged_date, exclude_id=activity_id
            )
            score = compute_score(
                ctx.activity_type,
                submission.metrics,
                prior_award_count=prior,
                same_day_prior_units=same_day,
                selected_bonuses=submission.selected_bonuses,
                variable_points=submission.variable_points,
                has_media=bool(submission.image_urls),
            )
            new_points = score.points_earned
            scored = {
                "base_points": score.base_points,
                "bonus_points": score.bonus_points,
                "points_earned": score.points_earned,
                "triggered_bonuses": [b.model_dump() for b in score.triggered_bonuses],
                "points_overridden": False,
            }

        changes: dict[str, dict[str, Any]] = {}
        for field, new_value in (
            ("metrics", submission.metrics),
            ("logged_date", submission.logged_date.isoformat()),
            ("notes", submission.notes),
            ("points_earned", new_points),
        ):
            if activity.get(field) != new_value:
                changes[field] = {"from": activity.get(field), "to": new_value}

        await self.db.activities.update_one(
            {"_id": activity_id},
            {
                "$set": {
                    "metrics": submission.metrics,
                    "logged_date": submission.logged_date.isoformat(),
                    "notes": submission.notes,
                    **scored,
                    "updated_at": utcnow(),
                }
            },
        )
        await self._audit("edit", activity, admin_id, changes, data.comment)

        updated = await self._get_activity(activity_id)
        if activity.get("deleted_at") is None:
            await self.ingestion.aggregate(ctx.challenge, user_id, new_points - old_points, "admin_edit", updated)
        return updated

    async def award_variable_points(
        self, challenge_id: ObjectId, data: AdminAwardInput, admin_id: Optional[ObjectId] = None
    ) -> IngestionResult:
        """Attribuer des points sur un type `variable` (seul chemin acceptant des points fournis).

        Args:
            challenge_id (ObjectId): Challenge.
            data (AdminAwardInput): Participant, type, jour, points et commentaire d'audit.
            admin_id (ObjectId | None): Auteur.

        Returns:
            IngestionResult: Activité créée (source 'admin') et delta appliqué.

        Raises:
            MissingAuditComment: Commentaire vide.
            NotAVariableType: Le type n'utilise pas la variante `variable`.
        """
        if not data.comment or not data.comment.strip():
            raise MissingAuditComment("An audit comment is required to award points")

        activity_type = await self.ingestion.validator.load_activity_type(challenge_id, data.activity_type_id)
        if not isinstance(activity_type.scoring_config, VariableConfig):
            raise NotAVariableType(
                f"'{activity_type.name}' does not accept awarded points",
                details={"scoring_type": activity_type.scoring_config.type},
            )

        submission = LogActivityInput(
            challenge_id=challenge_id,
            user_id=data.user_id,
            activity_type_id=data.activity_type_id,
            logged_date=data.logged_date,
            notes=data.notes,
            variable_points=data.points,
            source="admin",
        )
        result = await self.ingestion.log_activity(submission, data.user_id, admin_awarded=True)
        stored = await self._get_activity(result.activity.id)
        await self._audit(
            "award_points", stored, admin_id, {"points_earned": {"from": None, "to": result.activity.points_earned}},
            data.comment,
        )
        logger.info(f"Admin {admin_id} awarded {data.points} points to user {data.user_id} ({activity_type.name})")
        return result

    async def flag_activity(self, activity_id: ObjectId, reason: str, reporter_id: Optional[ObjectId] = None) -> dict[str, Any]:
        """Signaler une activité (aucun effet sur les points)."""
        activity = await self._get_activity(activity_id)
        await self.db.activities.update_one(
            {"_id": activity_id},
            {
                "$set": {
                    "flagged": True,
                    "flagged_at": utcnow(),
                    "flagged_reason": reason,
                    "resolution_status": "pending",
                    "updated_at": utcnow(),
                }
            },
        )
        await self._audit(
            "flag", activity, reporter_id, {"flagged": {"from": activity.get("flagged", False), "to": True}}, reason
        )
        return await self._get_activity(activity_id)

    async def resolve_flag(
        self, activity_id: ObjectId, admin_id: Optional[ObjectId] = None, comment: Optional[str] = None
    ) -> dict[str, Any]:
        activity = await self._get_activity(activity_id)
        update: dict[str, Any] = {"resolution_status": "resolved", "flagged": False, "updated_at": utcnow()}
        if comment:
            update["admin_comment"] = comment
        await self.db.activities.update_one({"_id": activity_id}, {"$set": update})
        await self._audit(
            "resolve",
            activity,
            admin_id,
            {"resolution_status": {"from": activity.get("resolution_status"), "to": "resolved"}},
            comment,
        )
        return await self._get_activity(activity_id)

    async def delete_activity(self, activity_id: ObjectId, comment: str, admin_id: Optional[ObjectId] = None) -> Optional[dict[str, Any]]:
        if not comment or not comment.strip():
            raise MissingAuditComment("An audit comment is required to delete an activity")
        activity = await self._get_activity(activity_id)
        previous = await self.ingestion.delete_activity(activity_id, reason="admin_delete")
        if previous is not None:
            await self._audit(
                "delete", activity, admin_id, {"deleted": {"from": False, "to": True}}, comment
            )
        return previous

    async def audit_trail(self, activity_id: ObjectId) -> list[dict[str, Any]]:
        cursor = self.db.admin_audit.find({"activity_id": activity_id}, sort=[("created_at", -1)])
        return [doc async for doc in cursor]
