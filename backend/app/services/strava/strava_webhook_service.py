# backend/app/services/strava/strava_webhook_service.py
# Traitement des événements webhook Strava : stockage brut, suppression, import multi-challenges indépendant.

from __future__ import annotations

import logging
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field

from app.api.dto.activity import LogActivityInput
from app.core.bson_utils import dump_mongo
from app.core.errors import IntegrationError, ScoringError
from app.core.logging_config import get_loggers
from app.core.settings import Settings, get_settings
from app.core.utils import utcnow
from app.models.integration import WebhookPayload
from app.services.ingestion.activity_ingestion_service import ActivityIngestionService
from app.services.providers.strava_client import StravaClient

from .strava_mapper import detect_activity_type, map_strava_activity

logger = logging.getLogger(__name__)

STRAVA = "strava"


class ChallengeOutcome(BaseModel):
    challenge_id: str
    status: str
    points: Optional[float] = None
    delta: Optional[float] = None
    reason: Optional[str] = None


class WebhookResult(BaseModel):
    """Résultat du traitement d'un événement (journalisé, jamais renvoyé tel quel à Strava)."""

    status: str
    deleted: int = 0
    challenges: list[ChallengeOutcome] = Field(default_factory=list)


class StravaWebhookService:
    """Réception des événements `{object_type, object_id, aspect_type, owner_id, updates}`.

    Description:
        Livraisons « au moins une fois », possiblement désordonnées : l'import passe par
        l'upsert idempotent du pipeline d'ingestion. Chaque participation de l'athlète est
        traitée indépendamment ; un rejet dans un challenge n'empêche pas les autres.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        client: Optional[StravaClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.client = client or StravaClient(db, self.settings)
        self.ingestion = ActivityIngestionService(db)

    def verify_subscription(self, mode: Optional[str], token: Optional[str], challenge: Optional[str]) -> Optional[dict[str, str]]:
        """Validation de l'abonnement (`GET` avec `hub.mode`, `hub.verify_token`, `hub.challenge`)."""
        if mode == "subscribe" and token and token == self.settings.strava_verify_token and challenge:
            return {"hub.challenge": challenge}
        return None

    async def _store(self, event: dict[str, Any]) -> ObjectId:
        record = WebhookPayload(
            service=STRAVA,
            event_type=f"{event.get('object_type')}.{event.get('aspect_type')}",
            payload=event,
        )
        result = await self.db.webhook_payloads.insert_one(dump_mongo(record))
        return result.inserted_id

    async def _finish(self, payload_id: ObjectId, status: str, error: Optional[str] = None) -> None:
        await self.db.webhook_payloads.update_one(
            {"_id": payload_id},
            {"$set": {"status": status, "error": error, "processed_at": utcnow()}},
        )

    async def handle_event(self, event: dict[str, Any]) -> WebhookResult:
        """Traiter un événement webhook.

        Args:
            event (dict): Corps JSON reçu.

        Returns:
            WebhookResult: Synthèse (ignored, deleted, processed, skipped, failed).
        """
        payload_id = await self._store(event)
        _, _, data_logger = get_loggers()
        data_logger.log_data("strava_webhook", event)

        object_type = event.get("object_type")
        aspect = event.get("aspect_type")
        try:
            if object_type == "athlete":
                result = await self._handle_athlete(event)
            elif object_type != "activity":
                result = WebhookResult(status="ignored")
            elif aspect == "delete":
                deleted = await self.ingestion.delete_external_activity(
                    STRAVA, str(event.get("object_id")), reason="strava_delete"
                )
                result = WebhookResult(status="deleted", deleted=deleted)
            elif aspect in ("create", "update"):
                result = await self._import(event)
            else:
                result = WebhookResult(status="ignored")
        except IntegrationError as e:
            logger.warning(f"Strava event {event.get('object_id')} dropped: {e.message}")
            await self._finish(payload_id, "failed", e.message)
            return WebhookResult(status="failed")

        await self._finish(payload_id, "failed" if result.status == "failed" else "processed")
        return result

    async def _handle_athlete(self, event: dict[str, Any]) -> WebhookResult:
        """Désautorisation côté Strava : l'intégration est marquée révoquée."""
        updates = event.get("updates") or {}
        if str(updates.get("authorized", "")).lower() != "false":
            return WebhookResult(status="ignored")
        await self.db.user_integrations.update_many(
            {"service": STRAVA, "athlete_id": event.get("owner_id")},
            {"$set": {"revoked": True, "updated_at": utcnow()}},
        )
        return WebhookResult(status="processed")

    async def _import(self, event: dict[str, Any]) -> WebhookResult:
        integration = await self.client.get_integration(event.get("owner_id"))
        if integration is None:
            logger.warning(f"No Strava integration for athlete {event.get('owner_id')}, event skipped")
            return WebhookResult(status="skipped")

        activity = await self.client.get_activity(integration, event["object_id"])
        user_id = integration["user_id"]

        outcomes = []
        cursor = self.db.participations.find({"user_id": user_id}, {"challenge_id": 1})
        for participation in [doc async for doc in cursor]:
            outcomes.append(await self._import_into(participation["challenge_id"], user_id, activity))

        return WebhookResult(status="processed", challenges=outcomes)

    async def _import_into(self, challenge_id: ObjectId, user_id: ObjectId, activity: dict[str, Any]) -> ChallengeOutcome:
        detected = await detect_activity_type(self.db, challenge_id, activity)
        if detected is None:
            logger.warning(
                f"No activity type for Strava {activity.get('sport_type')}/{activity.get('type')} "
                f"in challenge {challenge_id}"
            )
            return ChallengeOutcome(challenge_id=str(challenge_id), status="skipped", reason="no_matching_type")

        mapped = map_strava_activity(activity, detected.metric_mapping)
        data = LogActivityInput(
            challenge_id=challenge_id,
            user_id=user_id,
            activity_type_id=detected.activity_type_id,
            logged_date=mapped.logged_date,
            metrics=mapped.metrics,
            image_urls=mapped.image_urls,
            source=STRAVA,
            external_source=STRAVA,
            external_id=mapped.external_id,
            external_data=mapped.external_data,
        )
        try:
            result = await self.ingestion.upsert_external_activity(data, user_id)
        except ScoringError as e:
            logger.warning(f"Strava activity {mapped.external_id} rejected in challenge {challenge_id}: {e.code}")
            return ChallengeOutcome(challenge_id=str(challenge_id), status="rejected", reason=e.code)

        return ChallengeOutcome(
            challenge_id=str(challenge_id),
            status="created" if result.created else "updated",
            points=result.activity.points_earned,
            delta=result.delta,
        )
