# backend/app/api/routes/strava_webhook.py
# Webhook Strava : validation d'abonnement (GET) et réception des événements (POST, toujours acquittés).

from __future__ import annotations

from typing import Annotated, Any, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.db.mongodb import get_db
from app.services.strava.strava_webhook_service import StravaWebhookService

router = APIRouter(prefix="/webhooks/strava", tags=["strava"])

Db = Annotated[AsyncIOMotorDatabase, Depends(get_db)]


@router.get(
    "",
    summary="Validation de l'abonnement webhook",
    description="Strava envoie `hub.mode`, `hub.verify_token` et `hub.challenge` ; on renvoie `hub.challenge`.",
)
async def verify_subscription(
    db: Db,
    hub_mode: Optional[str] = Query(default=None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
):
    echo = StravaWebhookService(db).verify_subscription(hub_mode, hub_verify_token, hub_challenge)
    if echo is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid verify token")
    return echo


@router.post(
    "",
    summary="Réception d'un événement Strava",
    description=(
        "Stocke puis traite l'événement après la réponse. La réponse est toujours 200 : "
        "les échecs sont journalisés et visibles dans `webhook_payloads`."
    ),
)
async def receive_event(
    background: BackgroundTasks,
    db: Db,
    event: dict[str, Any] = Body(...),
):
    background.add_task(StravaWebhookService(db).handle_event, event)
    return {"received": True}
