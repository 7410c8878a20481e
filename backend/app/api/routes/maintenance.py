# backend/app/api/routes/maintenance.py
# Maintenance admin : réconciliation des agrégats, purge en cascade d'un challenge avec clé de confirmation.

from __future__ import annotations

import secrets
from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.dto.response_format import SuccessResponse
from app.core.bson_utils import PyObjectId
from app.core.security import AdminUser, require_admin
from app.core.utils import utcnow
from app.db.mongodb import get_db
from app.services.admin.maintenance_service import MaintenanceService, ReconciliationReport

# Cache en mémoire
purge_cache: dict = {}
# Durée de validité de la clé de confirmation (en minutes)
CONFIRMATION_KEY_TTL = 10

router = APIRouter(
    prefix="/maintenance", tags=["maintenance"], dependencies=[Depends(require_admin)]
)

Db = Annotated[AsyncIOMotorDatabase, Depends(get_db)]
ChallengeId = Annotated[PyObjectId, Path(description="Identifiant du challenge.")]


def clean_expired_keys():
    """Nettoie les clés de confirmation expirées du cache"""
    now = utcnow()
    expired = [k for k, v in purge_cache.items() if v["expires_at"] < now]
    for key in expired:
        del purge_cache[key]


@router.post(
    "/challenges/{challenge_id}/reconcile",
    response_model=SuccessResponse[list[ReconciliationReport]],
    summary="Réconcilier les totaux d'un challenge",
    description=(
        "Recalcule chaque `total_points` depuis les activités non supprimées.\n\n"
        "- `repair=true` (défaut) : corrige et consigne une écriture `reconciliation`\n"
        "- `repair=false` : 500 `AGGREGATE_DRIFT` à la première dérive trouvée\n"
        "- Ne renvoie que les participations en dérive"
    ),
)
async def reconcile_challenge(
    challenge_id: ChallengeId,
    admin: AdminUser,
    db: Db,
    repair: bool = Query(True, description="Corriger les dérives trouvées."),
):
    reports = await MaintenanceService(db).reconcile_challenge(challenge_id, repair=repair, admin_id=admin.id)
    return SuccessResponse(data=reports, message=f"{len(reports)} participation(s) drifted")


@router.post(
    "/challenges/{challenge_id}/users/{user_id}/reconcile",
    response_model=SuccessResponse[ReconciliationReport],
    summary="Réconcilier une participation",
)
async def reconcile_participation(
    challenge_id: ChallengeId,
    admin: AdminUser,
    db: Db,
    user_id: PyObjectId = Path(..., description="Identifiant de l'utilisateur."),
    repair: bool = Query(True),
):
    report = await MaintenanceService(db).reconcile_participation(
        challenge_id, user_id, repair=repair, admin_id=admin.id
    )
    return SuccessResponse(data=report)


@router.get(
    "/challenges/{challenge_id}/purge",
    summary="Analyser la purge d'un challenge",
    description="Compte les documents rattachés et renvoie une clé de confirmation valable 10 minutes.",
)
async def purge_analyze(challenge_id: ChallengeId, db: Db):
    clean_expired_keys()
    counts = await MaintenanceService(db).analyze_challenge_purge(challenge_id)

    confirmation_key = secrets.token_urlsafe(16)
    expires_at = utcnow() + timedelta(minutes=CONFIRMATION_KEY_TTL)
    purge_cache[confirmation_key] = {"challenge_id": challenge_id, "expires_at": expires_at}

    return {
        "counts": counts,
        "total": sum(counts.values()),
        "confirmation_key": confirmation_key,
        "expires_at": expires_at.isoformat(),
        "message": "Use DELETE with this key to purge the challenge.",
    }


@router.delete(
    "/challenges/{challenge_id}/purge",
    summary="Purger un challenge (confirmation requise)",
)
async def purge_execute(
    challenge_id: ChallengeId,
    admin: AdminUser,
    db: Db,
    key: str = Query(..., description="Clé obtenue via GET /purge."),
):
    """
    Supprime le challenge et toutes ses données après confirmation.

    Args:
        key: Clé de confirmation obtenue via GET /purge
    """
    clean_expired_keys()

    cached = purge_cache.get(key)
    if cached is None or cached["challenge_id"] != challenge_id:
        raise HTTPException(status_code=404, detail="Invalid or expired confirmation key")
    if utcnow() > cached["expires_at"]:
        del purge_cache[key]
        raise HTTPException(
            status_code=410,
            detail="Confirmation key expired. Please request a new analysis.",
        )

    result = await MaintenanceService(db).purge_challenge(challenge_id, admin_id=admin.id)
    del purge_cache[key]
    return result
