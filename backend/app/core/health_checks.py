# backend/app/core/health_checks.py
# Vérifications unitaires des dépendances exposées par `/health` (MongoDB, configuration Strava).

import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.settings import get_settings

logger = logging.getLogger(__name__)


async def check_mongodb(db: AsyncIOMotorDatabase) -> str:
    """
    Vérifie la connexion MongoDB

    Returns:
        "ok" si connecté, message d'erreur sinon
    """
    try:
        await db.command("ping")
        return "ok"
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return f"error: {str(e)}"


def check_strava() -> str:
    """Intégration Strava configurée (identifiants client et jeton de vérification du webhook)."""
    settings = get_settings()
    if settings.strava_client_id and settings.strava_client_secret and settings.strava_verify_token:
        return "ok"
    return "disabled"
