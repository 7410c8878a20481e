# backend/app/api/routes/health.py
# Health check de l'API et de ses dépendances.

from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.health_checks import check_mongodb, check_strava
from app.core.settings import get_settings
from app.core.utils import utcnow
from app.db.mongodb import get_db
from app.models.base.health import HealthCheck

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthCheck,
    summary="Health check de l'API",
    description="Retourne le statut de l'API et de ses dépendances (BDD, intégration Strava).",
)
async def health(db: Annotated[AsyncIOMotorDatabase, Depends(get_db)]) -> JSONResponse:
    """
    Health check endpoint standard

    Vérifie :
    - MongoDB
    - Strava (configuration seulement ; « disabled » n'est pas une erreur)

    Returns:
        200 si tout OK, 503 si un service est down
    """
    checks = {
        "database": await check_mongodb(db),
        "strava": check_strava(),
    }

    has_errors = any(check.startswith("error") for check in checks.values())
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE if has_errors else status.HTTP_200_OK

    response = HealthCheck(
        status="degraded" if has_errors else "ok",
        timestamp=utcnow(),
        version=get_settings().api_version,
        checks=checks,
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))
