# backend/app/api/routes/__init__.py

from .health import router as health_router
from .activities import router as activities_router
from .participations import router as participations_router
from .leaderboards import router as leaderboards_router
from .achievements import router as achievements_router
from .strava_webhook import router as strava_webhook_router
from .admin import router as admin_router
from .maintenance import router as maintenance_router

routers = [
    health_router,
    activities_router,
    participations_router,
    leaderboards_router,
    achievements_router,
    strava_webhook_router,
    admin_router,
    maintenance_router,
]
