# backend/app/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import routers
from app.core.exception_handlers import register_exception_handlers
from app.core.logging_config import get_loggers
from app.core.middleware import MaxBodySizeMiddleware
from app.core.settings import get_settings
from app.db.mongodb import db
from app.db.seed_indexes import ensure_indexes

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- startup ---
    generic_logger, _, _ = get_loggers()
    await ensure_indexes(db)  # idempotent
    generic_logger.info(f"{settings.app_name} API started ({settings.environment})")

    yield  # l'app tourne ici

    # --- shutdown ---
    generic_logger.info(f"{settings.app_name} API stopped")


app = FastAPI(title=f"{settings.app_name} API", version=settings.api_version, lifespan=lifespan)
# Ordre des middlewares = ordre d'ajout : la limite de taille passe en premier.
app.add_middleware(
    MaxBodySizeMiddleware,
    max_body_size=settings.max_upload_bytes,
    exclude_paths=("/health",),
)

register_exception_handlers(app)

for r in routers:
    app.include_router(r)
