# backend/app/db/mongodb.py
# Client MongoDB construit depuis les settings, et dépendance FastAPI d'accès à la base.

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.core.settings import get_settings

settings = get_settings()

client: AsyncIOMotorClient = AsyncIOMotorClient(settings.mongodb_uri)
db: AsyncIOMotorDatabase = client[settings.mongodb_db]


async def get_db() -> AsyncIOMotorDatabase:
    """Dépendance FastAPI : base de données injectée dans les services.

    Description:
        Les services reçoivent la base dans leur constructeur ; les tests remplacent cette
        dépendance (`app.dependency_overrides`) par une base en mémoire.

    Returns:
        AsyncIOMotorDatabase: Base applicative.
    """
    return db
