# backend/app/server.py
# Lancement de l'API avec uvicorn (hôte, port et rechargement tirés des settings).

import uvicorn

from app.core.settings import get_settings


def run() -> None:
    """Point d'entrée `march-fitness-api` : rechargement automatique en développement."""
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":
    run()
