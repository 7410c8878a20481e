# backend/app/services/providers/strava_client.py
# Client API Strava : rafraîchissement OAuth des jetons, lecture d'une activité, bascule « reconnexion requise ».

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.errors import IntegrationError, IntegrationReconnectRequired
from app.core.settings import Settings, get_settings
from app.core.utils import utcnow

logger = logging.getLogger(__name__)

# Rafraîchir le jeton s'il expire dans moins d'une heure
REFRESH_MARGIN_S = 3600


class StravaClient:
    """Accès à l'API Strava pour le compte d'un utilisateur.

    Description:
        Les jetons sont lus et mis à jour dans `user_integrations`. Un 401 déclenche un
        rafraîchissement puis une seule nouvelle tentative ; un second échec marque
        l'intégration `needs_reconnect` et lève `IntegrationReconnectRequired`.

    Args:
        db (AsyncIOMotorDatabase): Base applicative.
        settings (Settings | None): Configuration (défaut : `get_settings()`).
        transport (httpx.AsyncBaseTransport | None): Transport HTTP injecté (tests).
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.strava_timeout_s, transport=self.transport)

    async def get_integration(self, athlete_id: int) -> Optional[dict[str, Any]]:
        return await self.db.user_integrations.find_one(
            {"service": "strava", "athlete_id": athlete_id, "revoked": {"$ne": True}}
        )

    async def mark_needs_reconnect(self, integration: dict[str, Any], reason: str) -> None:
        await self.db.user_integrations.update_one(
            {"_id": integration["_id"]},
            {"$set": {"needs_reconnect": True, "updated_at": utcnow()}},
        )
        logger.warning(f"Strava integration {integration['_id']} needs reconnect: {reason}")

    async def refresh_token(self, integration: dict[str, Any]) -> dict[str, Any]:
        """Échanger le refresh token contre un nouveau jeton d'accès.

        Returns:
            dict: Intégration mise à jour.

        Raises:
            IntegrationReconnectRequired: Refus du fournisseur ou refresh token absent.
        """
        if not integration.get("refresh_token"):
            await self.mark_needs_reconnect(integration, "missing refresh token")
            raise IntegrationReconnectRequired("Strava integration must be reconnected")

        try:
            async with self._http() as client:
                resp = await client.post(
                    self.settings.strava_token_url,
                    data={
                        "client_id": self.settings.strava_client_id,
                        "client_secret": self.settings.strava_client_secret,
                        "grant_type": "refresh_token",
                        "refresh_token": integration["refresh_token"],
                    },
                )
        except httpx.HTTPError as e:
            raise IntegrationError(f"Strava token refresh failed: {e}") from e

        if resp.status_code != 200:
            await self.mark_needs_reconnect(integration, f"token refresh returned {resp.status_code}")
            raise IntegrationReconnectRequired(
                "Strava integration must be reconnected", details={"status": resp.status_code}
            )

        tokens = resp.json()
        update = {
            "access_token": tokens["access_token"],
            "refresh_token": tokens.get("refresh_token") or integration["refresh_token"],
            "expires_at": tokens.get("expires_at"),
            "needs_reconnect": False,
            "updated_at": utcnow(),
        }
        await self.db.user_integrations.update_one({"_id": integration["_id"]}, {"$set": update})
        return {**integration, **update}

    async def ensure_fresh_token(self, integration: dict[str, Any]) -> dict[str, Any]:
        expires_at = integration.get("expires_at")
        if expires_at is not None and expires_at <= time.time() + REFRESH_MARGIN_S:
            return await self.refresh_token(integration)
        return integration

    async def get_activity(self, integration: dict[str, Any], activity_id: int | str) -> dict[str, Any]:
        """Lire une activité Strava (`GET /activities/{id}`).

        Args:
            integration (dict): Document `user_integrations`.
            activity_id (int | str): Identifiant Strava.

        Returns:
            dict: Payload de l'activité.

        Raises:
            IntegrationReconnectRequired: Jeton refusé même après rafraîchissement.
            IntegrationError: Erreur réseau ou réponse inattendue.
        """
        integration = await self.ensure_fresh_token(integration)
        url = f"{self.settings.strava_api_base}/activities/{activity_id}"

        for attempt in range(2):
            try:
                async with self._http() as client:
                    resp = await client.get(url, headers={"Authorization": f"Bearer {integration['access_token']}"})
            except httpx.HTTPError as e:
                raise IntegrationError(f"Strava request failed: {e}") from e

            if resp.status_code == 200:
                return resp.json()
            if resp.status_code == 401:
                if attempt == 0:
                    integration = await self.refresh_token(integration)
                    continue
                await self.mark_needs_reconnect(integration, "access token rejected after refresh")
                raise IntegrationReconnectRequired("Strava integration must be reconnected")
            raise IntegrationError(
                f"Strava returned {resp.status_code} for activity {activity_id}",
                details={"status": resp.status_code},
            )

        raise IntegrationError(f"Strava activity {activity_id} could not be fetched")
