# backend/app/services/user_provisioning.py
# Création / mise à jour des utilisateurs issus du fournisseur d'auth, rôle attribué par une politique configurée.

from __future__ import annotations

import logging
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field
from pymongo import ReturnDocument

from app.core.settings import Settings, get_settings
from app.core.utils import utcnow

logger = logging.getLogger(__name__)


class RolePolicy(BaseModel):
    """Politique d'attribution des rôles (données, jamais une liste en dur).

    Attributes:
        admin_emails (list[str]): Emails promus admin (comparaison insensible à la casse).
        default_role (str): Rôle des autres utilisateurs.
    """

    admin_emails: list[str] = Field(default_factory=list)
    default_role: str = "user"

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RolePolicy":
        settings = settings or get_settings()
        return cls(admin_emails=settings.admin_emails, default_role=settings.default_role)

    def role_for(self, email: str) -> str:
        admins = {e.strip().lower() for e in self.admin_emails}
        return "admin" if email.strip().lower() in admins else self.default_role


class UserProvisioningService:
    def __init__(self, db: AsyncIOMotorDatabase, policy: Optional[RolePolicy] = None):
        self.db = db
        self.policy = policy or RolePolicy.from_settings()

    async def provision(
        self,
        email: str,
        username: Optional[str] = None,
        name: Optional[str] = None,
        gender: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> dict[str, Any]:
        """Créer ou mettre à jour un utilisateur (clé : email normalisé).

        Description:
            Le rôle est recalculé à chaque connexion depuis la politique : retirer un email de
            la configuration rétrograde l'utilisateur. Les champs de profil absents ne
            remplacent pas les valeurs existantes.

        Returns:
            dict: Document utilisateur après upsert.
        """
        email = email.strip().lower()
        now = utcnow()
        profile = {
            k: v
            for k, v in {"username": username, "name": name, "gender": gender, "avatar_url": avatar_url}.items()
            if v is not None
        }
        role = self.policy.role_for(email)
        user = await self.db.users.find_one_and_update(
            {"email": email},
            {
                "$set": {**profile, "role": role, "updated_at": now},
                "$setOnInsert": {"email": email, "created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        logger.info(f"User {email} provisioned with role {role}")
        return user
