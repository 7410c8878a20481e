# backend/app/models/user.py
# Schémas utilisateur : document Mongo (identité issue du fournisseur d'auth), rôle et genre.

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, EmailStr

from app.core.bson_utils import MongoBaseModel
from app.models._shared import Timestamped

Gender = Literal["male", "female"]


class UserBase(BaseModel):
    """Champs communs utilisateur.

    Attributes:
        email (EmailStr): Email unique.
        username (str | None): Pseudo.
        name (str | None): Nom affiché.
        gender (str | None): 'male' | 'female' (non renseigné sinon).
        role (str): Rôle ('user' par défaut).
    """

    email: EmailStr
    username: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    gender: Optional[Gender] = None
    role: str = "user"


class User(MongoBaseModel, UserBase, Timestamped):
    """Document Mongo utilisateur."""


class UserOut(BaseModel):
    """Projection publique d'un utilisateur (classements)."""

    id: str
    username: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    gender: Optional[Gender] = None
