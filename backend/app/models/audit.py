# backend/app/models/audit.py
# Journal d'audit des actions admin sur les activités (corrections, modération).

from __future__ import annotations

import datetime as dt
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.bson_utils import MongoBaseModel, PyObjectId
from app.core.utils import utcnow

AuditAction = Literal["override_points", "edit", "flag", "resolve", "delete", "reconcile"]


class FieldChange(BaseModel):
    from_value: Any = Field(default=None, alias="from")
    to_value: Any = Field(default=None, alias="to")

    model_config = ConfigDict(populate_by_name=True)


class AdminAuditEntry(MongoBaseModel):
    """Entrée d'audit.

    Attributes:
        admin_id (PyObjectId | None): Auteur (None pour les actions système).
        activity_id (PyObjectId | None): Activité concernée.
        action (str): Type d'action.
        changes (dict[str, FieldChange]): Champs modifiés `{champ: {from, to}}`.
        comment (str | None): Commentaire obligatoire pour les corrections de points.
    """

    admin_id: Optional[PyObjectId] = None
    activity_id: Optional[PyObjectId] = None
    participation_id: Optional[PyObjectId] = None
    action: AuditAction
    changes: dict[str, FieldChange] = Field(default_factory=dict)
    comment: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=lambda: utcnow())
