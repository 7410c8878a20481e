# backend/app/models/participation.py
# Participation d'un utilisateur à un challenge (agrégats matérialisés) et écritures du ledger de points.

from __future__ import annotations

import datetime as dt
from typing import Literal, Optional

from pydantic import Field

from app.core.bson_utils import MongoBaseModel, PyObjectId
from app.core.utils import utcnow
from app.models._shared import DateOnly, Timestamped

PaymentStatus = Literal["unpaid", "pending", "paid", "not_required"]
LedgerReason = Literal[
    "activity_logged",
    "activity_updated",
    "activity_deleted",
    "activity_restored",
    "admin_override",
    "admin_edit",
    "achievement_bonus",
    "reconciliation",
]


class Participation(MongoBaseModel, Timestamped):
    """Document Mongo d'une participation.

    Attributes:
        challenge_id (PyObjectId): Challenge.
        user_id (PyObjectId): Utilisateur.
        joined_at (datetime): Date d'inscription (départage des ex-aequo).
        total_points (float): Somme courante des `points_earned` des activités non supprimées.
        current_streak (int): Longueur de la dernière série de jours qualifiants.
        last_streak_day (date | None): Dernier jour de la série.
        modifier_factor (float): Multiplicateur d'affichage (1 par défaut).
        payment_status (str): Statut de paiement.
        revision (int): Compteur de concurrence optimiste.
        invited_by (PyObjectId | None): Admin à l'origine de l'inscription.
    """

    challenge_id: PyObjectId
    user_id: PyObjectId
    joined_at: dt.datetime = Field(default_factory=lambda: utcnow())
    total_points: float = 0.0
    current_streak: int = 0
    last_streak_day: Optional[DateOnly] = None
    modifier_factor: float = 1.0
    payment_status: PaymentStatus = "not_required"
    revision: int = 0
    invited_by: Optional[PyObjectId] = None


class PointLedgerEntry(MongoBaseModel):
    """Écriture immuable du ledger : chaque variation de `total_points` y est tracée.

    Attributes:
        challenge_id (PyObjectId): Challenge.
        user_id (PyObjectId): Utilisateur.
        activity_id (PyObjectId | None): Activité à l'origine du delta.
        delta (float): Variation appliquée.
        reason (str): Motif.
        created_at (datetime): Horodatage (UTC).
    """

    challenge_id: PyObjectId
    user_id: PyObjectId
    activity_id: Optional[PyObjectId] = None
    delta: float
    reason: LedgerReason
    created_at: dt.datetime = Field(default_factory=lambda: utcnow())
