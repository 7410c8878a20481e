# backend/app/models/challenge.py
# Document Mongo d'un challenge : fenêtre de dates, seuil de streak, fin de parcours (« final days »).

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field, model_validator

from app.core.bson_utils import MongoBaseModel, PyObjectId
from app.models._shared import DateOnly, Timestamped


class Challenge(MongoBaseModel, Timestamped):
    """Challenge borné dans le temps.

    Attributes:
        name (str): Nom affiché.
        start_date (date): Premier jour (jour 1, semaine 1).
        end_date (date): Dernier jour inclus.
        duration_days (int): Durée en jours (sert au calcul du nombre de semaines).
        streak_min_points (float): Points journaliers minimum pour qu'un jour compte dans la streak.
        week_calc_method (str): Méthode de calcul stockée ; les semaines sont ancrées sur `start_date`.
        visibility (str): 'public' | 'private'.
        final_days_start (int | None): Jour (base 1) à partir duquel commencent les « final days ».
        payment_required (bool): Participation payante (bloque le log tant que non payé).
    """

    name: str
    start_date: DateOnly
    end_date: DateOnly
    duration_days: int = Field(..., ge=1)
    streak_min_points: float = 0.0
    week_calc_method: str = "from_start"
    visibility: Literal["public", "private"] = "public"
    final_days_start: Optional[int] = Field(default=None, ge=1)
    payment_required: bool = False

    @model_validator(mode="after")
    def _check_window(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class Category(MongoBaseModel):
    """Catégorie regroupant des types d'activité pour les classements par catégorie.

    Attributes:
        name (str): Nom.
        show_in_category_leaderboard (bool): Apparaît dans les classements par catégorie.
        sort_order (int | None): Ordre d'affichage.
    """

    challenge_id: Optional[PyObjectId] = None
    name: str
    show_in_category_leaderboard: bool = False
    sort_order: Optional[int] = None
