# backend/app/models/activity_type.py
# Type d'activité et configuration de scoring (union discriminée sur `type`).

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from app.core.bson_utils import MongoBaseModel, PyObjectId
from app.models._shared import Timestamped


class Tier(BaseModel):
    """Palier d'un scoring `tiered` (sans `max_value` : palier fourre-tout)."""

    max_value: Optional[float] = None
    points: float


class OptionalBonus(BaseModel):
    """Bonus optionnel d'un scoring `completion`, sélectionné explicitement par l'utilisateur."""

    name: str
    bonus_points: float
    description: Optional[str] = None


class UnitBasedConfig(BaseModel):
    """Scoring proportionnel à une métrique.

    Attributes:
        metric (str): Métrique lue (résolue par alias, ex. 'miles').
        points_per_unit (float): Points par unité.
        base_points (float): Points fixes ajoutés à chaque log.
        max_units (float | None): Plafond d'unités comptées.
        daily_free_units (float | None): Unités gratuites par jour (pénalités type « drinks »).
    """

    type: Literal["unit_based"] = "unit_based"
    metric: str
    points_per_unit: float
    base_points: float = 0.0
    max_units: Optional[float] = Field(default=None, ge=0)
    daily_free_units: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None


class TieredConfig(BaseModel):
    """Scoring par paliers : premier palier dont `max_value` >= valeur (bornes incluses)."""

    type: Literal["tiered"] = "tiered"
    metric: str
    tiers: list[Tier] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_tiers(self):
        bounded = [t.max_value for t in self.tiers if t.max_value is not None]
        if bounded != sorted(bounded):
            raise ValueError("tiers must be sorted ascending by max_value")
        for t in self.tiers[:-1]:
            if t.max_value is None:
                raise ValueError("catch-all tier (no max_value) must be last")
        return self


class CompletionConfig(BaseModel):
    type: Literal["completion"] = "completion"
    fixed_points: float
    optional_bonuses: list[OptionalBonus] = Field(default_factory=list)


class VariableConfig(BaseModel):
    type: Literal["variable"] = "variable"
    default_points: float = 0.0


ScoringConfig = Annotated[
    Union[UnitBasedConfig, TieredConfig, CompletionConfig, VariableConfig],
    Field(discriminator="type"),
]

SCORING_CONFIG_TYPES = ("unit_based", "tiered", "completion", "variable")


class BonusThreshold(BaseModel):
    """Bonus forfaitaire déclenché quand une métrique atteint un seuil (ex. semi-marathon)."""

    metric: str
    threshold: float
    bonus_points: float
    description: Optional[str] = None


class ActivityType(MongoBaseModel, Timestamped):
    """Document Mongo d'un type d'activité.

    Attributes:
        challenge_id (PyObjectId): Challenge propriétaire.
        name (str): Nom (ex. 'Running').
        category_id (PyObjectId | None): Catégorie pour les classements.
        scoring_config (ScoringConfig): Règle de calcul des points.
        contributes_to_streak (bool): Compte pour la streak.
        is_negative (bool): Pénalité (points stockés négatifs).
        bonus_thresholds (list[BonusThreshold]): Bonus de seuil (uniquement `unit_based`).
        max_per_challenge (int | None): Nombre maximum d'attributions par participant.
        valid_weeks (list[int] | None): Semaines où le type est loggable.
        available_in_final_days (bool): Loggable pendant les « final days » même hors `valid_weeks`.
        display_order (int | None): Ordre d'affichage.
    """

    challenge_id: PyObjectId
    name: str
    description: Optional[str] = None
    category_id: Optional[PyObjectId] = None
    scoring_config: ScoringConfig
    contributes_to_streak: bool = True
    is_negative: bool = False
    bonus_thresholds: list[BonusThreshold] = Field(default_factory=list)
    max_per_challenge: Optional[int] = Field(default=None, ge=0)
    valid_weeks: Optional[list[int]] = None
    available_in_final_days: bool = False
    display_order: Optional[int] = None
    is_system: bool = False  # ex. « Achievement Bonus » : jamais loggable ni affiché
