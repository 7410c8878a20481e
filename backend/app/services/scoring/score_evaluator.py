# backend/app/services/scoring/score_evaluator.py
# Calcul pur des points d'une activité à partir de la configuration de scoring du type (aucune I/O).

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Optional

from pydantic import BaseModel, Field, TypeAdapter

from app.core.errors import CapExceeded, UnknownScoringConfigType
from app.models.activity import TriggeredBonus
from app.models.activity_type import (
    SCORING_CONFIG_TYPES,
    ActivityType,
    BonusThreshold,
    CompletionConfig,
    ScoringConfig,
    TieredConfig,
    UnitBasedConfig,
    VariableConfig,
)

from .metric_resolver import resolve_metric_value, resolve_threshold_value

MEDIA_BONUS_POINTS = 1.0

_scoring_config_adapter: TypeAdapter = TypeAdapter(ScoringConfig)


class ScoreResult(BaseModel):
    """Résultat du scoring d'une activité.

    Attributes:
        base_points (float): Points de la règle (avant bonus, non signés).
        bonus_points (float): Somme des bonus déclenchés.
        points_earned (float): Total signé stocké sur l'activité.
        triggered_bonuses (list[TriggeredBonus]): Détail des bonus.
    """

    base_points: float = 0.0
    bonus_points: float = 0.0
    points_earned: float = 0.0
    triggered_bonuses: list[TriggeredBonus] = Field(default_factory=list)


def _check_config_tag(raw: Mapping[str, Any]) -> None:
    tag = raw.get("type") if isinstance(raw, Mapping) else None
    if tag not in SCORING_CONFIG_TYPES:
        raise UnknownScoringConfigType(
            f"Unknown scoring config type: {tag!r}", details={"type": tag}
        )


def parse_scoring_config(raw: Mapping[str, Any]) -> ScoringConfig:
    """Valider une configuration brute en variante typée.

    Raises:
        UnknownScoringConfigType: Tag `type` absent ou inconnu (jamais de score à 0 silencieux).
    """
    _check_config_tag(raw)
    return _scoring_config_adapter.validate_python(raw)


def load_activity_type(doc: Mapping[str, Any]) -> ActivityType:
    """Charger un type d'activité depuis Mongo en rejetant les tags de scoring inconnus."""
    _check_config_tag(doc.get("scoring_config") or {})
    return ActivityType.model_validate(doc)


def apply_point_sign(raw_points: float, is_negative: bool) -> float:
    """Pénalité : le total est toujours négatif, même si la règle renvoie déjà un négatif."""
    return -abs(raw_points) if is_negative else raw_points


def daily_chargeable_units(value: float, same_day_prior_units: float, free_units: float) -> float:
    """Unités facturées pour cette saisie, une fois la franchise journalière consommée.

    Args:
        value (float): Unités de cette saisie.
        same_day_prior_units (float): Unités déjà loggées le même jour pour ce type.
        free_units (float): Franchise journalière.

    Returns:
        float: `max(0, après - franchise) - max(0, avant - franchise)`.
    """
    before = max(0.0, same_day_prior_units - free_units)
    after = max(0.0, same_day_prior_units + value - free_units)
    return after - before


def _unit_based_points(
    config: UnitBasedConfig, metrics: Mapping[str, Any], same_day_prior_units: float
) -> float:
    value = resolve_metric_value(metrics, config.metric)
    if value is None:
        return config.base_points

    units = value
    if config.daily_free_units is not None:
        units = daily_chargeable_units(value, same_day_prior_units, config.daily_free_units)
    if config.max_units is not None:
        units = min(units, config.max_units)
    return config.base_points + units * config.points_per_unit


def _tiered_points(config: TieredConfig, metrics: Mapping[str, Any]) -> float:
    value = resolve_metric_value(metrics, config.metric) or 0.0
    for tier in config.tiers:
        if tier.max_value is None or value <= tier.max_value:
            return tier.points
    # Valeur au-delà de tous les paliers bornés
    return config.tiers[-1].points


def threshold_bonuses(
    thresholds: Iterable[BonusThreshold], metrics: Mapping[str, Any]
) -> list[TriggeredBonus]:
    """Bonus de seuil déclenchés (indépendants et cumulatifs)."""
    triggered = []
    for t in thresholds:
        if resolve_threshold_value(metrics, t.metric) >= t.threshold:
            triggered.append(
                TriggeredBonus(
                    metric=t.metric,
                    threshold=t.threshold,
                    bonus_points=t.bonus_points,
                    description=t.description,
                )
            )
    return triggered


def optional_bonuses(config: CompletionConfig, selected: Optional[Iterable[str]]) -> list[TriggeredBonus]:
    chosen = set(selected or [])
    return [
        TriggeredBonus(
            metric="optional",
            threshold=0,
            bonus_points=b.bonus_points,
            description=b.description or b.name,
        )
        for b in config.optional_bonuses
        if b.name in chosen
    ]


def media_bonus(has_media: bool) -> list[TriggeredBonus]:
    if not has_media:
        return []
    return [
        TriggeredBonus(
            metric="media", threshold=1, bonus_points=MEDIA_BONUS_POINTS, description="Photo bonus"
        )
    ]


def compute_score(
    activity_type: ActivityType,
    metrics: Mapping[str, Any],
    *,
    prior_award_count: int = 0,
    same_day_prior_units: float = 0.0,
    selected_bonuses: Optional[Iterable[str]] = None,
    variable_points: Optional[float] = None,
    has_media: bool = False,
) -> ScoreResult:
    """Calculer les points d'une activité.

    Description:
        Fonction pure et déterministe :
        - plafond `max_per_challenge` vérifié en premier (rejet, aucun score partiel)
        - points de base selon la variante (`unit_based`, `tiered`, `completion`, `variable`)
        - bonus de seuil (uniquement `unit_based`), bonus optionnels (`completion`), bonus photo
        - signe appliqué en dernier (`is_negative` => total négatif)

    Args:
        activity_type (ActivityType): Type d'activité (config de scoring, seuils, plafond, signe).
        metrics (Mapping[str, Any]): Métriques brutes.
        prior_award_count (int): Activités déjà attribuées pour (utilisateur, challenge, type).
        same_day_prior_units (float): Unités déjà loggées le même jour (franchise journalière).
        selected_bonuses (Iterable[str] | None): Noms des bonus optionnels choisis.
        variable_points (float | None): Points fournis par l'appelant (variante `variable`).
        has_media (bool): L'activité porte une photo.

    Returns:
        ScoreResult: Points de base, bonus et total signé.

    Raises:
        CapExceeded: Plafond d'attributions atteint.
        UnknownScoringConfigType: Variante non gérée.
    """
    cap = activity_type.max_per_challenge
    if cap is not None and prior_award_count >= cap:
        raise CapExceeded(
            f"'{activity_type.name}' can only be logged {cap} time(s) per challenge",
            details={"max_per_challenge": cap, "prior_award_count": prior_award_count},
        )

    config = activity_type.scoring_config
    triggered: list[TriggeredBonus] = []

    if isinstance(config, UnitBasedConfig):
        base = _unit_based_points(config, metrics, same_day_prior_units)
        triggered.extend(threshold_bonuses(activity_type.bonus_thresholds, metrics))
    elif isinstance(config, TieredConfig):
        base = _tiered_points(config, metrics)
    elif isinstance(config, CompletionConfig):
        base = config.fixed_points
        triggered.extend(optional_bonuses(config, selected_bonuses))
    elif isinstance(config, VariableConfig):
        base = config.default_points if variable_points is None else float(variable_points)
    else:
        raise UnknownScoringConfigType(f"Unsupported scoring config: {type(config).__name__}")

    triggered.extend(media_bonus(has_media))
    bonus = sum(b.bonus_points for b in triggered)

    return ScoreResult(
        base_points=base,
        bonus_points=bonus,
        points_earned=apply_point_sign(base + bonus, activity_type.is_negative),
        triggered_bonuses=triggered,
    )
