# backend/app/services/scoring/metric_resolver.py
# Résolution des métriques par alias (clé exacte, clé normalisée, singulier/pluriel, alias canoniques).

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any, Optional

# Alias canoniques partagés par tous les chemins d'ingestion (manuel, Strava, admin).
CANONICAL_ALIASES: dict[str, list[str]] = {
    "miles": ["distance_miles", "mile", "distance_mile"],
    "kilometers": ["distance_km", "distance_kilometers", "km", "kilometres", "kilometer", "kilometre"],
    "minutes": ["duration_minutes", "moving_minutes", "minute"],
    "count": ["counts", "instances", "instance"],
    "completion": ["completed", "is_completed"],
    "full_days": ["full_day"],
    "half_days": ["half_day"],
}

# Clés candidates des seuils (bonus de seuil, critères d'achievement) : première valeur positive.
THRESHOLD_ALIASES: dict[str, list[str]] = {
    "distance_miles": ["miles", "distance_miles", "distance"],
    "distance_km": ["kilometers", "km", "distance_km", "distance"],
    "duration_minutes": ["minutes", "duration_minutes", "duration"],
}

_SEPARATORS = re.compile(r"[\s-]+")


def to_number(value: Any) -> float:
    """Convertir une valeur brute en nombre fini (0 sinon)."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def normalize_metric_key(key: str) -> str:
    return _SEPARATORS.sub("_", key.strip().lower())


def metric_candidates(metric: str) -> set[str]:
    """Ensemble des clés normalisées acceptées pour une métrique configurée."""
    normalized = normalize_metric_key(metric)
    singular = normalized[:-1] if normalized.endswith("s") else normalized
    plural = normalized if normalized.endswith("s") else f"{normalized}s"

    candidates = {normalized, singular, plural}
    aliases = CANONICAL_ALIASES.get(normalized) or CANONICAL_ALIASES.get(singular) or []
    candidates.update(aliases)
    return candidates


def resolve_metric_value(metrics: Mapping[str, Any], metric: Optional[str]) -> Optional[float]:
    """Lire la valeur d'une métrique en tolérant les variantes de nommage.

    Description:
        1. clé exacte telle que configurée
        2. sinon, première clé de `metrics` dont la forme normalisée appartient aux candidats
           (forme normalisée, singulier/pluriel, alias canoniques)

    Args:
        metrics (Mapping[str, Any]): Métriques brutes de l'activité.
        metric (str | None): Nom de métrique configuré (ex. 'miles').

    Returns:
        float | None: Valeur numérique, ou None si aucune clé ne correspond.
    """
    if not metric:
        return None
    if metrics.get(metric) is not None:
        return to_number(metrics[metric])

    candidates = metric_candidates(metric)
    for key, value in metrics.items():
        if value is not None and normalize_metric_key(key) in candidates:
            return to_number(value)
    return None


def resolve_threshold_value(metrics: Mapping[str, Any], metric: str) -> float:
    """Valeur d'une métrique de seuil : première valeur strictement positive parmi les alias.

    Args:
        metrics (Mapping[str, Any]): Métriques brutes.
        metric (str): Métrique du seuil (ex. 'distance_miles').

    Returns:
        float: Valeur trouvée, 0 sinon.
    """
    for key in THRESHOLD_ALIASES.get(metric, [metric]):
        value = to_number(metrics.get(key))
        if value > 0:
            return value
    # Métrique hors table : même résolution que le scoring
    if metric not in THRESHOLD_ALIASES:
        return resolve_metric_value(metrics, metric) or 0.0
    return 0.0
