# backend/app/services/achievements/criteria_evaluator.py
# Évaluation pure des critères d'achievement sur un ensemble d'activités.

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from bson import ObjectId
from pydantic import BaseModel, Field

from app.core.errors import ScoringError
from app.models.achievement import (
    AchievementCriteria,
    AllActivityTypeThresholdsCriteria,
    CountThresholdCriteria,
)
from app.services.scoring.metric_resolver import resolve_threshold_value


class CriteriaProgress(BaseModel):
    """Progression d'un utilisateur vers un achievement.

    Attributes:
        qualifying_activity_ids (list[ObjectId]): Activités créditées.
        current_count (int): Nombre d'activités / exigences satisfaites.
        required_count (int): Nombre requis.
    """

    qualifying_activity_ids: list[Any] = Field(default_factory=list)
    current_count: int = 0
    required_count: int = 0

    @property
    def unlocked(self) -> bool:
        return self.required_count > 0 and self.current_count >= self.required_count


def _meets(activity: Mapping[str, Any], metric: str, threshold: float) -> bool:
    return resolve_threshold_value(activity.get("metrics") or {}, metric) >= threshold


def criteria_activity_type_ids(criteria: AchievementCriteria) -> list[ObjectId]:
    """Types d'activité concernés par les critères (dédupliqués, ordre conservé)."""
    if isinstance(criteria, AllActivityTypeThresholdsCriteria):
        return list(dict.fromkeys(r.activity_type_id for r in criteria.requirements))
    return list(criteria.activity_type_ids)


def evaluate(criteria: AchievementCriteria, activities: Sequence[Mapping[str, Any]]) -> CriteriaProgress:
    """Évaluer des critères sur une liste d'activités (déjà filtrées : non supprimées, bon challenge).

    Description:
        - `count_threshold` : activités des types autorisés dont la métrique atteint le seuil ;
          `current_count` = nombre d'activités qualifiantes.
        - `all_activity_type_thresholds` : pour chaque exigence, la première activité du type
          exact atteignant le seuil ; au plus une activité créditée par exigence.

    Args:
        criteria (AchievementCriteria): Critères typés.
        activities (Sequence[Mapping]): Documents activité (`_id`, `activity_type_id`, `metrics`).

    Returns:
        CriteriaProgress: Activités qualifiantes et compteurs.
    """
    if isinstance(criteria, AllActivityTypeThresholdsCriteria):
        qualifying = []
        for requirement in criteria.requirements:
            found = next(
                (
                    a
                    for a in activities
                    if a.get("activity_type_id") == requirement.activity_type_id
                    and _meets(a, requirement.metric, requirement.threshold)
                ),
                None,
            )
            if found is not None:
                qualifying.append(found["_id"])
        return CriteriaProgress(
            qualifying_activity_ids=qualifying,
            current_count=len(qualifying),
            required_count=len(criteria.requirements),
        )

    if isinstance(criteria, CountThresholdCriteria):
        allowed = set(criteria.activity_type_ids)
        qualifying = [
            a["_id"]
            for a in activities
            if a.get("activity_type_id") in allowed and _meets(a, criteria.metric, criteria.threshold)
        ]
        return CriteriaProgress(
            qualifying_activity_ids=qualifying,
            current_count=len(qualifying),
            required_count=criteria.required_count,
        )

    raise ScoringError(f"Unsupported achievement criteria: {type(criteria).__name__}")
