# backend/app/services/streaks/streak_calculator.py
# Recalcul de la streak par re-scan complet des jours qualifiants (idempotent, indépendant de l'ordre).

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from pydantic import BaseModel

from app.core.utils import parse_date_only


class StreakState(BaseModel):
    current_streak: int = 0
    last_streak_day: Optional[dt.date] = None


def daily_points(
    activities: Iterable[Mapping[str, Any]], contributing_type_ids: set
) -> dict[dt.date, float]:
    """Somme des points par jour UTC, limitée aux types qui comptent pour la streak.

    Args:
        activities: Documents activité (non supprimés) avec `activity_type_id`, `logged_date`, `points_earned`.
        contributing_type_ids: Identifiants des types `contributes_to_streak`.

    Returns:
        dict[date, float]: Points cumulés par jour.
    """
    totals: dict[dt.date, float] = defaultdict(float)
    for activity in activities:
        if activity.get("deleted_at") is not None:
            continue
        if activity.get("activity_type_id") not in contributing_type_ids:
            continue
        day = parse_date_only(activity["logged_date"])
        totals[day] += float(activity.get("points_earned") or 0.0)
    return dict(totals)


def compute_streak(points_by_day: Mapping[dt.date, float], min_points: float) -> StreakState:
    """Longueur de la dernière série de jours consécutifs atteignant `min_points`.

    Description:
        Un jour compte une seule fois, quel que soit le nombre d'activités. La série retenue est
        celle qui se termine au dernier jour qualifiant ; un trou la remet à 1.

    Args:
        points_by_day (Mapping[date, float]): Points par jour.
        min_points (float): Seuil journalier (`streak_min_points` du challenge).

    Returns:
        StreakState: Streak courante et dernier jour de la série (0 / None si aucun jour).
    """
    qualifying = sorted(day for day, points in points_by_day.items() if points >= min_points)
    if not qualifying:
        return StreakState()

    streak = 1
    last = qualifying[0]
    for day in qualifying[1:]:
        streak = streak + 1 if (day - last).days == 1 else 1
        last = day
    return StreakState(current_streak=streak, last_streak_day=last)
