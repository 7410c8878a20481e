# backend/app/services/streaks/week_calculator.py
# Arithmétique de dates du challenge : numéro de semaine, bornes de semaine, « final days », visibilité des types.

from __future__ import annotations

import datetime as dt
import math
from typing import Any

from app.core.utils import date_to_utc_ms, parse_date_only
from app.models.activity_type import ActivityType
from app.models.challenge import Challenge

WEEK_DAYS = 7


def days_since_start(start_date: Any, when: Any) -> int:
    """Nombre de jours calendaires UTC entre le début du challenge et `when` (négatif avant)."""
    return (parse_date_only(when) - parse_date_only(start_date)).days


def week_number(start_date: Any, when: Any) -> int:
    """Semaine du challenge contenant `when`.

    Description:
        Le jour de départ est le jour 0 de la semaine 1 ; chaque bloc de 7 jours incrémente
        la semaine. Une date strictement antérieure au départ renvoie 0.

    Args:
        start_date (date | str): Début du challenge (date-only).
        when (date | datetime | str | int): Date, datetime UTC ou timestamp (ms).

    Returns:
        int: Numéro de semaine (>= 1), ou 0 avant le début.
    """
    days = days_since_start(start_date, when)
    if days < 0:
        return 0
    return days // WEEK_DAYS + 1


def day_number(start_date: Any, when: Any) -> int:
    """Jour du challenge (base 1), 0 avant le début."""
    days = days_since_start(start_date, when)
    return 0 if days < 0 else days + 1


def week_date_range(start_date: Any, week: int) -> tuple[dt.date, dt.date]:
    """Bornes `[début, fin)` de la semaine `week` (7 jours, semaines contiguës)."""
    start = parse_date_only(start_date) + dt.timedelta(days=(week - 1) * WEEK_DAYS)
    return start, start + dt.timedelta(days=WEEK_DAYS)


def week_ms_range(start_date: Any, week: int) -> tuple[int, int]:
    """Même chose que `week_date_range`, en millisecondes epoch UTC."""
    start, end = week_date_range(start_date, week)
    return date_to_utc_ms(start), date_to_utc_ms(end)


def total_weeks(duration_days: int) -> int:
    return math.ceil(duration_days / WEEK_DAYS)


def clamp_week(week: int, weeks_total: int) -> int:
    """Ramener une semaine demandée dans `[1, weeks_total]`."""
    return max(1, min(week, max(weeks_total, 1)))


def is_in_challenge_window(challenge: Challenge, when: Any) -> bool:
    day = parse_date_only(when)
    return challenge.start_date <= day <= challenge.end_date


def is_in_final_days(challenge: Challenge, when: Any) -> bool:
    """Vrai si `when` tombe dans les « final days » (du jour `final_days_start` à la fin)."""
    if challenge.final_days_start is None:
        return False
    if not is_in_challenge_window(challenge, when):
        return False
    return day_number(challenge.start_date, when) >= challenge.final_days_start


def is_type_loggable(activity_type: ActivityType, challenge: Challenge, when: Any) -> bool:
    """Visibilité d'un type d'activité à une date donnée.

    Description:
        - pas de `valid_weeks` -> toujours loggable
        - semaine courante dans `valid_weeks` -> loggable
        - sinon, loggable si `available_in_final_days` et date dans les « final days »
    """
    if not activity_type.valid_weeks:
        return True
    if week_number(challenge.start_date, when) in activity_type.valid_weeks:
        return True
    return activity_type.available_in_final_days and is_in_final_days(challenge, when)
