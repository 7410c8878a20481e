# backend/app/core/utils.py
# Fonctions temporelles basiques (UTC aware) et helpers de dates « date-only ».

import datetime as dt

DAY_MS = 24 * 60 * 60 * 1000


def utcnow():
    """Date/heure UTC (timezone-aware).

    Description:
        Retourne `datetime.now(timezone.utc)` avec timezone UTC attachée. Recommandé
        pour les horodatages persistés et les comparaisons.

    Returns:
        datetime.datetime: Timestamp UTC (aware).
    """
    return dt.datetime.now(dt.timezone.utc)


def today_utc() -> dt.date:
    return utcnow().date()


def parse_date_only(value) -> dt.date:
    """Normaliser une valeur en date calendaire UTC.

    Description:
        Accepte une `date`, un `datetime` (converti en UTC s'il est aware), une chaîne
        `YYYY-MM-DD` ou ISO 8601 complète, ou un timestamp en millisecondes epoch.

    Args:
        value (date | datetime | str | int | float): Valeur à normaliser.

    Returns:
        datetime.date: Jour UTC correspondant.

    Raises:
        ValueError: Si la valeur n'est pas interprétable.
    """
    if isinstance(value, dt.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(dt.timezone.utc)
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, (int, float)):
        return dt.datetime.fromtimestamp(value / 1000, tz=dt.timezone.utc).date()
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            return dt.date.fromisoformat(text)
        parsed = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parse_date_only(parsed)
    raise ValueError(f"Invalid date value: {value!r}")


def date_to_utc_ms(day: dt.date) -> int:
    """Minuit UTC du jour donné, en millisecondes epoch."""
    midnight = dt.datetime(day.year, day.month, day.day, tzinfo=dt.timezone.utc)
    return int(midnight.timestamp() * 1000)
