# backend/app/services/strava/strava_mapper.py
# Conversion d'une activité Strava en entrée du pipeline d'ingestion (métriques, date, médias) et détection du type.

from __future__ import annotations

import math
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field

from app.core.utils import parse_date_only
from app.models.integration import MetricMapping

METERS_PER_MILE = 1609.344

RUN_TYPES = ["Run", "TrailRun", "VirtualRun"]
RIDE_TYPES = ["Ride", "VirtualRide", "EBikeRide"]
SWIM_TYPES = ["Swim"]

# Repli par nom de type d'activité quand aucune correspondance n'est configurée
SPORT_TYPE_MAPPING: dict[str, list[str]] = {
    "Running": RUN_TYPES,
    "Cycling": RIDE_TYPES,
    "Swimming": SWIM_TYPES,
    "Strength Training": ["WeightTraining", "Workout"],
    "Walking": ["Walk", "Hike"],
    "Yoga": ["Yoga"],
}

# Alias posés en plus de la métrique cible, pour la compatibilité du scoring
TARGET_ALIASES: dict[str, list[str]] = {
    "miles": ["miles", "distance_miles"],
    "distance_miles": ["miles", "distance_miles"],
    "kilometers": ["kilometers", "distance_km"],
    "distance_km": ["kilometers", "distance_km"],
    "minutes": ["minutes", "duration_minutes"],
    "duration_minutes": ["minutes", "duration_minutes"],
}


class MappedActivity(BaseModel):
    """Activité Strava convertie.

    Attributes:
        logged_date (str): Jour UTC de `start_date` (YYYY-MM-DD).
        metrics (dict): Métriques dérivées.
        image_urls (list[str]): Photos Strava (déclenchent le bonus média).
        external_id (str): Identifiant Strava.
    """

    logged_date: str
    metrics: dict[str, Any] = Field(default_factory=dict)
    image_urls: list[str] = Field(default_factory=list)
    external_id: str
    external_data: dict[str, Any] = Field(default_factory=dict)


class DetectedType(BaseModel):
    activity_type_id: Any
    metric_mapping: Optional[MetricMapping] = None


def _is(payload: dict[str, Any], types: list[str]) -> bool:
    return payload.get("sport_type") in types or payload.get("type") in types


def _pace(distance_m: float, seconds: float, unit_m: float) -> str:
    per_unit = seconds / (distance_m / unit_m)
    minutes = math.floor(per_unit / 60)
    secs = round(per_unit % 60)
    if secs == 60:
        minutes, secs = minutes + 1, 0
    return f"{minutes}:{secs:02d}"


def photo_urls(payload: dict[str, Any]) -> list[str]:
    """URLs de la photo principale (`photos.primary.urls`), quelle que soit la taille."""
    primary = ((payload.get("photos") or {}).get("primary")) or {}
    urls = primary.get("urls") or {}
    return [u for u in urls.values() if isinstance(u, str) and u]


def extract_metrics(payload: dict[str, Any], metric_mapping: Optional[MetricMapping] = None) -> dict[str, Any]:
    """Métriques dérivées d'une activité Strava.

    Description:
        Durées en minutes (écoulée et en mouvement), distances km et miles, fréquence
        cardiaque, dénivelé, puis allure / vitesse selon le sport. Une correspondance de
        métrique convertit la métrique principale vers la métrique cible et pose ses alias.
    """
    metrics: dict[str, Any] = {
        "minutes": round((payload.get("elapsed_time") or 0) / 60),
        "moving_minutes": round((payload.get("moving_time") or 0) / 60),
    }
    distance = payload.get("distance") or 0
    if distance:
        metrics["distance_km"] = distance / 1000
        metrics["distance_miles"] = distance / METERS_PER_MILE
    if payload.get("average_heartrate"):
        metrics["average_heartrate"] = payload["average_heartrate"]
    if payload.get("max_heartrate"):
        metrics["max_heartrate"] = payload["max_heartrate"]
    if payload.get("total_elevation_gain"):
        metrics["elevation_gain_m"] = payload["total_elevation_gain"]

    if _is(payload, RUN_TYPES):
        if distance and payload.get("elapsed_time"):
            metrics["average_pace_min_per_km"] = _pace(distance, payload["elapsed_time"], 1000)
    elif _is(payload, RIDE_TYPES):
        if payload.get("average_speed"):
            metrics["average_speed_kmh"] = f"{payload['average_speed'] * 3.6:.1f}"
    elif _is(payload, SWIM_TYPES):
        if distance and payload.get("moving_time"):
            metrics["average_pace_min_per_100m"] = _pace(distance, payload["moving_time"], 100)

    if metric_mapping is not None:
        source = metrics.get(metric_mapping.primary_metric)
        if source is not None:
            value = source * metric_mapping.conversion_factor if metric_mapping.conversion_factor else source
            target = metric_mapping.target_metric or metric_mapping.primary_metric
            metrics[target] = value
            for alias in TARGET_ALIASES.get(target, []):
                metrics[alias] = value

    return metrics


def map_strava_activity(payload: dict[str, Any], metric_mapping: Optional[MetricMapping] = None) -> MappedActivity:
    """Convertir un payload d'activité Strava (API `GET /activities/{id}`)."""
    return MappedActivity(
        logged_date=parse_date_only(payload["start_date"]).isoformat(),
        metrics=extract_metrics(payload, metric_mapping),
        image_urls=photo_urls(payload),
        external_id=str(payload["id"]),
        external_data=payload,
    )


async def detect_activity_type(
    db: AsyncIOMotorDatabase, challenge_id: ObjectId, payload: dict[str, Any]
) -> Optional[DetectedType]:
    """Trouver le type d'activité d'un challenge correspondant à une activité Strava.

    Description:
        1. Correspondance configurée (`integration_mappings`) sur `sport_type` ou `type`.
        2. Sinon, table de repli : un type dont le nom contient le libellé du sport.

    Returns:
        DetectedType | None: Type et correspondance de métrique éventuelle, None si rien ne correspond.
    """
    external_types = [t for t in (payload.get("sport_type"), payload.get("type")) if t]
    mapping = await db.integration_mappings.find_one(
        {
            "challenge_id": challenge_id,
            "service": "strava",
            "is_active": {"$ne": False},
            "external_type": {"$in": external_types},
        }
    )
    if mapping is not None:
        metric_mapping = mapping.get("metric_mapping")
        return DetectedType(
            activity_type_id=mapping["activity_type_id"],
            metric_mapping=MetricMapping.model_validate(metric_mapping) if metric_mapping else None,
        )

    for label, strava_types in SPORT_TYPE_MAPPING.items():
        if not _is(payload, strava_types):
            continue
        cursor = db.activity_types.find(
            {"challenge_id": challenge_id, "deleted_at": None}, sort=[("display_order", 1)]
        )
        async for doc in cursor:
            if doc.get("is_system"):
                continue
            if label.lower() in (doc.get("name") or "").lower():
                return DetectedType(activity_type_id=doc["_id"])
    return None
