# backend/tests/conftest.py
# Fixtures partagées : base Mongo en mémoire (mongomock-motor), fabriques de challenge / types / participations.

import datetime as dt
import os
import tempfile
from uuid import uuid4

# Variables posées avant le premier import de `app` (settings mis en cache)
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("ADMIN_EMAILS", "boss@example.com")
os.environ.setdefault("STRAVA_VERIFY_TOKEN", "verify-me")
os.environ.setdefault("LOGS_DIR", os.path.join(tempfile.gettempdir(), "march_fitness_test_logs"))

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from app.core.bson_utils import dump_mongo
from app.models.activity_type import ActivityType
from app.models.challenge import Challenge
from app.models.participation import Participation

CHALLENGE_START = dt.date(2024, 1, 1)

RUNNING_CONFIG = {"type": "unit_based", "metric": "miles", "points_per_unit": 7.5}


@pytest.fixture
def db():
    """Base isolée par test."""
    return AsyncMongoMockClient()[f"march_fitness_{uuid4().hex[:8]}"]


@pytest.fixture
def make_challenge(db):
    async def _make(**overrides) -> dict:
        data = {
            "name": "March Fitness 2024",
            "start_date": CHALLENGE_START,
            "end_date": CHALLENGE_START + dt.timedelta(days=30),
            "duration_days": 31,
            "streak_min_points": 10,
        }
        data.update(overrides)
        doc = dump_mongo(Challenge(**data))
        doc["_id"] = (await db.challenges.insert_one(doc)).inserted_id
        return doc

    return _make


@pytest.fixture
def make_type(db):
    async def _make(challenge: dict, name: str = "Running", scoring_config: dict | None = None, **overrides) -> dict:
        activity_type = ActivityType(
            challenge_id=challenge["_id"],
            name=name,
            scoring_config=scoring_config or RUNNING_CONFIG,
            **overrides,
        )
        doc = dump_mongo(activity_type)
        doc["_id"] = (await db.activity_types.insert_one(doc)).inserted_id
        return doc

    return _make


@pytest.fixture
def make_user(db):
    async def _make(username: str = "runner", gender: str | None = None, **extra) -> dict:
        doc = {
            "email": f"{username}@example.com",
            "username": username,
            "name": username.title(),
            "gender": gender,
            "role": "user",
            **extra,
        }
        doc["_id"] = (await db.users.insert_one(doc)).inserted_id
        return doc

    return _make


@pytest.fixture
def join(db):
    """Inscrire un utilisateur à un challenge (`joined_at` croissant par défaut)."""
    counter = {"n": 0}

    async def _join(challenge: dict, user_id: ObjectId | None = None, **overrides) -> dict:
        counter["n"] += 1
        participation = Participation(
            challenge_id=challenge["_id"],
            user_id=user_id or ObjectId(),
            joined_at=overrides.pop("joined_at", dt.datetime(2023, 12, 1) + dt.timedelta(minutes=counter["n"])),
            **overrides,
        )
        doc = dump_mongo(participation)
        doc["_id"] = (await db.participations.insert_one(doc)).inserted_id
        return doc

    return _join
