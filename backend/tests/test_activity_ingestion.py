"""Tests du pipeline d'ingestion (validation, scoring, ledger, idempotence, suppression)."""

import asyncio

import pytest
from bson import ObjectId

from app.api.dto.activity import LogActivityInput
from app.core.errors import (
    ActivityNotFound,
    ActivityTypeNotLoggableThisWeek,
    CapExceeded,
    ChallengeOrTypeNotFound,
    NotParticipating,
    OutOfChallengeWindow,
    PaymentRequired,
    VariablePointsNotAllowed,
)
from app.services.ingestion.activity_ingestion_service import ActivityIngestionService
from app.services.ingestion.participation_ledger import ParticipationLedger


def _input(challenge, activity_type, logged_date="2024-01-05", **extra) -> LogActivityInput:
    return LogActivityInput(
        challenge_id=challenge["_id"],
        activity_type_id=activity_type["_id"],
        logged_date=logged_date,
        metrics=extra.pop("metrics", {"miles": 4}),
        **extra,
    )


async def _total(db, participation) -> float:
    return (await db.participations.find_one({"_id": participation["_id"]}))["total_points"]


@pytest.fixture
async def setup(db, make_challenge, make_type, join):
    challenge = await make_challenge()
    running = await make_type(challenge)
    participation = await join(challenge)
    return challenge, running, participation


class TestLogActivity:
    async def test_scores_and_aggregates(self, db, setup):
        challenge, running, participation = setup
        result = await ActivityIngestionService(db).log_activity(_input(challenge, running), participation["user_id"])

        assert result.created
        assert result.delta == 30
        assert result.activity.points_earned == 30
        assert await _total(db, participation) == 30

        entries = [e async for e in db.point_ledger.find({"user_id": participation["user_id"]})]
        assert [(e["delta"], e["reason"]) for e in entries] == [(30, "activity_logged")]

    async def test_outside_window_is_rejected_before_write(self, db, setup):
        challenge, running, participation = setup
        with pytest.raises(OutOfChallengeWindow):
            await ActivityIngestionService(db).log_activity(
                _input(challenge, running, logged_date="2024-02-01"), participation["user_id"]
            )
        assert await db.activities.count_documents({}) == 0
        assert await _total(db, participation) == 0

    async def test_type_from_another_challenge(self, db, setup, make_challenge, make_type):
        challenge, _, participation = setup
        other = await make_type(await make_challenge(name="Other"))
        with pytest.raises(ChallengeOrTypeNotFound):
            await ActivityIngestionService(db).log_activity(_input(challenge, other), participation["user_id"])

    async def test_not_participating(self, db, setup):
        challenge, running, _ = setup
        with pytest.raises(NotParticipating):
            await ActivityIngestionService(db).log_activity(_input(challenge, running), ObjectId())

    async def test_payment_required(self, db, make_challenge, make_type, join):
        challenge = await make_challenge(payment_required=True)
        running = await make_type(challenge)
        unpaid = await join(challenge, payment_status="unpaid")
        paid = await join(challenge, payment_status="paid")
        service = ActivityIngestionService(db)

        with pytest.raises(PaymentRequired):
            await service.log_activity(_input(challenge, running), unpaid["user_id"])
        result = await service.log_activity(_input(challenge, running), paid["user_id"])
        assert result.created

    async def test_type_outside_valid_weeks(self, db, setup, make_type):
        challenge, _, participation = setup
        stairs = await make_type(
            challenge, name="Stairs", scoring_config={"type": "completion", "fixed_points": 10}, valid_weeks=[2]
        )
        with pytest.raises(ActivityTypeNotLoggableThisWeek) as exc:
            await ActivityIngestionService(db).log_activity(
                _input(challenge, stairs, logged_date="2024-01-03"), participation["user_id"]
            )
        assert exc.value.details["week"] == 1

    async def test_cap_then_slot_freed_by_deletion(self, db, setup, make_type):
        challenge, _, participation = setup
        once = await make_type(
            challenge, name="Fun run", scoring_config={"type": "completion", "fixed_points": 50}, max_per_challenge=1
        )
        service = ActivityIngestionService(db)
        user_id = participation["user_id"]

        first = await service.log_activity(_input(challenge, once), user_id)
        with pytest.raises(CapExceeded):
            await service.log_activity(_input(challenge, once, logged_date="2024-01-06"), user_id)
        assert await _total(db, participation) == 50

        await service.delete_activity(first.activity.id, user_id=user_id)
        again = await service.log_activity(_input(challenge, once, logged_date="2024-01-06"), user_id)
        assert again.created
        assert await _total(db, participation) == 50

    async def test_daily_free_units_across_logs(self, db, setup, make_type):
        challenge, _, participation = setup
        drinks = await make_type(
            challenge,
            name="Drinks",
            scoring_config={"type": "unit_based", "metric": "drinks", "points_per_unit": 5, "daily_free_units": 2},
            is_negative=True,
            contributes_to_streak=False,
        )
        service = ActivityIngestionService(db)
        user_id = participation["user_id"]

        first = await service.log_activity(_input(challenge, drinks, metrics={"drinks": 1}), user_id)
        second = await service.log_activity(_input(challenge, drinks, metrics={"drinks": 3}), user_id)
        next_day = await service.log_activity(
            _input(challenge, drinks, logged_date="2024-01-06", metrics={"drinks": 2}), user_id
        )

        assert first.delta == 0
        assert second.delta == -10
        assert next_day.delta == 0
        assert await _total(db, participation) == -10


class TestExternalUpsert:
    def _strava(self, challenge, running, miles=4.0):
        return _input(
            challenge, running, metrics={"miles": miles}, source="strava", external_source="strava", external_id="987"
        )

    async def test_replay_is_idempotent(self, db, setup):
        challenge, running, participation = setup
        service = ActivityIngestionService(db)
        user_id = participation["user_id"]

        created = await service.upsert_external_activity(self._strava(challenge, running), user_id)
        replay = await service.upsert_external_activity(self._strava(challenge, running), user_id)

        assert created.created and created.delta == 30
        assert not replay.created and replay.delta == 0
        assert await db.activities.count_documents({"external_id": "987"}) == 1
        assert await _total(db, participation) == 30

    async def test_update_applies_difference(self, db, setup):
        challenge, running, participation = setup
        service = ActivityIngestionService(db)
        user_id = participation["user_id"]

        await service.upsert_external_activity(self._strava(challenge, running, miles=4), user_id)
        updated = await service.upsert_external_activity(self._strava(challenge, running, miles=6), user_id)

        assert updated.delta == 15
        assert await _total(db, participation) == 45
        ledger = ParticipationLedger(db)
        assert await ledger.sum_ledger(challenge["_id"], user_id) == 45
        assert await ledger.sum_activity_points(challenge["_id"], user_id) == 45

    async def test_deleted_activity_is_restored(self, db, setup):
        challenge, running, participation = setup
        service = ActivityIngestionService(db)
        user_id = participation["user_id"]

        first = await service.upsert_external_activity(self._strava(challenge, running), user_id)
        await service.delete_activity(first.activity.id)
        restored = await service.upsert_external_activity(self._strava(challenge, running), user_id)

        assert restored.delta == 30
        assert restored.activity.deleted_at is None
        assert await _total(db, participation) == 30

    async def test_log_activity_with_external_id_is_an_upsert(self, db, setup):
        challenge, running, participation = setup
        service = ActivityIngestionService(db)
        data = self._strava(challenge, running)

        await service.log_activity(data, participation["user_id"])
        again = await service.log_activity(data, participation["user_id"])
        assert again.delta == 0


class TestDeletion:
    async def test_delete_reverses_contribution(self, db, setup):
        challenge, running, participation = setup
        service = ActivityIngestionService(db)
        user_id = participation["user_id"]
        logged = await service.log_activity(_input(challenge, running), user_id)

        previous = await service.delete_activity(logged.activity.id, user_id=user_id)

        assert previous["points_earned"] == 30
        stored = await db.participations.find_one({"_id": participation["_id"]})
        assert stored["total_points"] == 0
        assert stored["current_streak"] == 0
        assert await db.point_ledger.count_documents({"reason": "activity_deleted"}) == 1

    async def test_second_delete_is_a_noop(self, db, setup):
        challenge, running, participation = setup
        service = ActivityIngestionService(db)
        logged = await service.log_activity(_input(challenge, running), participation["user_id"])

        await service.delete_activity(logged.activity.id)
        assert await service.delete_activity(logged.activity.id) is None
        assert await _total(db, participation) == 0

    async def test_cannot_delete_someone_else_activity(self, db, setup):
        challenge, running, participation = setup
        service = ActivityIngestionService(db)
        logged = await service.log_activity(_input(challenge, running), participation["user_id"])

        with pytest.raises(ActivityNotFound):
            await service.delete_activity(logged.activity.id, user_id=ObjectId())

    async def test_external_delete_spans_challenges(self, db, setup, make_challenge, make_type, join):
        challenge, running, participation = setup
        user_id = participation["user_id"]
        second = await make_challenge(name="Second")
        second_running = await make_type(second)
        second_participation = await join(second, user_id=user_id)
        service = ActivityIngestionService(db)

        for c, t in ((challenge, running), (second, second_running)):
            await service.upsert_external_activity(
                _input(c, t, source="strava", external_source="strava", external_id="555"), user_id
            )

        assert await service.delete_external_activity("strava", "555", reason="strava_delete") == 2
        assert await _total(db, participation) == 0
        assert await _total(db, second_participation) == 0

    async def test_delete_restores_existing_streak(self, db, setup):
        challenge, running, participation = setup
        service = ActivityIngestionService(db)
        user_id = participation["user_id"]
        for day in ("2024-01-01", "2024-01-02", "2024-01-03"):
            await service.log_activity(_input(challenge, running, logged_date=day), user_id)
        before = await db.participations.find_one({"_id": participation["_id"]})
        assert (before["total_points"], before["current_streak"]) == (90, 3)

        extra = await service.log_activity(_input(challenge, running, logged_date="2024-01-04"), user_id)
        assert (await db.participations.find_one({"_id": participation["_id"]}))["current_streak"] == 4

        await service.delete_activity(extra.activity.id, user_id=user_id)

        after = await db.participations.find_one({"_id": participation["_id"]})
        assert after["total_points"] == before["total_points"]
        assert after["current_streak"] == before["current_streak"]
        assert after["last_streak_day"] == "2024-01-03"


class TestConcurrentLogs:
    async def test_parallel_logs_add_up(self, db, setup):
        challenge, running, participation = setup
        user_id = participation["user_id"]

        results = await asyncio.gather(
            ActivityIngestionService(db).log_activity(_input(challenge, running, logged_date="2024-01-05"), user_id),
            ActivityIngestionService(db).log_activity(
                _input(challenge, running, logged_date="2024-01-06", metrics={"miles": 2}), user_id
            ),
        )

        assert sorted(r.delta for r in results) == [15, 30]
        stored = await db.participations.find_one({"_id": participation["_id"]})
        assert stored["total_points"] == 45
        assert stored["current_streak"] == 2
        entries = [e async for e in db.point_ledger.find({"user_id": user_id})]
        assert sorted(e["delta"] for e in entries) == [15, 30]

    async def test_parallel_logs_same_day(self, db, setup):
        challenge, running, participation = setup
        user_id = participation["user_id"]

        await asyncio.gather(
            *(ActivityIngestionService(db).log_activity(_input(challenge, running), user_id) for _ in range(3))
        )

        assert await _total(db, participation) == 90
        assert await db.activities.count_documents({"user_id": user_id}) == 3


class TestVariablePoints:
    async def test_participant_cannot_supply_points(self, db, setup, make_type):
        challenge, _, participation = setup
        bonus = await make_type(challenge, name="Judge bonus", scoring_config={"type": "variable"})

        with pytest.raises(VariablePointsNotAllowed):
            await ActivityIngestionService(db).log_activity(
                _input(challenge, bonus, metrics={}, variable_points=1_000_000), participation["user_id"]
            )

        assert await db.activities.count_documents({}) == 0
        assert await _total(db, participation) == 0

    async def test_without_points_uses_default(self, db, setup, make_type):
        challenge, _, participation = setup
        bonus = await make_type(challenge, name="Judge bonus", scoring_config={"type": "variable", "default_points": 5})

        result = await ActivityIngestionService(db).log_activity(
            _input(challenge, bonus, metrics={}), participation["user_id"]
        )

        assert result.activity.points_earned == 5
        assert await _total(db, participation) == 5

    async def test_admin_award_is_accepted(self, db, setup, make_type):
        challenge, _, participation = setup
        bonus = await make_type(challenge, name="Judge bonus", scoring_config={"type": "variable"})

        result = await ActivityIngestionService(db).log_activity(
            _input(challenge, bonus, metrics={}, variable_points=40, source="admin"),
            participation["user_id"],
            admin_awarded=True,
        )

        assert result.activity.points_earned == 40
        stored = await db.activities.find_one({"_id": result.activity.id})
        assert stored["variable_points"] == 40

    async def test_imported_activity_cannot_supply_points(self, db, setup):
        challenge, running, participation = setup
        with pytest.raises(VariablePointsNotAllowed):
            await ActivityIngestionService(db).upsert_external_activity(
                _input(challenge, running, source="strava", external_source="strava", external_id="1", variable_points=10),
                participation["user_id"],
            )
