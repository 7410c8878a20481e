"""Tests des corrections admin (auditées) et de la maintenance (réconciliation, purge)."""

import pytest
from bson import ObjectId

from app.api.dto.activity import AdminAwardInput, AdminEditInput, LogActivityInput
from app.core.errors import (
    AggregateDriftError,
    MissingAuditComment,
    NotAVariableType,
    NotParticipating,
    VariablePointsNotAllowed,
)
from app.services.admin.maintenance_service import MaintenanceService
from app.services.admin.moderation_service import AdminActivityService
from app.services.ingestion.activity_ingestion_service import ActivityIngestionService

ADMIN_ID = ObjectId()


@pytest.fixture
async def logged(db, make_challenge, make_type, join):
    challenge = await make_challenge()
    running = await make_type(challenge)
    participation = await join(challenge)
    result = await ActivityIngestionService(db).log_activity(
        LogActivityInput(
            challenge_id=challenge["_id"], activity_type_id=running["_id"], logged_date="2024-01-05", metrics={"miles": 4}
        ),
        participation["user_id"],
    )
    return challenge, participation, result.activity.id


async def _participation(db, participation):
    return await db.participations.find_one({"_id": participation["_id"]})


class TestModeration:
    async def test_override_applies_delta_and_audits(self, db, logged):
        _, participation, activity_id = logged
        service = AdminActivityService(db)

        updated = await service.admin_override(activity_id, 100, "Verified GPS trace", admin_id=ADMIN_ID)

        assert updated["points_earned"] == 100
        assert updated["points_overridden"] is True
        assert (await _participation(db, participation))["total_points"] == 100
        [entry] = await service.audit_trail(activity_id)
        assert entry["action"] == "override_points"
        assert entry["changes"]["points_earned"] == {"from": 30, "to": 100}
        assert entry["admin_id"] == ADMIN_ID

    @pytest.mark.parametrize("comment", ["", "   "])
    async def test_override_requires_comment(self, db, logged, comment):
        _, participation, activity_id = logged
        with pytest.raises(MissingAuditComment):
            await AdminActivityService(db).admin_override(activity_id, 100, comment)
        assert (await _participation(db, participation))["total_points"] == 30
        assert await db.admin_audit.count_documents({}) == 0

    async def test_edit_rescores(self, db, logged):
        _, participation, activity_id = logged
        updated = await AdminActivityService(db).edit_activity(
            activity_id, AdminEditInput(metrics={"miles": 6}, comment="Typo in distance"), admin_id=ADMIN_ID
        )

        assert updated["points_earned"] == 45
        assert (await _participation(db, participation))["total_points"] == 45
        entry = await db.admin_audit.find_one({"action": "edit"})
        assert entry["changes"]["points_earned"] == {"from": 30, "to": 45}

    async def test_flag_and_resolve_leave_points_alone(self, db, logged):
        _, participation, activity_id = logged
        service = AdminActivityService(db)

        flagged = await service.flag_activity(activity_id, "Looks like a car ride")
        assert flagged["flagged"] is True
        assert flagged["resolution_status"] == "pending"

        resolved = await service.resolve_flag(activity_id, admin_id=ADMIN_ID, comment="Fine")
        assert resolved["flagged"] is False
        assert resolved["resolution_status"] == "resolved"
        assert (await _participation(db, participation))["total_points"] == 30
        assert sorted(e["action"] for e in await service.audit_trail(activity_id)) == ["flag", "resolve"]

    async def test_admin_delete(self, db, logged):
        _, participation, activity_id = logged
        service = AdminActivityService(db)

        with pytest.raises(MissingAuditComment):
            await service.delete_activity(activity_id, "")
        await service.delete_activity(activity_id, "Duplicate entry", admin_id=ADMIN_ID)

        assert (await _participation(db, participation))["total_points"] == 0
        assert (await db.activities.find_one({"_id": activity_id}))["deleted_reason"] == "admin_delete"
        assert await db.admin_audit.count_documents({"action": "delete"}) == 1


class TestReconciliation:
    async def test_consistent_participation(self, db, logged):
        challenge, participation, _ = logged
        report = await MaintenanceService(db).reconcile_participation(challenge["_id"], participation["user_id"])

        assert report.drift == 0
        assert report.stored_total == report.activity_total == report.ledger_total == 30
        assert not report.repaired

    async def test_drift_is_repaired_through_the_ledger(self, db, logged):
        challenge, participation, _ = logged
        await db.participations.update_one({"_id": participation["_id"]}, {"$set": {"total_points": 12}})

        report = await MaintenanceService(db).reconcile_participation(
            challenge["_id"], participation["user_id"], admin_id=ADMIN_ID
        )

        assert report.drift == 18
        assert report.repaired
        assert (await _participation(db, participation))["total_points"] == 30
        assert await db.point_ledger.count_documents({"reason": "reconciliation", "delta": 18}) == 1
        assert await db.admin_audit.count_documents({"action": "reconcile"}) == 1

    async def test_drift_without_repair_raises(self, db, logged):
        challenge, participation, _ = logged
        await db.participations.update_one({"_id": participation["_id"]}, {"$inc": {"total_points": 5}})

        with pytest.raises(AggregateDriftError):
            await MaintenanceService(db).reconcile_participation(
                challenge["_id"], participation["user_id"], repair=False
            )
        assert (await _participation(db, participation))["total_points"] == 35

    async def test_challenge_reports_only_drifted(self, db, logged, join):
        challenge, participation, _ = logged
        other = await join(challenge)
        await db.participations.update_one({"_id": other["_id"]}, {"$set": {"total_points": 7}})

        reports = await MaintenanceService(db).reconcile_challenge(challenge["_id"])

        assert [r.user_id for r in reports] == [str(other["user_id"])]
        assert (await _participation(db, other))["total_points"] == 0

    async def test_unknown_participation(self, db, logged):
        challenge, _, _ = logged
        with pytest.raises(NotParticipating):
            await MaintenanceService(db).reconcile_participation(challenge["_id"], ObjectId())


class TestPurge:
    async def test_analyze_then_purge(self, db, logged, make_challenge):
        challenge, _, _ = logged
        kept = await make_challenge(name="Kept")
        service = MaintenanceService(db)

        counts = await service.analyze_challenge_purge(challenge["_id"])
        assert counts["challenges"] == 1
        assert counts["activities"] == 1
        assert counts["participations"] == 1

        result = await service.purge_challenge(challenge["_id"], admin_id=ADMIN_ID)

        assert result["deleted"]["activities"] == 1
        assert result["total_deleted"] == sum(counts.values())
        assert await db.challenges.count_documents({}) == 1
        assert await db.challenges.find_one({"_id": kept["_id"]}) is not None
        assert await db.point_ledger.count_documents({}) == 0


def _award(participation, activity_type, points=40, comment="Won the team relay", **extra) -> AdminAwardInput:
    return AdminAwardInput(
        user_id=participation["user_id"],
        activity_type_id=activity_type["_id"],
        logged_date=extra.pop("logged_date", "2024-01-07"),
        points=points,
        comment=comment,
        **extra,
    )


class TestVariableAwards:
    async def test_award_scores_and_audits(self, db, logged, make_type):
        challenge, participation, _ = logged
        judge = await make_type(challenge, name="Judge bonus", scoring_config={"type": "variable"})
        service = AdminActivityService(db)

        result = await service.award_variable_points(challenge["_id"], _award(participation, judge), admin_id=ADMIN_ID)

        assert result.delta == 40
        assert result.activity.source == "admin"
        assert (await _participation(db, participation))["total_points"] == 70
        [entry] = await service.audit_trail(result.activity.id)
        assert entry["action"] == "award_points"
        assert entry["admin_id"] == ADMIN_ID
        assert entry["changes"]["points_earned"] == {"from": None, "to": 40}

    async def test_award_on_scored_type_is_rejected(self, db, logged):
        challenge, participation, activity_id = logged
        running_id = (await db.activities.find_one({"_id": activity_id}))["activity_type_id"]

        with pytest.raises(NotAVariableType):
            await AdminActivityService(db).award_variable_points(
                challenge["_id"], _award(participation, {"_id": running_id}), admin_id=ADMIN_ID
            )
        assert (await _participation(db, participation))["total_points"] == 30

    async def test_award_requires_comment(self, db, logged, make_type):
        challenge, participation, _ = logged
        judge = await make_type(challenge, name="Judge bonus", scoring_config={"type": "variable"})
        data = _award(participation, judge).model_copy(update={"comment": "  "})

        with pytest.raises(MissingAuditComment):
            await AdminActivityService(db).award_variable_points(challenge["_id"], data)
        assert await db.activities.count_documents({"source": "admin"}) == 0

    async def test_participant_path_still_refuses_points(self, db, logged, make_type):
        challenge, participation, _ = logged
        judge = await make_type(challenge, name="Judge bonus", scoring_config={"type": "variable"})

        with pytest.raises(VariablePointsNotAllowed):
            await ActivityIngestionService(db).log_activity(
                LogActivityInput(
                    challenge_id=challenge["_id"],
                    activity_type_id=judge["_id"],
                    logged_date="2024-01-07",
                    variable_points=500,
                ),
                participation["user_id"],
            )


class TestEditReplaysScoringInputs:
    async def test_note_edit_keeps_awarded_points(self, db, logged, make_type):
        challenge, participation, _ = logged
        judge = await make_type(challenge, name="Judge bonus", scoring_config={"type": "variable"})
        service = AdminActivityService(db)
        awarded = await service.award_variable_points(challenge["_id"], _award(participation, judge), admin_id=ADMIN_ID)

        updated = await service.edit_activity(
            awarded.activity.id, AdminEditInput(notes="typo", comment="fix note"), admin_id=ADMIN_ID
        )

        assert updated["points_earned"] == 40
        assert updated["notes"] == "typo"
        assert (await _participation(db, participation))["total_points"] == 70
        entry = await db.admin_audit.find_one({"action": "edit"})
        assert "points_earned" not in entry["changes"]

    async def test_note_edit_keeps_selected_bonus(self, db, logged, make_type):
        challenge, participation, _ = logged
        yoga = await make_type(
            challenge,
            name="Yoga",
            scoring_config={
                "type": "completion",
                "fixed_points": 20,
                "optional_bonuses": [{"name": "Outdoors", "bonus_points": 5}],
            },
        )
        result = await ActivityIngestionService(db).log_activity(
            LogActivityInput(
                challenge_id=challenge["_id"],
                activity_type_id=yoga["_id"],
                logged_date="2024-01-06",
                selected_bonuses=["Outdoors"],
            ),
            participation["user_id"],
        )
        assert result.activity.points_earned == 25

        updated = await AdminActivityService(db).edit_activity(
            result.activity.id, AdminEditInput(notes="in the park", comment="fix note"), admin_id=ADMIN_ID
        )

        assert updated["points_earned"] == 25
        assert updated["bonus_points"] == 5
        assert (await _participation(db, participation))["total_points"] == 55

    async def test_note_edit_keeps_override(self, db, logged):
        _, participation, activity_id = logged
        service = AdminActivityService(db)
        await service.admin_override(activity_id, 100, "Verified GPS trace", admin_id=ADMIN_ID)

        updated = await service.edit_activity(activity_id, AdminEditInput(notes="typo", comment="fix note"))

        assert updated["points_earned"] == 100
        assert updated["points_overridden"] is True
        assert (await _participation(db, participation))["total_points"] == 100
