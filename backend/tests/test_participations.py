"""Tests de l'inscription aux challenges (upsert idempotent, paiement, challenges privés)."""

import asyncio

import pytest
from bson import ObjectId

from app.api.dto.activity import LogActivityInput
from app.core.errors import ChallengeOrTypeNotFound, NotParticipating, PaymentRequired, PrivateChallenge
from app.services.ingestion.activity_ingestion_service import ActivityIngestionService
from app.services.participation_service import ParticipationService


class TestJoin:
    async def test_join_creates_participation(self, db, make_challenge):
        challenge = await make_challenge()
        user_id = ObjectId()

        result = await ParticipationService(db).join(challenge["_id"], user_id)

        assert result.created is True
        assert result.participation.user_id == user_id
        assert result.participation.total_points == 0
        assert result.participation.payment_status == "not_required"
        stored = await db.participations.find_one({"challenge_id": challenge["_id"], "user_id": user_id})
        assert stored["joined_at"] is not None
        assert stored["current_streak"] == 0

    async def test_paid_challenge_starts_unpaid(self, db, make_challenge):
        challenge = await make_challenge(payment_required=True)

        result = await ParticipationService(db).join(challenge["_id"], ObjectId())

        assert result.participation.payment_status == "unpaid"

    async def test_second_join_is_a_noop(self, db, make_challenge):
        challenge = await make_challenge()
        user_id = ObjectId()
        service = ParticipationService(db)
        first = await service.join(challenge["_id"], user_id)
        await db.participations.update_one({"_id": first.participation.id}, {"$set": {"total_points": 42}})

        again = await service.join(challenge["_id"], user_id)

        assert again.created is False
        assert again.participation.id == first.participation.id
        assert again.participation.joined_at == first.participation.joined_at
        assert again.participation.total_points == 42
        assert await db.participations.count_documents({"user_id": user_id}) == 1

    async def test_concurrent_joins_create_one_row(self, db, make_challenge):
        challenge = await make_challenge()
        user_id = ObjectId()
        service = ParticipationService(db)

        results = await asyncio.gather(*(service.join(challenge["_id"], user_id) for _ in range(3)))

        assert sum(r.created for r in results) == 1
        assert await db.participations.count_documents({"user_id": user_id}) == 1

    async def test_unknown_challenge(self, db):
        with pytest.raises(ChallengeOrTypeNotFound):
            await ParticipationService(db).join(ObjectId(), ObjectId())

    async def test_private_challenge_needs_an_admin(self, db, make_challenge):
        challenge = await make_challenge(visibility="private")
        user_id = ObjectId()
        service = ParticipationService(db)

        with pytest.raises(PrivateChallenge):
            await service.join(challenge["_id"], user_id)
        assert await db.participations.count_documents({}) == 0

        admin_id = ObjectId()
        result = await service.join(challenge["_id"], user_id, invited_by=admin_id)
        assert result.created is True
        stored = await db.participations.find_one({"_id": result.participation.id})
        assert stored["invited_by"] == admin_id

    async def test_get_requires_participation(self, db, make_challenge):
        challenge = await make_challenge()
        with pytest.raises(NotParticipating):
            await ParticipationService(db).get(challenge["_id"], ObjectId())


class TestJoinThenLog:
    async def test_joined_user_can_log(self, db, make_challenge, make_type):
        challenge = await make_challenge()
        running = await make_type(challenge)
        user_id = ObjectId()
        await ParticipationService(db).join(challenge["_id"], user_id)

        result = await ActivityIngestionService(db).log_activity(
            LogActivityInput(
                challenge_id=challenge["_id"], activity_type_id=running["_id"], logged_date="2024-01-05",
                metrics={"miles": 4},
            ),
            user_id,
        )

        assert result.delta == 30
        stored = await db.participations.find_one({"challenge_id": challenge["_id"], "user_id": user_id})
        assert stored["total_points"] == 30

    async def test_unpaid_join_cannot_log(self, db, make_challenge, make_type):
        challenge = await make_challenge(payment_required=True)
        running = await make_type(challenge)
        user_id = ObjectId()
        await ParticipationService(db).join(challenge["_id"], user_id)

        with pytest.raises(PaymentRequired):
            await ActivityIngestionService(db).log_activity(
                LogActivityInput(
                    challenge_id=challenge["_id"], activity_type_id=running["_id"], logged_date="2024-01-05",
                    metrics={"miles": 4},
                ),
                user_id,
            )
