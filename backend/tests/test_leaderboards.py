"""Tests des classements (cumulé paginé, hebdomadaire, par catégorie)."""

import datetime as dt

import pytest
from bson import ObjectId

from app.core.errors import ChallengeOrTypeNotFound, InvalidCursor
from app.services.leaderboards.cursor import SortKey, decode_cursor, encode_cursor
from app.services.leaderboards.leaderboard_service import LeaderboardService


async def _activity(db, challenge, participation, activity_type, day, points, deleted=False):
    await db.activities.insert_one(
        {
            "challenge_id": challenge["_id"],
            "user_id": participation["user_id"],
            "activity_type_id": activity_type["_id"],
            "logged_date": day,
            "points_earned": points,
            "deleted_at": dt.datetime(2024, 1, 20) if deleted else None,
        }
    )


class TestCursor:
    def test_encode_decode(self):
        key = SortKey(42.5, dt.datetime(2024, 1, 1, 8, 30), ObjectId())
        assert decode_cursor(encode_cursor(key, 25)) == (key, 25)

    @pytest.mark.parametrize("cursor", ["not-base64!", "eyJwIjogMX0=", ""])
    def test_garbage_is_rejected(self, cursor):
        with pytest.raises(InvalidCursor):
            decode_cursor(cursor)

    def test_comes_after(self):
        early, late = dt.datetime(2024, 1, 1), dt.datetime(2024, 1, 2)
        a = SortKey(10, early, ObjectId())
        assert SortKey(5, early, ObjectId()).comes_after(a)
        assert SortKey(10, late, ObjectId()).comes_after(a)
        assert not SortKey(11, late, ObjectId()).comes_after(a)


class TestCumulative:
    async def test_pages_cover_everyone_in_order(self, db, make_challenge, make_user, join):
        challenge = await make_challenge()
        totals = [50, 80, 80, 20, 80]
        participations = []
        for i, total in enumerate(totals):
            user = await make_user(f"user{i}")
            participations.append(await join(challenge, user_id=user["_id"], total_points=total))
        service = LeaderboardService(db)

        entries, cursor, pages = [], None, 0
        while True:
            page = await service.cumulative(challenge["_id"], limit=2, cursor=cursor)
            entries.extend(page.entries)
            pages += 1
            if page.is_done:
                assert page.next_cursor is None
                break
            cursor = page.next_cursor

        assert pages == 3
        assert [e.rank for e in entries] == [1, 2, 3, 4, 5]
        assert [e.points for e in entries] == [80, 80, 80, 50, 20]
        # Ex-aequo : inscription la plus ancienne d'abord
        expected = [participations[i]["user_id"] for i in (1, 2, 4, 0, 3)]
        assert [e.user_id for e in entries] == [str(u) for u in expected]
        assert entries[0].username == "user1"

    async def test_single_page(self, db, make_challenge, join):
        challenge = await make_challenge()
        await join(challenge, total_points=10, modifier_factor=1.5, current_streak=4)

        page = await LeaderboardService(db).cumulative(challenge["_id"])

        assert page.is_done
        [entry] = page.entries
        assert entry.points == 10
        assert entry.modifier_factor == 1.5
        assert entry.current_streak == 4

    async def test_unknown_challenge(self, db):
        with pytest.raises(ChallengeOrTypeNotFound):
            await LeaderboardService(db).cumulative(ObjectId())


class TestWeekly:
    async def test_sums_only_the_requested_week(self, db, make_challenge, make_type, join):
        challenge = await make_challenge()
        running = await make_type(challenge)
        alice, bob = await join(challenge), await join(challenge)
        await _activity(db, challenge, alice, running, "2024-01-07", 100)
        await _activity(db, challenge, alice, running, "2024-01-08", 10)
        await _activity(db, challenge, bob, running, "2024-01-09", 15)
        await _activity(db, challenge, bob, running, "2024-01-14", 5)
        await _activity(db, challenge, alice, running, "2024-01-10", 50, deleted=True)

        page = await LeaderboardService(db).weekly(challenge["_id"], 2)

        assert page.week == 2
        assert [(e.user_id, e.points) for e in page.entries] == [
            (str(bob["user_id"]), 20),
            (str(alice["user_id"]), 10),
        ]

    async def test_week_is_clamped(self, db, make_challenge):
        challenge = await make_challenge()
        service = LeaderboardService(db)
        assert (await service.weekly(challenge["_id"], 99)).week == 5
        assert (await service.weekly(challenge["_id"], -3)).week == 1

    async def test_weekly_pagination(self, db, make_challenge, make_type, join):
        challenge = await make_challenge()
        running = await make_type(challenge)
        for points in (30, 10, 20):
            await _activity(db, challenge, await join(challenge), running, "2024-01-02", points)
        service = LeaderboardService(db)

        first = await service.weekly(challenge["_id"], 1, limit=2)
        second = await service.weekly(challenge["_id"], 1, limit=2, cursor=first.next_cursor)

        assert [e.points for e in first.entries] == [30, 20]
        assert not first.is_done
        assert [(e.rank, e.points) for e in second.entries] == [(3, 10)]
        assert second.is_done


@pytest.fixture
async def categorized(db, make_challenge, make_type, make_user, join):
    challenge = await make_challenge()
    cardio = (await db.categories.insert_one(
        {"challenge_id": challenge["_id"], "name": "Cardio", "show_in_category_leaderboard": True}
    )).inserted_id
    hidden = (await db.categories.insert_one(
        {"challenge_id": challenge["_id"], "name": "Mindfulness", "show_in_category_leaderboard": False}
    )).inserted_id
    strength = (await db.categories.insert_one(
        {"challenge_id": None, "name": "Strength", "show_in_category_leaderboard": True}
    )).inserted_id
    completion = {"type": "completion", "fixed_points": 10}
    types = {
        "running": await make_type(challenge, "Running", category_id=cardio),
        "yoga": await make_type(challenge, "Yoga", completion, category_id=hidden),
        "pushups": await make_type(challenge, "Push-ups", completion, category_id=strength),
        "misc": await make_type(challenge, "Misc", completion),
        "bonus": await make_type(challenge, "Achievement Bonus", {"type": "variable"}, is_system=True),
    }
    people = {}
    for name, gender in (("ann", "female"), ("bob", "male"), ("cam", None)):
        user = await make_user(name, gender=gender)
        people[name] = await join(challenge, user_id=user["_id"])
    return challenge, types, people


class TestCategories:
    async def test_weekly_by_category(self, db, categorized):
        challenge, types, people = categorized
        await _activity(db, challenge, people["ann"], types["running"], "2024-01-02", 40)
        await _activity(db, challenge, people["bob"], types["running"], "2024-01-03", 60)
        await _activity(db, challenge, people["cam"], types["yoga"], "2024-01-03", 10)
        await _activity(db, challenge, people["cam"], types["misc"], "2024-01-04", 10)
        await _activity(db, challenge, people["ann"], types["bonus"], "2024-01-04", 500)

        board = await LeaderboardService(db).weekly_by_category(challenge["_id"], 1)

        assert [c.category_name for c in board.categories] == ["Cardio", "Other"]
        cardio, other = board.categories
        assert [e.username for e in cardio.entries] == ["bob", "ann"]
        assert other.category_id == "uncategorized"
        assert [(e.username, e.points) for e in other.entries] == [("cam", 10)]

    async def test_cumulative_by_category_split_by_gender(self, db, categorized):
        challenge, types, people = categorized
        await _activity(db, challenge, people["ann"], types["pushups"], "2024-01-02", 10)
        await _activity(db, challenge, people["ann"], types["pushups"], "2024-01-12", 10)
        await _activity(db, challenge, people["bob"], types["pushups"], "2024-01-03", 15)
        await _activity(db, challenge, people["cam"], types["pushups"], "2024-01-05", 5)

        board = await LeaderboardService(db).cumulative_by_category(challenge["_id"])

        [strength] = board.categories
        assert strength.category_name == "Strength"
        assert [(e.username, e.points, e.rank) for e in strength.women] == [("ann", 20, 1)]
        assert [e.username for e in strength.men] == ["bob"]
        assert [e.username for e in strength.no_gender] == ["cam"]
