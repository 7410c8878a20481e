# backend/app/services/leaderboards/leaderboard_service.py
# Classements (cumulé, hebdomadaire, par catégorie) : projections en lecture seule sur l'état persisté.

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.dto.leaderboard import (
    CategoryLeaderboard,
    CumulativeCategoryBoard,
    GenderedCategoryLeaderboard,
    LeaderboardEntry,
    LeaderboardPage,
    WeeklyCategoryBoard,
)
from app.core.errors import ChallengeOrTypeNotFound
from app.models.challenge import Challenge
from app.services.streaks.week_calculator import clamp_week, total_weeks, week_date_range

from .cursor import SortKey, decode_cursor, encode_cursor, sort_tuple

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100
WEEKLY_CATEGORY_TOP = 10
CUMULATIVE_CATEGORY_TOP = 5
UNCATEGORIZED_ID = "uncategorized"
UNCATEGORIZED_NAME = "Other"

USER_PROJECTION = {"username": 1, "name": 1, "avatar_url": 1, "gender": 1}


class LeaderboardService:
    """Requêtes de classement.

    Description:
        Aucune écriture : les totaux cumulés sont lus dans `participations`, les points
        hebdomadaires et par catégorie sont sommés depuis `activities` (non supprimées).
        Chaque classement est lu dans une seule collection (lecture cohérente d'un document
        à la fois, sans état intermédiaire activité/agrégat).
        Ordre de départage stable : points desc, `joined_at` asc, `_id` asc.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def _challenge(self, challenge_id: ObjectId) -> Challenge:
        doc = await self.db.challenges.find_one({"_id": challenge_id})
        if doc is None:
            raise ChallengeOrTypeNotFound("Challenge not found", details={"challenge_id": str(challenge_id)})
        return Challenge.model_validate(doc)

    async def _users(self, user_ids: Iterable[ObjectId]) -> dict[ObjectId, dict[str, Any]]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        cursor = self.db.users.find({"_id": {"$in": ids}}, USER_PROJECTION)
        return {doc["_id"]: doc async for doc in cursor}

    async def _participations(self, challenge_id: ObjectId) -> dict[ObjectId, dict[str, Any]]:
        cursor = self.db.participations.find({"challenge_id": challenge_id})
        return {doc["user_id"]: doc async for doc in cursor}

    def _entry(
        self, rank: int, participation: dict[str, Any], user: Optional[dict[str, Any]], points: float
    ) -> LeaderboardEntry:
        user = user or {}
        return LeaderboardEntry(
            rank=rank,
            user_id=str(participation["user_id"]),
            username=user.get("username"),
            name=user.get("name"),
            avatar_url=user.get("avatar_url"),
            gender=user.get("gender"),
            points=points,
            current_streak=participation.get("current_streak", 0),
            modifier_factor=participation.get("modifier_factor", 1.0),
            joined_at=participation.get("joined_at"),
        )

    @staticmethod
    def _page_size(limit: Optional[int]) -> int:
        if not limit or limit < 1:
            return DEFAULT_PAGE_SIZE
        return min(limit, MAX_PAGE_SIZE)

    # ------------------------------------------------------------------ cumulé

    async def cumulative(
        self, challenge_id: ObjectId, limit: Optional[int] = None, cursor: Optional[str] = None
    ) -> LeaderboardPage:
        """Classement cumulé paginé par clé (keyset).

        Args:
            challenge_id (ObjectId): Challenge.
            limit (int | None): Taille de page (défaut 25, max 100).
            cursor (str | None): Curseur renvoyé par la page précédente.

        Returns:
            LeaderboardPage: Entrées, `next_cursor` et `is_done`.
        """
        await self._challenge(challenge_id)
        size = self._page_size(limit)

        query: dict[str, Any] = {"challenge_id": challenge_id}
        rank_offset = 0
        if cursor:
            last, rank_offset = decode_cursor(cursor)
            query["$or"] = [
                {"total_points": {"$lt": last.points}},
                {"total_points": last.points, "joined_at": {"$gt": last.joined_at}},
                {"total_points": last.points, "joined_at": last.joined_at, "_id": {"$gt": last.id}},
            ]

        cursor = self.db.participations.find(
            query, sort=[("total_points", -1), ("joined_at", 1), ("_id", 1)], limit=size + 1
        )
        docs = [doc async for doc in cursor]
        has_more = len(docs) > size
        docs = docs[:size]
        users = await self._users(d["user_id"] for d in docs)

        entries = [
            self._entry(rank_offset + i + 1, doc, users.get(doc["user_id"]), float(doc.get("total_points") or 0.0))
            for i, doc in enumerate(docs)
        ]
        next_cursor = None
        if has_more and docs:
            tail = docs[-1]
            key = SortKey(float(tail.get("total_points") or 0.0), tail.get("joined_at"), tail["_id"])
            next_cursor = encode_cursor(key, rank_offset + len(docs))
        return LeaderboardPage(
            challenge_id=str(challenge_id), entries=entries, next_cursor=next_cursor, is_done=not has_more
        )

    # ------------------------------------------------------------------ hebdo

    async def _weekly_points(
        self, challenge: Challenge, week: int, by_type: bool = False
    ) -> list[dict[str, Any]]:
        start, end = week_date_range(challenge.start_date, week)
        group_id: Any = {"user_id": "$user_id", "activity_type_id": "$activity_type_id"} if by_type else "$user_id"
        pipeline = [
            {
                "$match": {
                    "challenge_id": challenge.id,
                    "deleted_at": None,
                    "logged_date": {"$gte": start.isoformat(), "$lt": end.isoformat()},
                }
            },
            {"$group": {"_id": group_id, "points": {"$sum": "$points_earned"}}},
        ]
        return [doc async for doc in self.db.activities.aggregate(pipeline)]

    def _rank_sums(
        self,
        points_by_user: dict[ObjectId, float],
        participations: dict[ObjectId, dict[str, Any]],
    ) -> list[tuple[SortKey, dict[str, Any]]]:
        ranked = []
        for user_id, points in points_by_user.items():
            participation = participations.get(user_id)
            if participation is None:
                continue
            ranked.append((SortKey(points, participation.get("joined_at"), participation["_id"]), participation))
        ranked.sort(key=lambda item: sort_tuple(item[0]))
        return ranked

    async def weekly(
        self,
        challenge_id: ObjectId,
        week: int,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> LeaderboardPage:
        """Classement d'une semaine (semaine ramenée dans les bornes du challenge)."""
        challenge = await self._challenge(challenge_id)
        week = clamp_week(week, total_weeks(challenge.duration_days))
        size = self._page_size(limit)

        sums = await self._weekly_points(challenge, week)
        participations = await self._participations(challenge_id)
        ranked = self._rank_sums({doc["_id"]: float(doc["points"] or 0.0) for doc in sums}, participations)

        rank_offset = 0
        if cursor:
            last, rank_offset = decode_cursor(cursor)
            ranked = [item for item in ranked if item[0].comes_after(last)]

        page, has_more = ranked[:size], len(ranked) > size
        users = await self._users(p["user_id"] for _, p in page)
        entries = [
            self._entry(rank_offset + i + 1, participation, users.get(participation["user_id"]), key.points)
            for i, (key, participation) in enumerate(page)
        ]
        next_cursor = encode_cursor(page[-1][0], rank_offset + len(page)) if has_more and page else None
        return LeaderboardPage(
            challenge_id=str(challenge_id), week=week, entries=entries, next_cursor=next_cursor, is_done=not has_more
        )

    # ------------------------------------------------------------------ catégories

    async def _category_buckets(self, challenge_id: ObjectId) -> tuple[dict[str, str], dict[ObjectId, str]]:
        """Catégories affichées et rattachement type -> catégorie.

        Returns:
            tuple: (`{category_key: nom}`, `{activity_type_id: category_key}`). Les types sans
            catégorie tombent dans « Other » ; ceux d'une catégorie non affichée sont exclus,
            comme les types système.
        """
        categories = {}
        cursor = self.db.categories.find({"$or": [{"challenge_id": challenge_id}, {"challenge_id": None}]})
        async for doc in cursor:
            if doc.get("show_in_category_leaderboard"):
                categories[str(doc["_id"])] = doc.get("name") or ""

        type_to_category = {}
        async for doc in self.db.activity_types.find({"challenge_id": challenge_id, "deleted_at": None}):
            if doc.get("is_system"):
                continue
            category_id = doc.get("category_id")
            if category_id is None:
                type_to_category[doc["_id"]] = UNCATEGORIZED_ID
            elif str(category_id) in categories:
                type_to_category[doc["_id"]] = str(category_id)
        categories[UNCATEGORIZED_ID] = UNCATEGORIZED_NAME
        return categories, type_to_category

    @staticmethod
    def _ordered_categories(categories: dict[str, str]) -> list[str]:
        named = sorted((k for k in categories if k != UNCATEGORIZED_ID), key=lambda k: categories[k].lower())
        return named + [UNCATEGORIZED_ID]

    async def weekly_by_category(self, challenge_id: ObjectId, week: int) -> WeeklyCategoryBoard:
        """Top 10 hebdomadaire par catégorie affichée (catégories vides omises, « Other » en dernier)."""
        challenge = await self._challenge(challenge_id)
        week = clamp_week(week, total_weeks(challenge.duration_days))
        categories, type_to_category = await self._category_buckets(challenge_id)

        per_category: dict[str, dict[ObjectId, float]] = defaultdict(lambda: defaultdict(float))
        for doc in await self._weekly_points(challenge, week, by_type=True):
            category = type_to_category.get(doc["_id"]["activity_type_id"])
            if category is not None:
                per_category[category][doc["_id"]["user_id"]] += float(doc["points"] or 0.0)

        participations = await self._participations(challenge_id)
        users = await self._users(u for sums in per_category.values() for u in sums)
        boards = []
        for category in self._ordered_categories(categories):
            ranked = self._rank_sums(per_category.get(category, {}), participations)[:WEEKLY_CATEGORY_TOP]
            if not ranked:
                continue
            boards.append(
                CategoryLeaderboard(
                    category_id=category,
                    category_name=categories[category],
                    entries=[
                        self._entry(i + 1, p, users.get(p["user_id"]), key.points)
                        for i, (key, p) in enumerate(ranked)
                    ],
                )
            )
        return WeeklyCategoryBoard(challenge_id=str(challenge_id), week=week, categories=boards)

    async def cumulative_by_category(self, challenge_id: ObjectId) -> CumulativeCategoryBoard:
        """Top 5 cumulé par catégorie, segmenté femmes / hommes / genre non renseigné."""
        await self._challenge(challenge_id)
        categories, type_to_category = await self._category_buckets(challenge_id)

        pipeline = [
            {"$match": {"challenge_id": challenge_id, "deleted_at": None}},
            {
                "$group": {
                    "_id": {"user_id": "$user_id", "activity_type_id": "$activity_type_id"},
                    "points": {"$sum": "$points_earned"},
                }
            },
        ]
        per_category: dict[str, dict[ObjectId, float]] = defaultdict(lambda: defaultdict(float))
        async for doc in self.db.activities.aggregate(pipeline):
            category = type_to_category.get(doc["_id"]["activity_type_id"])
            if category is not None:
                per_category[category][doc["_id"]["user_id"]] += float(doc["points"] or 0.0)

        participations = await self._participations(challenge_id)
        users = await self._users(u for sums in per_category.values() for u in sums)
        boards = []
        for category in self._ordered_categories(categories):
            sums = per_category.get(category)
            if not sums:
                continue
            split: dict[str, dict[ObjectId, float]] = {"female": {}, "male": {}, None: {}}
            for user_id, points in sums.items():
                gender = (users.get(user_id) or {}).get("gender")
                split[gender if gender in ("female", "male") else None][user_id] = points

            def top(bucket: dict[ObjectId, float]) -> list[LeaderboardEntry]:
                ranked = self._rank_sums(bucket, participations)[:CUMULATIVE_CATEGORY_TOP]
                return [self._entry(i + 1, p, users.get(p["user_id"]), key.points) for i, (key, p) in enumerate(ranked)]

            boards.append(
                GenderedCategoryLeaderboard(
                    category_id=category,
                    category_name=categories[category],
                    women=top(split["female"]),
                    men=top(split["male"]),
                    no_gender=top(split[None]),
                )
            )
        return CumulativeCategoryBoard(challenge_id=str(challenge_id), categories=boards)
