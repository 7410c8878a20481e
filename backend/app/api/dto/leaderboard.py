# backend/app/api/dto/leaderboard.py
# DTOs de sortie des classements (cumulé, hebdomadaire, par catégorie).

from __future__ import annotations

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field

Gender = Literal["male", "female"]


class LeaderboardEntry(BaseModel):
    """Ligne de classement.

    Attributes:
        rank (int): Rang (1-based, continu d'une page à l'autre).
        points (float): Total cumulé ou points de la semaine selon le classement.
        modifier_factor (float): Facteur exposé tel quel (jamais appliqué au total stocké).
    """

    rank: int
    user_id: str
    username: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    gender: Optional[Gender] = None
    points: float
    current_streak: int = 0
    modifier_factor: float = 1.0
    joined_at: Optional[dt.datetime] = None


class LeaderboardPage(BaseModel):
    challenge_id: str
    week: Optional[int] = None
    entries: list[LeaderboardEntry] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    is_done: bool = True


class CategoryLeaderboard(BaseModel):
    """Top d'une catégorie pour une semaine (`category_id = "uncategorized"` pour « Other »)."""

    category_id: str
    category_name: str
    entries: list[LeaderboardEntry] = Field(default_factory=list)


class GenderedCategoryLeaderboard(BaseModel):
    """Top cumulé d'une catégorie, segmenté par genre."""

    category_id: str
    category_name: str
    women: list[LeaderboardEntry] = Field(default_factory=list)
    men: list[LeaderboardEntry] = Field(default_factory=list)
    no_gender: list[LeaderboardEntry] = Field(default_factory=list)


class WeeklyCategoryBoard(BaseModel):
    challenge_id: str
    week: int
    categories: list[CategoryLeaderboard] = Field(default_factory=list)


class CumulativeCategoryBoard(BaseModel):
    challenge_id: str
    categories: list[GenderedCategoryLeaderboard] = Field(default_factory=list)
