# backend/app/services/leaderboards/cursor.py
# Curseur de pagination opaque (base64 d'un JSON) portant la dernière clé de tri et le rang atteint.

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime
from typing import Any, NamedTuple, Optional

from bson import ObjectId
from bson.errors import InvalidId

from app.core.errors import InvalidCursor


class SortKey(NamedTuple):
    """Clé de tri d'un classement : points desc, puis `joined_at` asc, puis `_id` asc."""

    points: float
    joined_at: Optional[datetime]
    id: ObjectId

    def comes_after(self, other: "SortKey") -> bool:
        """True si `self` est classé strictement après `other`."""
        if self.points != other.points:
            return self.points < other.points
        if self.joined_at != other.joined_at:
            if self.joined_at is None:
                return True
            if other.joined_at is None:
                return False
            return self.joined_at > other.joined_at
        return str(self.id) > str(other.id)


def sort_tuple(key: SortKey) -> tuple:
    """Tuple utilisable par `sorted` (ordre croissant = meilleur en premier)."""
    joined = key.joined_at.isoformat() if key.joined_at is not None else "9999"
    return (-key.points, joined, str(key.id))


def encode_cursor(key: SortKey, rank: int) -> str:
    payload = {
        "p": key.points,
        "j": key.joined_at.isoformat() if key.joined_at is not None else None,
        "i": str(key.id),
        "r": rank,
    }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> tuple[SortKey, int]:
    """Décoder un curseur.

    Returns:
        tuple[SortKey, int]: Dernière clé servie et son rang.

    Raises:
        InvalidCursor: Curseur illisible.
    """
    try:
        payload: dict[str, Any] = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        joined = datetime.fromisoformat(payload["j"]) if payload.get("j") else None
        key = SortKey(float(payload["p"]), joined, ObjectId(payload["i"]))
        return key, int(payload["r"])
    except (binascii.Error, ValueError, KeyError, TypeError, InvalidId, UnicodeError) as e:
        raise InvalidCursor("Invalid pagination cursor") from e
