# app/db/seed_indexes.py
"""
Idempotent index seeding for March Fitness.

- Works on the database handed in (motor), so it can run in the FastAPI lifespan.
- Matching by KEYS: if an index with same keys exists, keep it when options match.
- If options differ (unique / partialFilterExpression / collation), drop & recreate.
- Activities: unique partial index on the external-source key (idempotent Strava upserts).
- Participations: one row per (user, challenge).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.collation import Collation
from pymongo.operations import IndexModel

# Direction can be 1/-1 for asc/desc
Direction = Union[int, str]
KeySpec = List[Tuple[str, Direction]]

# Case-insensitive (accent-sensitive) collation for users
COLLATION_CI = Collation(locale="en", strength=2)


def _normalize_key_from_mongo(key_doc: Dict[str, Any]) -> KeySpec:
    """Mongo returns an OrderedDict-like mapping; convert to list of (field, direction)."""
    norm: KeySpec = []
    for k, v in key_doc.items():
        if isinstance(v, (int, float)):
            norm.append((k, int(v)))
        else:
            norm.append((k, str(v)))
    return norm


async def _find_existing_by_keys(coll, keys: KeySpec) -> Optional[Dict[str, Any]]:
    async for ix in coll.list_indexes():
        if 'key' in ix and _normalize_key_from_mongo(ix['key']) == keys:
            return ix
    return None


def _collation_to_dict(c: Optional[Collation]) -> Optional[Dict[str, Any]]:
    if c is None:
        return None
    return {k: v for k, v in c.document.items() if k in ('locale', 'strength')}


def _same_options(existing: Dict[str, Any], *, unique: Optional[bool], partial: Optional[Dict[str, Any]], collation: Optional[Collation]) -> bool:
    if bool(unique) != bool(existing.get('unique', False)):
        return False
    if (partial or None) != (existing.get('partialFilterExpression') or None):
        return False
    ex_collation = existing.get('collation')
    if ex_collation:
        ex_collation = {k: v for k, v in ex_collation.items() if k in ('locale', 'strength')}
    return (_collation_to_dict(collation) or None) == (ex_collation or None)


async def ensure_index(db: AsyncIOMotorDatabase, coll_name: str, keys: KeySpec, *, name: Optional[str] = None,
                       unique: Optional[bool] = None,
                       partial: Optional[Dict[str, Any]] = None,
                       collation: Optional[Collation] = None) -> None:
    coll = db[coll_name]
    existing = await _find_existing_by_keys(coll, keys)
    if existing and _same_options(existing, unique=unique, partial=partial, collation=collation):
        return
    if existing:
        await coll.drop_index(existing['name'])
    opts: Dict[str, Any] = {}
    if name:
        opts['name'] = name
    if unique is not None:
        opts['unique'] = unique
    if partial:
        opts['partialFilterExpression'] = partial
    if collation is not None:
        opts['collation'] = collation
    await coll.create_indexes([IndexModel(keys, **opts)])


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    # ---------- users ----------
    await ensure_index(db, 'users', [('email', ASCENDING)], name='uniq_email_ci', unique=True, collation=COLLATION_CI)

    # ---------- challenges / catalogue ----------
    await ensure_index(db, 'activity_types', [('challenge_id', ASCENDING), ('display_order', ASCENDING)])
    await ensure_index(db, 'categories', [('challenge_id', ASCENDING)])
    await ensure_index(db, 'achievements', [('challenge_id', ASCENDING)])

    # ---------- participations ----------
    await ensure_index(db, 'participations', [('user_id', ASCENDING), ('challenge_id', ASCENDING)], name='uniq_participation', unique=True)
    # Keyset pagination of the cumulative leaderboard
    await ensure_index(db, 'participations', [('challenge_id', ASCENDING), ('total_points', DESCENDING), ('joined_at', ASCENDING), ('_id', ASCENDING)], name='leaderboard_keyset')

    # ---------- activities ----------
    await ensure_index(db, 'activities', [('user_id', ASCENDING), ('challenge_id', ASCENDING), ('logged_date', ASCENDING)], name='by_user_challenge_date')
    await ensure_index(db, 'activities', [('challenge_id', ASCENDING), ('logged_date', ASCENDING)], name='by_challenge_date')
    await ensure_index(db, 'activities', [('external_source', ASCENDING), ('external_id', ASCENDING)], name='by_external_id')
    await ensure_index(
        db, 'activities',
        [('challenge_id', ASCENDING), ('user_id', ASCENDING), ('external_source', ASCENDING), ('external_id', ASCENDING)],
        name='uniq_external_activity', unique=True, partial={'external_id': {'$type': 'string'}},
    )

    # ---------- ledger / audit ----------
    await ensure_index(db, 'point_ledger', [('challenge_id', ASCENDING), ('user_id', ASCENDING), ('created_at', ASCENDING)])
    await ensure_index(db, 'admin_audit', [('activity_id', ASCENDING), ('created_at', DESCENDING)])
    await ensure_index(db, 'user_achievements', [('user_id', ASCENDING), ('achievement_id', ASCENDING)])
    await ensure_index(db, 'user_achievements', [('grant_key', ASCENDING)], name='uniq_grant_key', unique=True)

    # ---------- integrations ----------
    await ensure_index(db, 'user_integrations', [('user_id', ASCENDING), ('service', ASCENDING)], name='uniq_user_service', unique=True)
    await ensure_index(db, 'user_integrations', [('service', ASCENDING), ('athlete_id', ASCENDING)])
    await ensure_index(db, 'integration_mappings', [('challenge_id', ASCENDING), ('service', ASCENDING), ('external_type', ASCENDING)])
    await ensure_index(db, 'webhook_payloads', [('created_at', DESCENDING)])
