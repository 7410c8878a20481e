# backend/app/models/_shared.py
# Types communs utilisés par plusieurs modèles (dates « date-only », horodatages).

from __future__ import annotations

import datetime as dt
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer

from app.core.utils import parse_date_only, utcnow

# Date calendaire stockée en base sous forme "YYYY-MM-DD" (ordre lexicographique = ordre chronologique).
DateOnly = Annotated[
    dt.date,
    BeforeValidator(parse_date_only),
    PlainSerializer(lambda d: d.isoformat(), return_type=str),
]


class Timestamped(BaseModel):
    """Horodatages de création / mise à jour (UTC).

    Attributes:
        created_at (datetime): Création.
        updated_at (datetime | None): Dernière modification.
    """

    created_at: dt.datetime = Field(default_factory=lambda: utcnow())
    updated_at: dt.datetime | None = None

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)
