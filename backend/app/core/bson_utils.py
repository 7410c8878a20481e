# backend/app/core/bson_utils.py
# ObjectId compatible Pydantic v2 (chaîne hex en JSON, ObjectId natif côté Mongo) et modèle de base des documents.
from __future__ import annotations

from typing import Any, Optional
from bson import ObjectId
from pydantic import BaseModel, Field, ConfigDict, GetCoreSchemaHandler
from pydantic_core import core_schema
from pydantic.json_schema import JsonSchemaValue, GetJsonSchemaHandler


class PyObjectId(ObjectId):
    """Identifiant Mongo utilisable dans les modèles et les paramètres de route.

    Description:
        - entrée : chaîne hex de 24 caractères ou `ObjectId`
        - sortie JSON : chaîne ; `model_dump()` en mode Python garde l'`ObjectId`
          (documents réinsérables tels quels dans Mongo)
    """

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.json_or_python_schema(
            json_schema=core_schema.no_info_plain_validator_function(cls._validate),
            python_schema=core_schema.no_info_plain_validator_function(cls._validate),
            serialization=core_schema.plain_serializer_function_ser_schema(str, when_used="json"),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, core_schema_obj: core_schema.CoreSchema, handler: GetJsonSchemaHandler) -> JsonSchemaValue:
        """Schéma OpenAPI : chaîne au format ObjectId."""
        return {
            "type": "string",
            "format": "objectid",
            "pattern": "^[a-fA-F0-9]{24}$",
            "examples": ["65f1c0ffee0000000000beef"],
        }

    @classmethod
    def _validate(cls, v: Any) -> ObjectId:
        """Convertir en ObjectId.

        Raises:
            ValueError: Valeur qui n'est ni un ObjectId ni une chaîne hex valide.
        """
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")


def to_object_id(value: Any) -> Optional[ObjectId]:
    """ObjectId depuis une valeur quelconque (claim JWT, métadonnée), None si invalide."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


class MongoBaseModel(BaseModel):
    """Modèle de document Mongo : `_id` exposé sous le nom `id`."""

    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


def dump_mongo(model: BaseModel, *, exclude_none: bool = True) -> dict:
    """Document prêt pour `insert_one` (alias `_id`, champs None omis par défaut)."""
    return model.model_dump(by_alias=True, exclude_none=exclude_none)
