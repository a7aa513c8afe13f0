"""Shared base for models that are persisted as store documents."""

from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


D = TypeVar("D", bound="DocumentModel")


def _plain(value: Any) -> Any:
    """Replace enum members with their values, recursively."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


class GeoPoint(BaseModel):
    """A latitude/longitude pair."""
    lat: float
    lng: float


class CamelModel(BaseModel):
    """Model stored under camelCase field names."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "ignore",
    }


class DocumentModel(CamelModel):
    """Base model for a whole document.

    The document id lives in the document path, not in the document body, so
    `id` is excluded when serializing.
    """

    id: str = ""

    @classmethod
    def from_document(cls: Type[D], doc_id: str, data: Optional[Dict[str, Any]]) -> D:
        """Build a model from a document id and its raw field map."""
        return cls.model_validate({**(data or {}), "id": doc_id})

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the camelCase field map written to the store."""
        return _plain(self.model_dump(by_alias=True, exclude_none=True, exclude={"id"}))
