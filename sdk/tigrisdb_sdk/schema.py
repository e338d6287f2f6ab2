"""
Collection schemas for TigrisDB SDK.

This module provides the schema sources a database can apply:
- CollectionModel: A pydantic document model bound to a collection name
- ModelSchema: Schema document derived from a CollectionModel
- JSONSchema: Schema document read from a file

Documents are pydantic models. A collection's schema document is a JSON
object with the collection ``name``, its ``properties`` and an optional
``primary_key``.

Example:
    >>> class Order(BaseModel):
    ...     id: int
    ...     item: str
    >>>
    >>> orders = CollectionModel(name="orders", model=Order, primary_key=("id",))
    >>> ModelSchema(orders).name
    'orders'
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel

from .validate import validate_or_raise

M = TypeVar("M", bound=BaseModel)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def default_collection_name(model: type[BaseModel]) -> str:
    """Derive a collection name: snake_case plural of the class name.

    ``OrderItem`` becomes ``order_items``, ``Company`` becomes ``companies``.
    """
    snake = _CAMEL_BOUNDARY.sub("_", model.__name__).lower()
    if re.search(r"[^aeiou]y$", snake):
        return snake[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", snake):
        return snake + "es"
    return snake + "s"


@dataclass(frozen=True)
class CollectionModel(Generic[M]):
    """A document model bound to a collection.

    Attributes:
        name: Collection name on the server
        model: Pydantic model class of the documents
        primary_key: Field names forming the primary key
    """

    name: str
    model: type[M]
    primary_key: tuple[str, ...] = ()

    def to_document(self, document: M) -> str:
        """Serialize a document for the wire."""
        return document.model_dump_json()

    def from_document(self, data: str | bytes) -> M:
        """Build a document from its wire form."""
        return self.model.model_validate_json(data)

    def to_schema(self) -> dict[str, Any]:
        """Schema document for this collection."""
        json_schema = self.model.model_json_schema()
        schema: dict[str, Any] = {
            "name": self.name,
            "type": "object",
            "properties": json_schema.get("properties", {}),
        }
        if json_schema.get("required"):
            schema["required"] = json_schema["required"]
        if json_schema.get("$defs"):
            schema["$defs"] = json_schema["$defs"]
        if self.primary_key:
            schema["primary_key"] = list(self.primary_key)
        return schema


class CollectionSchema(Protocol):
    """A schema document that can be applied to a database."""

    @property
    def name(self) -> str: ...

    def content(self) -> str: ...


class ModelSchema:
    """Schema document generated from a CollectionModel."""

    def __init__(self, collection: CollectionModel[Any]) -> None:
        self._collection = collection

    @property
    def name(self) -> str:
        return self._collection.name

    def content(self) -> str:
        return json.dumps(self._collection.to_schema(), sort_keys=True)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModelSchema):
            return NotImplemented
        return self._collection == other._collection

    def __hash__(self) -> int:
        return hash(self._collection)

    def __repr__(self) -> str:
        return f"ModelSchema(name={self.name!r})"


class JSONSchema:
    """Schema document stored in a file.

    The content is read lazily and the collection name is taken from the
    document's ``name`` field.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._name: str | None = None

    @property
    def path(self) -> Path:
        return self._path

    def content(self) -> str:
        """Read the schema file."""
        return self._path.read_text(encoding="utf-8")

    @property
    def name(self) -> str:
        """Collection name declared in the schema.

        Raises:
            ValidationError: If the document is malformed
        """
        if self._name is None:
            self._name = validate_or_raise(self.content())["name"]
        return self._name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, JSONSchema):
            return NotImplemented
        return self._path == other._path

    def __hash__(self) -> int:
        return hash(self._path)

    def __repr__(self) -> str:
        return f"JSONSchema(path={str(self._path)!r})"
