"""
Collection registry for TigrisDB SDK.

This module provides a local registry mapping document models to
collections:
- Registering pydantic models under a collection name
- Lookup by model class or collection name
- Schema export for every registered collection

Models are registered explicitly; nothing is discovered by scanning.
The registry can be frozen at startup to prevent runtime modifications.

Example:
    >>> from tigrisdb_sdk import get_registry
    >>>
    >>> class Order(BaseModel):
    ...     id: int
    ...     item: str
    >>>
    >>> registry = get_registry()
    >>> registry.register(Order, primary_key=("id",))
    >>> registry.get(Order).name
    'orders'
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel

from .errors import ValidationError
from .schema import CollectionModel, default_collection_name

# Global registry
_global_registry: CollectionRegistry | None = None
_registry_lock = threading.Lock()


class RegistryFrozenError(Exception):
    """Registry is frozen and cannot be modified."""

    pass


class DuplicateRegistrationError(Exception):
    """Model or collection name is already registered."""

    pass


class CollectionRegistry:
    """Local registry of collection models.

    Example:
        >>> registry = CollectionRegistry()
        >>> registry.register(User, name="users")
        >>> registry.freeze()
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._by_model: dict[type[BaseModel], CollectionModel[Any]] = {}
        self._by_name: dict[str, CollectionModel[Any]] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether registry is frozen."""
        return self._frozen

    def register(
        self,
        model: type[BaseModel],
        name: str | None = None,
        primary_key: tuple[str, ...] = (),
    ) -> CollectionModel[Any]:
        """Register a document model.

        Args:
            model: Pydantic model class
            name: Collection name, derived from the class name when omitted
            primary_key: Primary key field names

        Returns:
            The registered CollectionModel

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If model or name already registered
        """
        collection = CollectionModel(
            name=name or default_collection_name(model),
            model=model,
            primary_key=tuple(primary_key),
        )
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Cannot register: registry is frozen")

            if model in self._by_model:
                existing = self._by_model[model]
                raise DuplicateRegistrationError(
                    f"model {model.__name__} already registered as '{existing.name}'"
                )
            if collection.name in self._by_name:
                existing = self._by_name[collection.name]
                raise DuplicateRegistrationError(
                    f"name '{collection.name}' already registered for {existing.model.__name__}"
                )

            self._by_model[model] = collection
            self._by_name[collection.name] = collection
        return collection

    def get(self, model_or_name: type[BaseModel] | str) -> CollectionModel[Any] | None:
        """Get a collection by model class or name."""
        if isinstance(model_or_name, str):
            return self._by_name.get(model_or_name)
        return self._by_model.get(model_or_name)

    def resolve(
        self,
        model: type[BaseModel] | CollectionModel[Any],
    ) -> CollectionModel[Any]:
        """Return the collection bound to ``model``.

        Raises:
            ValidationError: If the model is not registered
        """
        if isinstance(model, CollectionModel):
            return model
        collection = self.get(model)
        if collection is None:
            raise ValidationError(
                f"Model {model.__name__} is not registered as a collection",
                errors=[f"register {model.__name__} before using it"],
            )
        return collection

    def collections(self) -> Iterator[CollectionModel[Any]]:
        """Iterate over all registered collections."""
        yield from self._by_name.values()

    def freeze(self) -> None:
        """Freeze the registry.

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")
            self._frozen = True

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "collections": [
                self._by_name[name].to_schema() for name in sorted(self._by_name.keys())
            ],
        }

    def to_json(self, indent: int | None = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)


def get_registry() -> CollectionRegistry:
    """Get the global collection registry."""
    global _global_registry
    with _registry_lock:
        if _global_registry is None:
            _global_registry = CollectionRegistry()
        return _global_registry


def register_collection(
    model: type[BaseModel],
    name: str | None = None,
    primary_key: tuple[str, ...] = (),
) -> CollectionModel[Any]:
    """Register a model in the global registry."""
    return get_registry().register(model, name=name, primary_key=primary_key)


def reset_registry() -> None:
    """Reset the global registry (for testing only)."""
    global _global_registry
    with _registry_lock:
        _global_registry = None
