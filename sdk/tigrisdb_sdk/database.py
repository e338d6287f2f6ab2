"""
Database facades for TigrisDB SDK.

This module provides the per-database entry points:
- TigrisDatabase: Blocking collection DDL, collection proxies, transactions
- TigrisAsyncDatabase: The same operations returning futures

Multi-collection creation runs in one transaction. On any failure the
transaction is rolled back (best effort) before the error surfaces as
"Failed to create collections in transaction Cause: <inner failure>".

Example:
    >>> db = client.get_database("shop")
    >>> db.create_or_update_collections(Order, Customer)
    >>> with db.transaction() as tx:
    ...     tx.get_collection(Order).insert(order)
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from contextlib import contextmanager
from functools import partial
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Union

from pydantic import BaseModel

from . import _convert
from . import _grpc_client as rpc
from ._grpc_client import GrpcClient
from .collection import TigrisAsyncCollection, TigrisCollection
from .errors import TigrisDBError, wrap_error
from .model import (
    CollectionInfo,
    CollectionOptions,
    CreateOrUpdateCollectionResponse,
    CreateOrUpdateCollectionsResponse,
    DropCollectionResponse,
    TransactionOptions,
)
from .registry import CollectionRegistry, get_registry
from .results import failed_future, transform_future, unwrap
from .schema import CollectionModel, CollectionSchema, JSONSchema, ModelSchema
from .transaction import TransactionContext, TransactionSession
from .validate import validate_or_raise

logger = logging.getLogger(__name__)

LIST_COLLECTIONS_FAILED = "Failed to list collection(s)"
CREATE_OR_UPDATE_COLLECTION_FAILED = "Failed to create or update collection"
CREATE_COLLECTIONS_FAILED = "Failed to create collections in transaction"
DROP_COLLECTION_FAILED = "Failed to drop collection"
BEGIN_TRANSACTION_FAILED = "Failed to begin transaction"
SCHEMA_DIRECTORY_FAILED = "Failed to process schemaDirectory"

COLLECTIONS_CREATED_STATUS = "created"
COLLECTIONS_CREATED_MESSAGE = "Collections created successfully"

SchemaSource = Union[type[BaseModel], CollectionModel[Any], CollectionSchema]
SchemaPaths = Union[str, Path, Sequence[Union[str, Path]]]


def schema_files(source: SchemaPaths) -> List[JSONSchema]:
    """Schema files named by ``source``.

    A single directory expands to its ``*.json`` files in name order.

    Raises:
        TigrisDBError: "Failed to process schemaDirectory" when a path
            does not exist or the directory cannot be listed
    """
    paths = [source] if isinstance(source, (str, Path)) else list(source)
    files: List[JSONSchema] = []
    try:
        for path in map(Path, paths):
            if path.is_dir():
                files.extend(JSONSchema(p) for p in sorted(path.glob("*.json")))
            elif path.is_file():
                files.append(JSONSchema(path))
            else:
                raise FileNotFoundError(f"No such file or directory: '{path}'")
    except OSError as e:
        raise TigrisDBError(SCHEMA_DIRECTORY_FAILED, e) from e
    return files


def rollback_quietly(session: TransactionSession) -> None:
    """Roll back ``session`` if still active; failures are only logged."""
    if not session.is_active:
        return
    try:
        session.rollback()
    except TigrisDBError as e:
        logger.warning(f"Rollback of transaction {session.id} failed: {e.message}")


class TigrisDatabase:
    """Blocking facade for one database.

    Shares the client's channel; closing the client invalidates it.
    """

    def __init__(
        self,
        name: str,
        client: GrpcClient,
        registry: Optional[CollectionRegistry] = None,
    ) -> None:
        """Initialize the database facade.

        Args:
            name: Database name
            client: Shared gRPC client (not owned)
            registry: Collection registry, defaults to the global one
        """
        self._name = name
        self._client = client
        self._registry = registry or get_registry()

    @property
    def name(self) -> str:
        """Database name."""
        return self._name

    @property
    def registry(self) -> CollectionRegistry:
        return self._registry

    def schema_for(self, source: SchemaSource) -> CollectionSchema:
        """Schema document for a model, collection model or schema."""
        if isinstance(source, (CollectionModel, type)):
            return ModelSchema(self._registry.resolve(source))
        return source

    def list_collections(self) -> List[CollectionInfo]:
        """List collections of this database.

        Raises:
            TigrisDBError: Labelled "Failed to list collection(s)"
        """
        pending = self._client.unary(rpc.LIST_COLLECTIONS, {"db": self._name})
        return unwrap(pending, _convert.to_collection_infos, LIST_COLLECTIONS_FAILED)

    def create_or_update_collection(
        self,
        schema: SchemaSource,
        options: Optional[CollectionOptions] = None,
    ) -> CreateOrUpdateCollectionResponse:
        """Create a collection, or update its schema if it exists.

        Args:
            schema: Registered model, CollectionModel or schema document
            options: Collection options

        Raises:
            ValidationError: If the schema document is malformed
            TigrisDBError: Labelled "Failed to create or update collection"
        """
        schema = self.schema_for(schema)
        content = schema.content()
        validate_or_raise(content)
        request = _convert.create_or_update_collection_request(
            self._name, schema.name, content, options or CollectionOptions()
        )
        pending = self._client.unary(rpc.CREATE_OR_UPDATE_COLLECTION, request)
        return unwrap(
            pending,
            _convert.to_create_or_update_collection_response,
            CREATE_OR_UPDATE_COLLECTION_FAILED,
        )

    def create_or_update_collections(
        self,
        *schemas: SchemaSource,
    ) -> CreateOrUpdateCollectionsResponse:
        """Create or update several collections in one transaction.

        Raises:
            TigrisDBError: Labelled "Failed to create collections in
                transaction", with the inner failure as cause
        """
        try:
            resolved = [self.schema_for(schema) for schema in schemas]
        except TigrisDBError as e:
            raise wrap_error(CREATE_COLLECTIONS_FAILED, e) from e
        return self.create_in_transaction(resolved)

    def apply_schemas(self, source: SchemaPaths) -> CreateOrUpdateCollectionsResponse:
        """Create collections from JSON schema files in one transaction.

        Args:
            source: A directory of ``*.json`` files, one file, or a list of files

        Raises:
            TigrisDBError: "Failed to process schemaDirectory" for missing
                paths, otherwise as create_or_update_collections
        """
        return self.create_in_transaction(schema_files(source))

    def create_in_transaction(
        self,
        schemas: Sequence[CollectionSchema],
    ) -> CreateOrUpdateCollectionsResponse:
        """Create or update ``schemas`` in a new transaction."""
        session: Optional[TransactionSession] = None
        try:
            session = self.begin_transaction()
            for schema in schemas:
                session.create_or_update_collection(schema)
            session.commit()
        except Exception as e:
            if session is not None:
                rollback_quietly(session)
            raise wrap_error(CREATE_COLLECTIONS_FAILED, e) from e
        return CreateOrUpdateCollectionsResponse(
            status=COLLECTIONS_CREATED_STATUS,
            message=COLLECTIONS_CREATED_MESSAGE,
        )

    def drop_collection(self, name: str) -> DropCollectionResponse:
        """Drop a collection.

        Raises:
            TigrisDBError: Labelled "Failed to drop collection"
        """
        pending = self._client.unary(
            rpc.DROP_COLLECTION, _convert.drop_collection_request(self._name, name)
        )
        return unwrap(pending, _convert.to_drop_collection_response, DROP_COLLECTION_FAILED)

    def get_collection(
        self,
        model: Union[type[BaseModel], CollectionModel[Any]],
    ) -> TigrisCollection[Any]:
        """Collection proxy for a registered model.

        Raises:
            ValidationError: If the model is not registered
        """
        return TigrisCollection(self._name, self._registry.resolve(model), self._client)

    def begin_transaction(
        self,
        options: Optional[TransactionOptions] = None,
    ) -> TransactionSession:
        """Begin a transaction.

        Raises:
            TigrisDBError: Labelled "Failed to begin transaction"
        """
        pending = self._client.unary(
            rpc.BEGIN_TRANSACTION,
            _convert.database_request(self._name, options or TransactionOptions()),
        )
        transaction_id = unwrap(pending, _convert.to_transaction_id, BEGIN_TRANSACTION_FAILED)
        logger.debug(f"Began transaction {transaction_id} on {self._name}")
        return self.session_for(transaction_id)

    def session_for(self, transaction_id: str) -> TransactionSession:
        """Session for a transaction begun elsewhere."""
        return TransactionSession(
            self._name,
            TransactionContext(transaction_id),
            self._client,
            self._registry,
        )

    @contextmanager
    def transaction(
        self,
        options: Optional[TransactionOptions] = None,
    ) -> Iterator[TransactionSession]:
        """Run a block in a transaction.

        Commits when the block exits normally and rolls back when the
        block or the commit raises. A session already committed or rolled
        back inside the block is left alone.
        """
        session = self.begin_transaction(options)
        try:
            yield session
            if session.is_active:
                session.commit()
        except BaseException:
            rollback_quietly(session)
            raise

    def __repr__(self) -> str:
        return f"TigrisDatabase(name={self._name!r})"


class _SessionRef:
    """Session begun by a background task, kept for rollback."""

    def __init__(self) -> None:
        self.session: Optional[TransactionSession] = None

    def __call__(self, session: TransactionSession) -> None:
        self.session = session


class TigrisAsyncDatabase:
    """Future-returning facade for one database.

    Conversions and completions run on ``executor``.
    """

    def __init__(
        self,
        name: str,
        client: GrpcClient,
        executor: Executor,
        registry: Optional[CollectionRegistry] = None,
    ) -> None:
        self._client = client
        self._executor = executor
        self._database = TigrisDatabase(name, client, registry)

    @property
    def name(self) -> str:
        return self._database.name

    def list_collections(self) -> Future[List[CollectionInfo]]:
        pending = self._client.unary(rpc.LIST_COLLECTIONS, {"db": self.name})
        return transform_future(
            pending, _convert.to_collection_infos, self._executor, LIST_COLLECTIONS_FAILED
        )

    def create_or_update_collection(
        self,
        schema: SchemaSource,
        options: Optional[CollectionOptions] = None,
    ) -> Future[CreateOrUpdateCollectionResponse]:
        try:
            schema = self._database.schema_for(schema)
            content = schema.content()
            validate_or_raise(content)
        except TigrisDBError as e:
            return failed_future(e)
        request = _convert.create_or_update_collection_request(
            self.name, schema.name, content, options or CollectionOptions()
        )
        pending = self._client.unary(rpc.CREATE_OR_UPDATE_COLLECTION, request)
        return transform_future(
            pending,
            _convert.to_create_or_update_collection_response,
            self._executor,
            CREATE_OR_UPDATE_COLLECTION_FAILED,
        )

    def create_or_update_collections(
        self,
        *schemas: SchemaSource,
    ) -> Future[CreateOrUpdateCollectionsResponse]:
        """Create or update several collections in one transaction.

        The transaction is rolled back before the returned future fails.
        """
        try:
            resolved = [self._database.schema_for(schema) for schema in schemas]
        except TigrisDBError as e:
            return failed_future(wrap_error(CREATE_COLLECTIONS_FAILED, e))
        return self._create_in_transaction(resolved)

    def apply_schemas(self, source: SchemaPaths) -> Future[CreateOrUpdateCollectionsResponse]:
        try:
            files = schema_files(source)
        except TigrisDBError as e:
            return failed_future(e)
        return self._create_in_transaction(files)

    def _create_in_transaction(
        self,
        schemas: Sequence[CollectionSchema],
    ) -> Future[CreateOrUpdateCollectionsResponse]:
        ref = _SessionRef()
        work = self._executor.submit(self._create_all, schemas, ref)
        return transform_future(
            work,
            lambda response: response,
            self._executor,
            CREATE_COLLECTIONS_FAILED,
            exception_handler=partial(self._rollback_then_fail, ref),
        )

    def _create_all(
        self,
        schemas: Sequence[CollectionSchema],
        ref: _SessionRef,
    ) -> CreateOrUpdateCollectionsResponse:
        session = self._database.begin_transaction()
        ref(session)
        for schema in schemas:
            session.create_or_update_collection(schema)
        session.commit()
        return CreateOrUpdateCollectionsResponse(
            status=COLLECTIONS_CREATED_STATUS,
            message=COLLECTIONS_CREATED_MESSAGE,
        )

    @staticmethod
    def _rollback_then_fail(
        ref: _SessionRef,
        result: Future[CreateOrUpdateCollectionsResponse],
        error: BaseException,
    ) -> None:
        if ref.session is not None:
            rollback_quietly(ref.session)
        result.set_exception(wrap_error(CREATE_COLLECTIONS_FAILED, error))

    def drop_collection(self, name: str) -> Future[DropCollectionResponse]:
        pending = self._client.unary(
            rpc.DROP_COLLECTION, _convert.drop_collection_request(self.name, name)
        )
        return transform_future(
            pending,
            _convert.to_drop_collection_response,
            self._executor,
            DROP_COLLECTION_FAILED,
        )

    def get_collection(
        self,
        model: Union[type[BaseModel], CollectionModel[Any]],
    ) -> TigrisAsyncCollection[Any]:
        collection = self._database.registry.resolve(model)
        return TigrisAsyncCollection(self.name, collection, self._client, self._executor)

    def begin_transaction(
        self,
        options: Optional[TransactionOptions] = None,
    ) -> Future[TransactionSession]:
        """Future of a new transaction session.

        The session itself is blocking; use it from one thread.
        """
        pending = self._client.unary(
            rpc.BEGIN_TRANSACTION,
            _convert.database_request(self.name, options or TransactionOptions()),
        )
        return transform_future(
            pending,
            lambda response: self._database.session_for(_convert.to_transaction_id(response)),
            self._executor,
            BEGIN_TRANSACTION_FAILED,
        )

    def __repr__(self) -> str:
        return f"TigrisAsyncDatabase(name={self.name!r})"
