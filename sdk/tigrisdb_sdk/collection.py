"""
Collection proxies for TigrisDB SDK.

This module provides typed access to the documents of one collection:
- TigrisCollection: Blocking operations outside any transaction
- TransactionTigrisCollection: Blocking operations bound to a transaction
- TigrisAsyncCollection: Future-returning operations

All proxies build requests through ``_CollectionOperations``. They differ
only in their ``CallDecorator``, which supplies the transaction id for a
call (or none) and rejects calls through a finished transaction before
anything is sent.

Invariants:
    - ``read`` is lazy: documents are pulled from the stream on demand
    - Every call from a transactional proxy carries the transaction's id
    - A proxy consults the transaction's current state on every call

Example:
    >>> orders = db.get_collection(Order)
    >>> orders.insert(Order(id=1, item="book"))
    >>> for order in orders.read({"id": 1}):
    ...     print(order.item)
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from typing import (
    Any,
    Generic,
    Iterator,
    List,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
    Union,
)

from pydantic import BaseModel

from . import _convert
from . import _grpc_client as rpc
from ._grpc_client import GrpcClient
from .model import (
    DeleteRequestOptions,
    DeleteResponse,
    InsertOrReplaceRequestOptions,
    InsertOrReplaceResponse,
    InsertRequestOptions,
    InsertResponse,
    ReadRequestOptions,
    UpdateRequestOptions,
    UpdateResponse,
)
from .results import ConvertedIterator, transform_future, transform_iterator, unwrap
from .schema import CollectionModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

READ_FAILED = "Failed to read"
INSERT_FAILED = "Failed to insert"
INSERT_OR_REPLACE_FAILED = "Failed to insert or replace"
UPDATE_FAILED = "Failed to update"
DELETE_FAILED = "Failed to delete"


class CallDecorator(Protocol):
    """Supplies the transaction id attached to a collection call.

    Raises ProtocolStateError when ``operation`` may not run.
    """

    def transaction_id(self, operation: str) -> Optional[str]: ...


class _NoTransaction:
    def transaction_id(self, operation: str) -> Optional[str]:
        return None


NO_TRANSACTION: CallDecorator = _NoTransaction()


class TigrisAsyncReader(Protocol[T]):
    """Receives the documents of an asynchronous read."""

    def on_next(self, document: T) -> None: ...

    def on_error(self, error: Exception) -> None: ...

    def on_completed(self) -> None: ...


class _CollectionOperations(Generic[T]):
    """Request building and dispatch shared by every collection proxy."""

    def __init__(
        self,
        db_name: str,
        collection: CollectionModel[T],
        client: GrpcClient,
        decorator: CallDecorator,
    ) -> None:
        self.db_name = db_name
        self.collection = collection
        self._client = client
        self._decorator = decorator

    @property
    def name(self) -> str:
        return self.collection.name

    def _document(self, response: dict[str, Any]) -> T:
        data = response.get("data")
        if isinstance(data, dict):
            return self.collection.model.model_validate(data)
        return self.collection.from_document(data)

    def _documents(self, documents: Union[T, Sequence[T]]) -> List[str]:
        if isinstance(documents, BaseModel):
            documents = [documents]
        return [self.collection.to_document(document) for document in documents]

    def _unary(self, method: str, operation: str, request: dict[str, Any]):
        transaction_id = self._decorator.transaction_id(operation)
        logger.debug(f"{operation} on {self.db_name}.{self.name} tx={transaction_id}")
        return self._client.unary(method, request, transaction_id=transaction_id)

    def read(
        self,
        filter: Any,
        fields: Any = None,
        options: Optional[ReadRequestOptions] = None,
    ) -> ConvertedIterator[dict[str, Any], T]:
        transaction_id = self._decorator.transaction_id("read")
        request = _convert.read_request(self.db_name, self.name, filter, fields, options)
        stream = self._client.stream(rpc.READ, request, transaction_id=transaction_id)
        return transform_iterator(stream, self._document, READ_FAILED)

    def read_one(self, filter: Any, fields: Any = None) -> Optional[T]:
        documents = self.read(filter, fields)
        try:
            return next(documents, None)
        finally:
            documents.close()

    def insert(self, documents: Union[T, Sequence[T]], options: InsertRequestOptions):
        request = _convert.write_request(
            self.db_name, self.name, self._documents(documents), options
        )
        return self._unary(rpc.INSERT, "insert", request)

    def insert_or_replace(
        self,
        documents: Union[T, Sequence[T]],
        options: InsertOrReplaceRequestOptions,
    ):
        request = _convert.write_request(
            self.db_name, self.name, self._documents(documents), options
        )
        return self._unary(rpc.REPLACE, "insert_or_replace", request)

    def update(self, filter: Any, fields: Any, options: UpdateRequestOptions):
        request = _convert.update_request(self.db_name, self.name, filter, fields, options)
        return self._unary(rpc.UPDATE, "update", request)

    def delete(self, filter: Any, options: DeleteRequestOptions):
        request = _convert.delete_request(self.db_name, self.name, filter, options)
        return self._unary(rpc.DELETE, "delete", request)


class TigrisCollection(Generic[T]):
    """Blocking access to a collection.

    Filters, field selections and update expressions are passed through
    as JSON: plain dicts, or objects exposing ``to_json()``.
    """

    def __init__(
        self,
        db_name: str,
        collection: CollectionModel[T],
        client: GrpcClient,
        decorator: CallDecorator = NO_TRANSACTION,
    ) -> None:
        self._ops = _CollectionOperations(db_name, collection, client, decorator)

    @property
    def name(self) -> str:
        """Collection name."""
        return self._ops.name

    @property
    def db_name(self) -> str:
        return self._ops.db_name

    def read(
        self,
        filter: Any,
        fields: Any = None,
        options: Optional[ReadRequestOptions] = None,
    ) -> Iterator[T]:
        """Read matching documents.

        The result is a lazy, forward-only iterator over the server stream.
        Call ``close()`` on it (or use it as a context manager) to abandon
        the stream early.

        Args:
            filter: Filter expression
            fields: Optional field selection
            options: Limit and skip

        Returns:
            Iterator of documents

        Raises:
            TigrisDBError: When the stream fails, labelled "Failed to read"
        """
        return self._ops.read(filter, fields, options)

    def read_one(self, filter: Any, fields: Any = None) -> Optional[T]:
        """Read the first matching document.

        Meant for point lookups. For a filter matching several documents
        any one of them may be returned.

        Returns:
            The document, or None when nothing matches
        """
        return self._ops.read_one(filter, fields)

    def insert(
        self,
        documents: Union[T, Sequence[T]],
        options: Optional[InsertRequestOptions] = None,
    ) -> InsertResponse:
        """Insert one document or a list of documents.

        Raises:
            TigrisDBError: Labelled "Failed to insert"
        """
        pending = self._ops.insert(documents, options or InsertRequestOptions())
        return unwrap(pending, _convert.to_insert_response, INSERT_FAILED)

    def insert_or_replace(
        self,
        documents: Union[T, Sequence[T]],
        options: Optional[InsertOrReplaceRequestOptions] = None,
    ) -> InsertOrReplaceResponse:
        """Insert documents, replacing those with the same primary key."""
        pending = self._ops.insert_or_replace(
            documents, options or InsertOrReplaceRequestOptions()
        )
        return unwrap(pending, _convert.to_insert_or_replace_response, INSERT_OR_REPLACE_FAILED)

    def update(
        self,
        filter: Any,
        fields: Any,
        options: Optional[UpdateRequestOptions] = None,
    ) -> UpdateResponse:
        """Apply an update expression to matching documents."""
        pending = self._ops.update(filter, fields, options or UpdateRequestOptions())
        return unwrap(pending, _convert.to_update_response, UPDATE_FAILED)

    def delete(
        self,
        filter: Any,
        options: Optional[DeleteRequestOptions] = None,
    ) -> DeleteResponse:
        """Delete matching documents."""
        pending = self._ops.delete(filter, options or DeleteRequestOptions())
        return unwrap(pending, _convert.to_delete_response, DELETE_FAILED)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(db={self.db_name!r}, name={self.name!r})"


class TransactionTigrisCollection(TigrisCollection[T]):
    """Collection bound to a transaction.

    Every call carries the transaction id. Once the transaction is
    committed or rolled back, calls raise ProtocolStateError without
    reaching the server.
    """

    def __init__(
        self,
        db_name: str,
        collection: CollectionModel[T],
        client: GrpcClient,
        decorator: CallDecorator,
    ) -> None:
        super().__init__(db_name, collection, client, decorator)


class TigrisAsyncCollection(Generic[T]):
    """Future-returning access to a collection.

    Conversions and completions run on ``executor``, never on gRPC
    threads.
    """

    def __init__(
        self,
        db_name: str,
        collection: CollectionModel[T],
        client: GrpcClient,
        executor: Executor,
    ) -> None:
        self._ops = _CollectionOperations(db_name, collection, client, NO_TRANSACTION)
        self._executor = executor

    @property
    def name(self) -> str:
        return self._ops.name

    @property
    def db_name(self) -> str:
        return self._ops.db_name

    def read(
        self,
        filter: Any,
        reader: TigrisAsyncReader[T],
        fields: Any = None,
        options: Optional[ReadRequestOptions] = None,
    ) -> Future[None]:
        """Stream matching documents into ``reader``.

        ``on_next`` runs once per document, then exactly one of
        ``on_completed`` or ``on_error``.

        Returns:
            Future resolving when the reader has been notified of the end
        """
        return self._executor.submit(self._pump, filter, reader, fields, options)

    def _pump(
        self,
        filter: Any,
        reader: TigrisAsyncReader[T],
        fields: Any,
        options: Optional[ReadRequestOptions],
    ) -> None:
        try:
            with self._ops.read(filter, fields, options) as documents:
                for document in documents:
                    reader.on_next(document)
        except Exception as e:
            reader.on_error(e)
            return
        reader.on_completed()

    def read_one(self, filter: Any, fields: Any = None) -> Future[Optional[T]]:
        """Future of the first matching document, or None."""
        return self._executor.submit(self._ops.read_one, filter, fields)

    def insert(
        self,
        documents: Union[T, Sequence[T]],
        options: Optional[InsertRequestOptions] = None,
    ) -> Future[InsertResponse]:
        pending = self._ops.insert(documents, options or InsertRequestOptions())
        return transform_future(
            pending, _convert.to_insert_response, self._executor, INSERT_FAILED
        )

    def insert_or_replace(
        self,
        documents: Union[T, Sequence[T]],
        options: Optional[InsertOrReplaceRequestOptions] = None,
    ) -> Future[InsertOrReplaceResponse]:
        pending = self._ops.insert_or_replace(
            documents, options or InsertOrReplaceRequestOptions()
        )
        return transform_future(
            pending,
            _convert.to_insert_or_replace_response,
            self._executor,
            INSERT_OR_REPLACE_FAILED,
        )

    def update(
        self,
        filter: Any,
        fields: Any,
        options: Optional[UpdateRequestOptions] = None,
    ) -> Future[UpdateResponse]:
        pending = self._ops.update(filter, fields, options or UpdateRequestOptions())
        return transform_future(
            pending, _convert.to_update_response, self._executor, UPDATE_FAILED
        )

    def delete(
        self,
        filter: Any,
        options: Optional[DeleteRequestOptions] = None,
    ) -> Future[DeleteResponse]:
        pending = self._ops.delete(filter, options or DeleteRequestOptions())
        return transform_future(
            pending, _convert.to_delete_response, self._executor, DELETE_FAILED
        )

    def __repr__(self) -> str:
        return f"TigrisAsyncCollection(db={self.db_name!r}, name={self.name!r})"
