"""
Transactions for TigrisDB SDK.

A transaction starts with BeginTransaction, which returns an id. The
session holding that id attaches it as ``tx-id`` metadata to every call
made through it and drives the commit or rollback.

State machine:
    ACTIVE -> COMMITTED    (successful commit)
    ACTIVE -> ROLLED_BACK  (successful rollback)

Invariants:
    - The transaction id never changes
    - COMMITTED and ROLLED_BACK are terminal; any further commit, rollback
      or collection call raises ProtocolStateError without a network call
    - A failed commit or rollback leaves the transaction ACTIVE
    - A session is used by one thread at a time
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel

from . import _convert
from . import _grpc_client as rpc
from ._grpc_client import GrpcClient
from .collection import TransactionTigrisCollection
from .errors import ProtocolStateError
from .model import (
    CollectionOptions,
    CommitTransactionResponse,
    CreateOrUpdateCollectionResponse,
    RollbackTransactionResponse,
)
from .registry import CollectionRegistry, get_registry
from .results import unwrap
from .schema import CollectionModel, CollectionSchema
from .validate import validate_or_raise

logger = logging.getLogger(__name__)

COMMIT_FAILED = "Failed to commit transaction"
ROLLBACK_FAILED = "Failed to rollback transaction"
CREATE_COLLECTION_FAILED = "Failed to create collection in transactional session"


class TransactionState(Enum):
    """Lifecycle state of a transaction."""

    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionState.ACTIVE


@dataclass
class TransactionContext:
    """Server-issued transaction id and its lifecycle state."""

    id: str
    state: TransactionState = TransactionState.ACTIVE


class TransactionSession:
    """An open transaction on one database.

    Example:
        >>> session = db.begin_transaction()
        >>> try:
        ...     session.get_collection(Order).insert(order)
        ...     session.commit()
        ... except TigrisDBError:
        ...     session.rollback()
        ...     raise
    """

    def __init__(
        self,
        db_name: str,
        context: TransactionContext,
        client: GrpcClient,
        registry: Optional[CollectionRegistry] = None,
    ) -> None:
        """Initialize the session.

        Args:
            db_name: Database the transaction runs against
            context: Context returned by BeginTransaction
            client: Shared gRPC client (not owned)
            registry: Collection registry for model lookups
        """
        self._db_name = db_name
        self._context = context
        self._client = client
        self._registry = registry or get_registry()

    @property
    def db_name(self) -> str:
        return self._db_name

    @property
    def context(self) -> TransactionContext:
        return self._context

    @property
    def id(self) -> str:
        return self._context.id

    @property
    def state(self) -> TransactionState:
        return self._context.state

    @property
    def is_active(self) -> bool:
        return self._context.state is TransactionState.ACTIVE

    def transaction_id(self, operation: str) -> str:
        """Transaction id for ``operation``.

        Raises:
            ProtocolStateError: If the transaction has ended
        """
        if self._context.state.is_terminal:
            raise ProtocolStateError(
                f"Cannot {operation}: transaction {self.id} is "
                f"{self._context.state.value}",
                operation=operation,
                transaction_id=self.id,
            )
        return self.id

    def commit(self) -> CommitTransactionResponse:
        """Commit the transaction.

        Raises:
            ProtocolStateError: If the transaction has ended
            TigrisDBError: If the server rejects the commit; the
                transaction stays ACTIVE
        """
        transaction_id = self.transaction_id("commit")
        pending = self._client.unary(
            rpc.COMMIT_TRANSACTION,
            _convert.transaction_request(self._db_name, transaction_id),
            transaction_id=transaction_id,
        )
        response = unwrap(pending, _convert.to_commit_response, COMMIT_FAILED)
        self._context.state = TransactionState.COMMITTED
        logger.debug(f"Committed transaction {transaction_id} on {self._db_name}")
        return response

    def rollback(self) -> RollbackTransactionResponse:
        """Roll the transaction back.

        Raises:
            ProtocolStateError: If the transaction has ended
            TigrisDBError: If the server rejects the rollback; the
                transaction stays ACTIVE
        """
        transaction_id = self.transaction_id("rollback")
        pending = self._client.unary(
            rpc.ROLLBACK_TRANSACTION,
            _convert.transaction_request(self._db_name, transaction_id),
            transaction_id=transaction_id,
        )
        response = unwrap(pending, _convert.to_rollback_response, ROLLBACK_FAILED)
        self._context.state = TransactionState.ROLLED_BACK
        logger.debug(f"Rolled back transaction {transaction_id} on {self._db_name}")
        return response

    def get_collection(
        self,
        model: Union[type[BaseModel], CollectionModel[Any]],
    ) -> TransactionTigrisCollection[Any]:
        """Collection proxy whose calls run inside this transaction.

        Raises:
            ValidationError: If the model is not registered
        """
        collection = self._registry.resolve(model)
        return TransactionTigrisCollection(self._db_name, collection, self._client, self)

    def create_or_update_collection(
        self,
        schema: CollectionSchema,
        options: Optional[CollectionOptions] = None,
    ) -> CreateOrUpdateCollectionResponse:
        """Create or update a collection inside this transaction.

        Raises:
            ValidationError: If the schema document is malformed
            ProtocolStateError: If the transaction has ended
            TigrisDBError: Labelled "Failed to create collection in
                transactional session"
        """
        content = schema.content()
        validate_or_raise(content)
        transaction_id = self.transaction_id("create_or_update_collection")
        request = _convert.create_or_update_collection_request(
            self._db_name, schema.name, content, options or CollectionOptions()
        )
        pending = self._client.unary(
            rpc.CREATE_OR_UPDATE_COLLECTION, request, transaction_id=transaction_id
        )
        return unwrap(
            pending,
            _convert.to_create_or_update_collection_response,
            CREATE_COLLECTION_FAILED,
        )

    def __repr__(self) -> str:
        return (
            f"TransactionSession(db={self._db_name!r}, id={self.id!r}, "
            f"state={self._context.state.value})"
        )
