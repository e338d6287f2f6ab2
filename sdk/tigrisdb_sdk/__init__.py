"""
TigrisDB Python SDK - Client library for the TigrisDB document database.

This SDK provides a typed interface to TigrisDB:
- Pydantic document models registered as collections
- TigrisClient / TigrisAsyncClient for connecting to the server
- Collection proxies for reads and writes
- Transaction sessions with commit and rollback

Example:
    >>> from pydantic import BaseModel
    >>> from tigrisdb_sdk import TigrisClient, TigrisConfiguration, register_collection
    >>>
    >>> class Order(BaseModel):
    ...     id: int
    ...     item: str
    >>>
    >>> register_collection(Order, primary_key=("id",))
    >>>
    >>> with TigrisClient(TigrisConfiguration(server_url="localhost:8081")) as client:
    ...     db = client.get_database("shop")
    ...     db.create_or_update_collections(Order)
    ...     with db.transaction() as tx:
    ...         tx.get_collection(Order).insert(Order(id=1, item="book"))

Invariants:
    - Every failure surfaces as a TigrisDBError subclass
    - Finished transactions reject further calls locally
    - Blocking and future-returning APIs report identical errors

Version: 1.0.0
"""

__version__ = "1.0.0"

from .auth import OAuth2TokenService, StaticTokenService, TokenService
from .client import TigrisAsyncClient, TigrisClient
from .collection import (
    TigrisAsyncCollection,
    TigrisAsyncReader,
    TigrisCollection,
    TransactionTigrisCollection,
)
from .config import NetworkConfig, OAuth2Config, TigrisConfiguration
from .database import TigrisAsyncDatabase, TigrisDatabase
from .errors import (
    AuthError,
    ProtocolStateError,
    ServerError,
    TigrisDBError,
    TransportError,
    ValidationError,
)
from .model import (
    CollectionInfo,
    CollectionOptions,
    CommitTransactionResponse,
    CreateOrUpdateCollectionResponse,
    CreateOrUpdateCollectionsResponse,
    DatabaseInfo,
    DatabaseOptions,
    DeleteRequestOptions,
    DeleteResponse,
    DropCollectionResponse,
    InsertOrReplaceRequestOptions,
    InsertOrReplaceResponse,
    InsertRequestOptions,
    InsertResponse,
    ReadRequestOptions,
    ResponseMetadata,
    RollbackTransactionResponse,
    TigrisResponse,
    TransactionOptions,
    UpdateRequestOptions,
    UpdateResponse,
    WriteOptions,
)
from .registry import (
    CollectionRegistry,
    DuplicateRegistrationError,
    RegistryFrozenError,
    get_registry,
    register_collection,
)
from .schema import CollectionModel, JSONSchema, ModelSchema
from .transaction import TransactionContext, TransactionSession, TransactionState

__all__ = [
    # Version
    "__version__",
    # Configuration
    "TigrisConfiguration",
    "NetworkConfig",
    "OAuth2Config",
    # Auth
    "TokenService",
    "OAuth2TokenService",
    "StaticTokenService",
    # Client
    "TigrisClient",
    "TigrisAsyncClient",
    "TigrisDatabase",
    "TigrisAsyncDatabase",
    "TigrisCollection",
    "TransactionTigrisCollection",
    "TigrisAsyncCollection",
    "TigrisAsyncReader",
    # Transactions
    "TransactionSession",
    "TransactionContext",
    "TransactionState",
    # Schema
    "CollectionModel",
    "ModelSchema",
    "JSONSchema",
    "CollectionRegistry",
    "get_registry",
    "register_collection",
    "DuplicateRegistrationError",
    "RegistryFrozenError",
    # Options
    "DatabaseOptions",
    "CollectionOptions",
    "TransactionOptions",
    "WriteOptions",
    "ReadRequestOptions",
    "InsertRequestOptions",
    "InsertOrReplaceRequestOptions",
    "UpdateRequestOptions",
    "DeleteRequestOptions",
    # Responses
    "TigrisResponse",
    "DatabaseInfo",
    "CollectionInfo",
    "ResponseMetadata",
    "InsertResponse",
    "InsertOrReplaceResponse",
    "UpdateResponse",
    "DeleteResponse",
    "CreateOrUpdateCollectionResponse",
    "CreateOrUpdateCollectionsResponse",
    "DropCollectionResponse",
    "CommitTransactionResponse",
    "RollbackTransactionResponse",
    # Errors
    "TigrisDBError",
    "TransportError",
    "AuthError",
    "ServerError",
    "ProtocolStateError",
    "ValidationError",
]
