"""
TigrisDB Client for Python SDK.

This module provides the main client interface:
- TigrisClient: Blocking connection to a TigrisDB server
- TigrisAsyncClient: Future-returning connection to a TigrisDB server

Example:
    >>> with TigrisClient(TigrisConfiguration(server_url="localhost:8081")) as client:
    ...     client.create_database_if_not_exists("shop")
    ...     db = client.get_database("shop")
    ...     db.create_or_update_collections(Order)

Invariants:
    - One channel per client, shared by every database, session and collection
    - The token service is created once per client and consulted per call
    - Closing the client closes the channel; an owned executor is shut down
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, List, Optional

import grpc

from . import _convert
from . import _grpc_client as rpc
from ._grpc_client import GrpcClient
from .auth import TokenService
from .config import TigrisConfiguration
from .database import TigrisAsyncDatabase, TigrisDatabase
from .errors import ServerError, TransportError, status_code_of, wrap_error
from .model import DatabaseOptions, TigrisResponse
from .registry import CollectionRegistry, get_registry
from .results import transform_future, unwrap

logger = logging.getLogger(__name__)

LIST_DATABASES_FAILED = "Failed to list database(s)"
CREATE_DATABASE_FAILED = "Failed to create database"
DROP_DATABASE_FAILED = "Failed to drop database"


class _ClientBase:
    """Channel ownership shared by the blocking and async clients."""

    def __init__(
        self,
        configuration: Optional[TigrisConfiguration] = None,
        *,
        token_service: Optional[TokenService] = None,
        channel: Optional[grpc.Channel] = None,
        registry: Optional[CollectionRegistry] = None,
    ) -> None:
        self.configuration = configuration or TigrisConfiguration()
        self.registry = registry or get_registry()
        self._grpc = GrpcClient(
            self.configuration,
            token_service=token_service,
            channel=channel,
        )
        self._connected = False
        self.connect()

    def connect(self) -> None:
        """Connect to the server."""
        if self._connected:
            return

        try:
            self._grpc.connect()
            self._connected = True
        except (grpc.RpcError, ValueError, OSError) as e:
            raise TransportError(f"Failed to connect to {self._grpc.address}", e) from e

    def _close_channel(self) -> None:
        if self._connected:
            self._grpc.close()
            self._connected = False


class TigrisClient(_ClientBase):
    """Blocking client for TigrisDB.

    Example:
        >>> client = TigrisClient(TigrisConfiguration(server_url="localhost:8081"))
        >>> [db.name for db in client.list_databases()]
        ['shop']
        >>> client.close()
    """

    def get_database(self, name: str) -> TigrisDatabase:
        """Database facade; no call is made until it is used."""
        return TigrisDatabase(name, self._grpc, self.registry)

    def list_databases(self, options: Optional[DatabaseOptions] = None) -> List[TigrisDatabase]:
        """List databases on the server.

        Raises:
            TigrisDBError: Labelled "Failed to list database(s)"
        """
        pending = self._grpc.unary(rpc.LIST_DATABASES, {})
        infos = unwrap(pending, _convert.to_database_infos, LIST_DATABASES_FAILED)
        return [self.get_database(info.name) for info in infos]

    def create_database_if_not_exists(
        self,
        name: str,
        options: Optional[DatabaseOptions] = None,
    ) -> TigrisResponse:
        """Create a database; an existing database is not an error.

        Raises:
            TigrisDBError: Labelled "Failed to create database"
        """
        pending = self._grpc.unary(
            rpc.CREATE_DATABASE,
            _convert.database_request(name, options or DatabaseOptions()),
        )
        try:
            return unwrap(pending, _convert.to_tigris_response, CREATE_DATABASE_FAILED)
        except ServerError as e:
            if e.status_code is not grpc.StatusCode.ALREADY_EXISTS:
                raise
            logger.debug(f"Database {name} already exists")
            return TigrisResponse(message=f"{name} already exists")

    def drop_database(
        self,
        name: str,
        options: Optional[DatabaseOptions] = None,
    ) -> TigrisResponse:
        """Drop a database.

        Raises:
            TigrisDBError: Labelled "Failed to drop database"
        """
        pending = self._grpc.unary(
            rpc.DROP_DATABASE,
            _convert.database_request(name, options or DatabaseOptions()),
        )
        return unwrap(pending, _convert.to_tigris_response, DROP_DATABASE_FAILED)

    def close(self) -> None:
        """Close the connection."""
        self._close_channel()

    def __enter__(self) -> TigrisClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class TigrisAsyncClient(_ClientBase):
    """Future-returning client for TigrisDB.

    Conversions and completions run on ``executor``. When none is given the
    client creates a thread pool and shuts it down on close; a supplied
    executor is left running.
    """

    def __init__(
        self,
        configuration: Optional[TigrisConfiguration] = None,
        *,
        executor: Optional[Executor] = None,
        token_service: Optional[TokenService] = None,
        channel: Optional[grpc.Channel] = None,
        registry: Optional[CollectionRegistry] = None,
    ) -> None:
        """Initialize the client.

        Args:
            configuration: Client configuration, read from the environment
                when omitted
            executor: Executor for conversions and completions
            token_service: Overrides the token service derived from the
                OAuth2 settings
            channel: Pre-built channel, used instead of dialing server_url
            registry: Collection registry, defaults to the global one
        """
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(thread_name_prefix="tigrisdb")
        super().__init__(
            configuration,
            token_service=token_service,
            channel=channel,
            registry=registry,
        )

    @property
    def executor(self) -> Executor:
        return self._executor

    def get_database(self, name: str) -> TigrisAsyncDatabase:
        return TigrisAsyncDatabase(name, self._grpc, self._executor, self.registry)

    def list_databases(
        self,
        options: Optional[DatabaseOptions] = None,
    ) -> Future[List[TigrisAsyncDatabase]]:
        pending = self._grpc.unary(rpc.LIST_DATABASES, {})
        return transform_future(
            pending,
            lambda response: [
                self.get_database(info.name) for info in _convert.to_database_infos(response)
            ],
            self._executor,
            LIST_DATABASES_FAILED,
        )

    def create_database_if_not_exists(
        self,
        name: str,
        options: Optional[DatabaseOptions] = None,
    ) -> Future[TigrisResponse]:
        pending = self._grpc.unary(
            rpc.CREATE_DATABASE,
            _convert.database_request(name, options or DatabaseOptions()),
        )

        def tolerate_existing(result: Future[TigrisResponse], error: BaseException) -> None:
            if status_code_of(error) is grpc.StatusCode.ALREADY_EXISTS:
                logger.debug(f"Database {name} already exists")
                result.set_result(TigrisResponse(message=f"{name} already exists"))
            else:
                result.set_exception(wrap_error(CREATE_DATABASE_FAILED, error))

        return transform_future(
            pending,
            _convert.to_tigris_response,
            self._executor,
            CREATE_DATABASE_FAILED,
            exception_handler=tolerate_existing,
        )

    def drop_database(
        self,
        name: str,
        options: Optional[DatabaseOptions] = None,
    ) -> Future[TigrisResponse]:
        pending = self._grpc.unary(
            rpc.DROP_DATABASE,
            _convert.database_request(name, options or DatabaseOptions()),
        )
        return transform_future(
            pending, _convert.to_tigris_response, self._executor, DROP_DATABASE_FAILED
        )

    def close(self) -> None:
        """Close the connection and shut down an owned executor."""
        self._close_channel()
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> TigrisAsyncClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
