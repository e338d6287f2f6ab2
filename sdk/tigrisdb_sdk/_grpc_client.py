"""
Internal gRPC client for TigrisDB SDK.

This module provides the low-level gRPC communication layer.
It is internal to the SDK and should not be used directly by users.

Messages travel as JSON documents with JSON (de)serializers on generic
multi-callables, so no generated stubs are needed. Outgoing calls are
decorated by client interceptors that attach the bearer token and the
client version header.

Users should use TigrisClient instead, which provides a clean Python API.
"""

from __future__ import annotations

import json
import logging
from collections import namedtuple
from typing import Any, Callable, Iterator, Sequence

import grpc

from .auth import OAuth2TokenService, TokenService
from .config import TigrisConfiguration

logger = logging.getLogger(__name__)

SERVICE_NAME = "tigrisdata.v1.Tigris"

USER_AGENT_VALUE = "tigrisdb-client-python.grpc"
CLIENT_VERSION_KEY = "client-version"
CLIENT_VERSION_VALUE = "1.0"
AUTHORIZATION_KEY = "authorization"
TRANSACTION_ID_KEY = "tx-id"

# Unary RPCs
LIST_DATABASES = "ListDatabases"
CREATE_DATABASE = "CreateDatabase"
DROP_DATABASE = "DropDatabase"
LIST_COLLECTIONS = "ListCollections"
CREATE_OR_UPDATE_COLLECTION = "CreateOrUpdateCollection"
DROP_COLLECTION = "DropCollection"
BEGIN_TRANSACTION = "BeginTransaction"
COMMIT_TRANSACTION = "CommitTransaction"
ROLLBACK_TRANSACTION = "RollbackTransaction"
INSERT = "Insert"
REPLACE = "Replace"
UPDATE = "Update"
DELETE = "Delete"

# Server-streaming RPCs
READ = "Read"

UNARY_METHODS = (
    LIST_DATABASES,
    CREATE_DATABASE,
    DROP_DATABASE,
    LIST_COLLECTIONS,
    CREATE_OR_UPDATE_COLLECTION,
    DROP_COLLECTION,
    BEGIN_TRANSACTION,
    COMMIT_TRANSACTION,
    ROLLBACK_TRANSACTION,
    INSERT,
    REPLACE,
    UPDATE,
    DELETE,
)
STREAM_METHODS = (READ,)

Metadata = Sequence[tuple[str, str]]


def method_path(method: str) -> str:
    """Full gRPC path of a service method."""
    return f"/{SERVICE_NAME}/{method}"


def serialize(message: dict[str, Any]) -> bytes:
    """Encode a message for the wire."""
    return json.dumps(message, separators=(",", ":")).encode("utf-8")


def deserialize(data: bytes) -> dict[str, Any]:
    """Decode a message from the wire."""
    if not data:
        return {}
    return json.loads(data.decode("utf-8"))


class _ClientCallDetails(
    namedtuple(
        "_ClientCallDetails",
        ("method", "timeout", "metadata", "credentials", "wait_for_ready", "compression"),
    ),
    grpc.ClientCallDetails,
):
    pass


class MetadataInterceptor(
    grpc.UnaryUnaryClientInterceptor,
    grpc.UnaryStreamClientInterceptor,
):
    """Appends metadata produced per call to every outgoing RPC.

    The provider runs on the calling thread right before dispatch, so a
    token service behind it is consulted once per call.
    """

    def __init__(self, provider: Callable[[], Metadata]) -> None:
        self._provider = provider

    def _decorate(self, details: grpc.ClientCallDetails) -> _ClientCallDetails:
        metadata = list(details.metadata or [])
        metadata.extend(self._provider())
        return _ClientCallDetails(
            details.method,
            details.timeout,
            metadata,
            details.credentials,
            getattr(details, "wait_for_ready", None),
            getattr(details, "compression", None),
        )

    def intercept_unary_unary(self, continuation, client_call_details, request):
        return continuation(self._decorate(client_call_details), request)

    def intercept_unary_stream(self, continuation, client_call_details, request):
        return continuation(self._decorate(client_call_details), request)


def auth_header_interceptor(token_service: TokenService) -> MetadataInterceptor:
    """Interceptor adding "authorization: Bearer <token>"."""
    return MetadataInterceptor(
        lambda: [(AUTHORIZATION_KEY, f"Bearer {token_service.get_access_token()}")]
    )


def default_headers_interceptor() -> MetadataInterceptor:
    """Interceptor adding the static client headers."""
    headers = [(CLIENT_VERSION_KEY, CLIENT_VERSION_VALUE)]
    return MetadataInterceptor(lambda: headers)


class GrpcClient:
    """Internal gRPC client for TigrisDB.

    This class owns the channel and exposes one generic entry point per
    call shape: ``unary`` returns a ``grpc.Future`` and ``stream`` returns
    the lazily consumed response iterator. Every call carries the
    configured deadline and, when given, the transaction id metadata.

    This is an internal class - users should use TigrisClient instead.
    """

    def __init__(
        self,
        configuration: TigrisConfiguration,
        *,
        token_service: TokenService | None = None,
        channel: grpc.Channel | None = None,
    ) -> None:
        """Initialize the gRPC client.

        Args:
            configuration: Client configuration
            token_service: Overrides the token service derived from
                the OAuth2 settings
            channel: Pre-built channel, used instead of dialing server_url
        """
        self._configuration = configuration
        self._deadline = configuration.network.deadline_seconds
        if token_service is None and configuration.oauth2 is not None:
            token_service = OAuth2TokenService(configuration.oauth2)
        self._token_service = token_service
        self._base_channel = channel
        self._channel: grpc.Channel | None = None
        self._unary: dict[str, grpc.UnaryUnaryMultiCallable] = {}
        self._stream: dict[str, grpc.UnaryStreamMultiCallable] = {}

    @property
    def address(self) -> str:
        return self._configuration.server_url

    @property
    def deadline(self) -> float:
        return self._deadline

    def connect(self) -> None:
        """Create the channel and the method callables."""
        if self._channel is not None:
            return

        base = self._base_channel or self._dial()
        interceptors: list[MetadataInterceptor] = [default_headers_interceptor()]
        if self._token_service is not None:
            interceptors.append(auth_header_interceptor(self._token_service))
        self._channel = grpc.intercept_channel(base, *interceptors)

        for method in UNARY_METHODS:
            self._unary[method] = self._channel.unary_unary(
                method_path(method),
                request_serializer=serialize,
                response_deserializer=deserialize,
            )
        for method in STREAM_METHODS:
            self._stream[method] = self._channel.unary_stream(
                method_path(method),
                request_serializer=serialize,
                response_deserializer=deserialize,
            )
        logger.debug(f"Connected to TigrisDB server at {self.address}")

    def _dial(self) -> grpc.Channel:
        options = [("grpc.primary_user_agent", USER_AGENT_VALUE)]
        if self._configuration.network.use_plaintext:
            return grpc.insecure_channel(self.address, options=options)
        return grpc.secure_channel(
            self.address,
            grpc.ssl_channel_credentials(),
            options=options,
        )

    def close(self) -> None:
        """Close the connection."""
        if self._channel is not None:
            self._channel.close()
            self._channel = None
            self._unary.clear()
            self._stream.clear()
            logger.debug("Disconnected from TigrisDB server")

    def __enter__(self) -> GrpcClient:
        self.connect()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _ensure_connected(self) -> None:
        if self._channel is None:
            raise RuntimeError("Not connected. Call connect() first.")

    def _metadata(self, transaction_id: str | None) -> list[tuple[str, str]]:
        if transaction_id is None:
            return []
        return [(TRANSACTION_ID_KEY, transaction_id)]

    def unary(
        self,
        method: str,
        request: dict[str, Any],
        *,
        transaction_id: str | None = None,
    ) -> grpc.Future:
        """Start a unary call and return its pending result."""
        self._ensure_connected()
        return self._unary[method].future(
            request,
            timeout=self._deadline,
            metadata=self._metadata(transaction_id),
        )

    def stream(
        self,
        method: str,
        request: dict[str, Any],
        *,
        transaction_id: str | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Start a server-streaming call; responses are pulled on demand."""
        self._ensure_connected()
        return self._stream[method](
            request,
            timeout=self._deadline,
            metadata=self._metadata(transaction_id),
        )
