"""
Integration tests for SDK clients against an in-process server.

Tests cover:
- Database listing, creation and dropping
- Headers attached to every call
- Connection lifecycle
"""

from datetime import timedelta

import grpc
import pytest

from tigrisdb_sdk import _grpc_client as rpc
from tigrisdb_sdk.client import TigrisAsyncClient, TigrisClient
from tigrisdb_sdk.config import NetworkConfig, TigrisConfiguration
from tigrisdb_sdk.database import TigrisDatabase
from tigrisdb_sdk.errors import TransportError


def plaintext(port: int, deadline: timedelta = timedelta(seconds=5)) -> TigrisConfiguration:
    return TigrisConfiguration(
        server_url=f"localhost:{port}",
        network=NetworkConfig(deadline=deadline, use_plaintext=True),
    )


class TestTigrisClient:
    """Tests for TigrisClient."""

    def test_list_databases(self, client):
        databases = client.list_databases()

        assert [db.name for db in databases] == ["db1", "db2"]
        assert all(isinstance(db, TigrisDatabase) for db in databases)

    def test_get_database(self, client):
        db = client.get_database("db1")

        assert db.name == "db1"

    def test_create_database(self, client, service):
        response = client.create_database_if_not_exists("db3")

        assert response.message == "db3 created"
        assert "db3" in service.databases

    def test_create_existing_database(self, client):
        """An existing database is not an error."""
        response = client.create_database_if_not_exists("db1")

        assert response.message == "db1 already exists"

    def test_drop_database(self, client, service):
        response = client.drop_database("db2")

        assert response.message == "db2 dropped"
        assert "db2" not in service.databases

    def test_headers(self, client, service):
        """Calls carry the bearer token, client version and user agent."""
        client.list_databases()

        method, metadata = service.calls[-1]
        assert method == rpc.LIST_DATABASES
        assert metadata["authorization"] == "Bearer test-token"
        assert metadata["client-version"] == "1.0"
        assert metadata["user-agent"].startswith("tigrisdb-client-python.grpc")
        assert rpc.TRANSACTION_ID_KEY not in metadata

    def test_no_authorization_without_token_service(self, server_port, service, registry):
        with TigrisClient(plaintext(server_port), registry=registry) as client:
            client.list_databases()

        assert "authorization" not in service.calls[-1][1]

    def test_token_consulted_per_call(self, server_port, service, registry):
        """The token service is asked for every outgoing call."""
        tokens = iter(["first", "second"])

        class RotatingTokens:
            def get_access_token(self):
                return next(tokens)

        with TigrisClient(
            plaintext(server_port), token_service=RotatingTokens(), registry=registry
        ) as client:
            client.list_databases()
            client.list_databases()

        assert [md["authorization"] for _, md in service.calls] == [
            "Bearer first",
            "Bearer second",
        ]

    def test_calls_after_close_fail(self, server_port, registry):
        client = TigrisClient(plaintext(server_port), registry=registry)
        client.close()

        with pytest.raises(RuntimeError, match="Not connected"):
            client.list_databases()

    def test_unreachable_server(self, registry):
        """Calls to a dead endpoint fail as transport errors."""
        client = TigrisClient(
            plaintext(1, deadline=timedelta(milliseconds=300)), registry=registry
        )
        try:
            with pytest.raises(TransportError) as exc_info:
                client.list_databases()
        finally:
            client.close()

        assert exc_info.value.message.startswith("Failed to list database(s) Cause: ")
        assert exc_info.value.cause.code() in (
            grpc.StatusCode.UNAVAILABLE,
            grpc.StatusCode.DEADLINE_EXCEEDED,
        )


class TestTigrisAsyncClient:
    """Tests for TigrisAsyncClient."""

    def test_list_databases(self, async_client):
        databases = async_client.list_databases().result(timeout=5)

        assert [db.name for db in databases] == ["db1", "db2"]

    def test_create_existing_database(self, async_client):
        response = async_client.create_database_if_not_exists("db1").result(timeout=5)

        assert response.message == "db1 already exists"

    def test_create_and_drop_database(self, async_client, service):
        created = async_client.create_database_if_not_exists("db3").result(timeout=5)
        dropped = async_client.drop_database("db3").result(timeout=5)

        assert created.message == "db3 created"
        assert dropped.message == "db3 dropped"
        assert "db3" not in service.databases

    def test_owned_executor_shut_down_on_close(self, server_port, registry):
        client = TigrisAsyncClient(plaintext(server_port), registry=registry)
        executor = client.executor
        client.close()

        with pytest.raises(RuntimeError):
            executor.submit(lambda: None)
