"""
Integration test fixtures for TigrisDB SDK.

Runs an in-process gRPC server on localhost with JSON handlers standing in
for the database:
- FakeTigrisService: db1 with collections db1_c0..db1_c4, documents in db1_c1
- FailingTigrisService: rejects calls with FAILED_PRECONDITION unless the
  database name allows them
"""

import json
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any, Generator

import grpc
import pytest
from pydantic import BaseModel

from tigrisdb_sdk import _grpc_client as rpc
from tigrisdb_sdk.auth import StaticTokenService
from tigrisdb_sdk.client import TigrisAsyncClient, TigrisClient
from tigrisdb_sdk.config import NetworkConfig, TigrisConfiguration
from tigrisdb_sdk.registry import CollectionRegistry

ALLOW_BEGIN_TRANSACTION_DB_NAME = "pass-begin"
ALLOW_COMMIT_TRANSACTION_DB_NAME = "pass-commit"
ALLOW_ROLLBACK_TRANSACTION_DB_NAME = "pass-rollback"
SLOW_DB_NAME = "slow"
TEST_TOKEN = "test-token"
CREATED_AT = "2022-05-01T10:00:00Z"


class DB1_C1(BaseModel):
    id: int
    name: str


def _matches(document: dict[str, Any], filter: dict[str, Any]) -> bool:
    return all(document.get(key) == value for key, value in filter.items())


class FakeTigrisService:
    """In-memory database with a fixed starting dataset."""

    def __init__(self) -> None:
        self.databases: dict[str, set[str]] = {
            "db1": {f"db1_c{i}" for i in range(5)},
            "db2": {f"db2_c{i}" for i in range(5)},
        }
        self.documents: dict[tuple[str, str], list[dict[str, Any]]] = {
            ("db1", "db1_c1"): [{"id": i, "name": f"db1_c1_d{i}"} for i in range(5)],
        }
        self.schemas: dict[tuple[str, str], dict[str, Any]] = {}
        self.transactions: dict[str, str] = {}
        self.calls: list[tuple[str, dict[str, str]]] = []
        self._lock = threading.Lock()

    def record(self, method: str, context: grpc.ServicerContext) -> dict[str, str]:
        metadata = {key: value for key, value in context.invocation_metadata()}
        with self._lock:
            self.calls.append((method, metadata))
        return metadata

    def transaction_ids(self, method: str) -> list[str | None]:
        """tx-id metadata seen for each call of ``method``."""
        return [md.get(rpc.TRANSACTION_ID_KEY) for name, md in self.calls if name == method]

    def ListDatabases(self, request, context):
        return {"databases": [{"db": name} for name in sorted(self.databases)]}

    def CreateDatabase(self, request, context):
        db = request["db"]
        if db in self.databases:
            context.abort(grpc.StatusCode.ALREADY_EXISTS, f"database {db} already exists")
        self.databases[db] = set()
        return {"message": f"{db} created"}

    def DropDatabase(self, request, context):
        db = request["db"]
        self.databases.pop(db, None)
        return {"message": f"{db} dropped"}

    def ListCollections(self, request, context):
        db = request["db"]
        if db == SLOW_DB_NAME:
            time.sleep(1.0)
        return {
            "collections": [
                {"collection": name} for name in sorted(self.databases.get(db, ()))
            ]
        }

    def CreateOrUpdateCollection(self, request, context):
        db, collection = request["db"], request["collection"]
        self.databases.setdefault(db, set()).add(collection)
        self.schemas[(db, collection)] = json.loads(request["schema"])
        return {"message": f"{collection} created"}

    def DropCollection(self, request, context):
        db, collection = request["db"], request["collection"]
        self.databases.get(db, set()).discard(collection)
        return {"message": f"{collection} dropped"}

    def BeginTransaction(self, request, context):
        transaction_id = str(uuid.uuid4())
        self.transactions[transaction_id] = request["db"]
        return {"tx_ctx": {"id": transaction_id}}

    def _end_transaction(self, request, context, status: str):
        metadata = dict(context.invocation_metadata())
        transaction_id = request["tx_ctx"]["id"]
        if metadata.get(rpc.TRANSACTION_ID_KEY) != transaction_id:
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, "transaction id mismatch")
        if self.transactions.pop(transaction_id, None) is None:
            context.abort(grpc.StatusCode.NOT_FOUND, f"transaction {transaction_id} not found")
        return {"status": status}

    def CommitTransaction(self, request, context):
        return self._end_transaction(request, context, "committed")

    def RollbackTransaction(self, request, context):
        return self._end_transaction(request, context, "rolled back")

    def _collection(self, request) -> list[dict[str, Any]]:
        return self.documents.setdefault((request["db"], request["collection"]), [])

    def Insert(self, request, context):
        documents = self._collection(request)
        for raw in request["documents"]:
            document = json.loads(raw)
            if any(d.get("id") == document.get("id") for d in documents):
                context.abort(grpc.StatusCode.ALREADY_EXISTS, "duplicate key")
            documents.append(document)
        return {"status": "inserted", "metadata": {"created_at": CREATED_AT}}

    def Replace(self, request, context):
        documents = self._collection(request)
        for raw in request["documents"]:
            document = json.loads(raw)
            documents[:] = [d for d in documents if d.get("id") != document.get("id")]
            documents.append(document)
        return {"status": "replaced", "metadata": {"created_at": CREATED_AT}}

    def Update(self, request, context):
        modified = 0
        for document in self._collection(request):
            if _matches(document, request["filter"]):
                document.update(request["fields"].get("$set", {}))
                modified += 1
        return {"status": "updated", "modified_count": modified}

    def Delete(self, request, context):
        documents = self._collection(request)
        documents[:] = [d for d in documents if not _matches(d, request["filter"])]
        return {"status": "deleted"}

    def Read(self, request, context):
        options = request.get("options") or {}
        matched = [d for d in self._collection(request) if _matches(d, request["filter"])]
        skip = options.get("skip", 0)
        limit = options.get("limit", len(matched))
        for document in matched[skip : skip + limit]:
            yield {"data": json.dumps(document)}


class FailingTigrisService(FakeTigrisService):
    """Rejects every call with FAILED_PRECONDITION "Test failure <db>".

    Database names are comma-separated allow lists: "pass-begin" lets
    BeginTransaction through, "pass-commit" and "pass-rollback" likewise.
    """

    def _fail(self, request, context):
        context.abort(grpc.StatusCode.FAILED_PRECONDITION, f"Test failure {request.get('db', '')}".rstrip())

    def _allows(self, request, allowance: str) -> bool:
        return allowance in request.get("db", "").split(",")

    def BeginTransaction(self, request, context):
        if self._allows(request, ALLOW_BEGIN_TRANSACTION_DB_NAME):
            return super().BeginTransaction(request, context)
        self._fail(request, context)

    def CommitTransaction(self, request, context):
        if self._allows(request, ALLOW_COMMIT_TRANSACTION_DB_NAME):
            return super().CommitTransaction(request, context)
        self._fail(request, context)

    def RollbackTransaction(self, request, context):
        if self._allows(request, ALLOW_ROLLBACK_TRANSACTION_DB_NAME):
            return super().RollbackTransaction(request, context)
        self._fail(request, context)

    def Read(self, request, context):
        self._fail(request, context)
        yield {}


for _method in (
    rpc.LIST_DATABASES,
    rpc.CREATE_DATABASE,
    rpc.DROP_DATABASE,
    rpc.LIST_COLLECTIONS,
    rpc.CREATE_OR_UPDATE_COLLECTION,
    rpc.DROP_COLLECTION,
    rpc.INSERT,
    rpc.REPLACE,
    rpc.UPDATE,
    rpc.DELETE,
):
    setattr(FailingTigrisService, _method, FailingTigrisService._fail)


def _recorded(service: FakeTigrisService, method: str, handler):
    def call(request, context):
        service.record(method, context)
        return handler(request, context)

    return call


def _recorded_stream(service: FakeTigrisService, method: str, handler):
    def call(request, context):
        service.record(method, context)
        yield from handler(request, context)

    return call


def start_server(service: FakeTigrisService) -> tuple[grpc.Server, int]:
    """Serve ``service`` on an ephemeral localhost port."""
    handlers = {}
    for method in rpc.UNARY_METHODS:
        handlers[method] = grpc.unary_unary_rpc_method_handler(
            _recorded(service, method, getattr(service, method)),
            request_deserializer=rpc.deserialize,
            response_serializer=rpc.serialize,
        )
    for method in rpc.STREAM_METHODS:
        handlers[method] = grpc.unary_stream_rpc_method_handler(
            _recorded_stream(service, method, getattr(service, method)),
            request_deserializer=rpc.deserialize,
            response_serializer=rpc.serialize,
        )

    server = grpc.server(ThreadPoolExecutor(max_workers=8))
    server.add_generic_rpc_handlers(
        (grpc.method_handlers_generic_handler(rpc.SERVICE_NAME, handlers),)
    )
    port = server.add_insecure_port("localhost:0")
    server.start()
    return server, port


def configuration(port: int, deadline: timedelta = timedelta(seconds=5)) -> TigrisConfiguration:
    return TigrisConfiguration(
        server_url=f"localhost:{port}",
        network=NetworkConfig(deadline=deadline, use_plaintext=True),
    )


@pytest.fixture
def registry() -> CollectionRegistry:
    """Registry with the db1_c1 document model."""
    registry = CollectionRegistry()
    registry.register(DB1_C1, name="db1_c1", primary_key=("id",))
    return registry


@pytest.fixture
def db1_c1() -> type[DB1_C1]:
    """Document model of collection db1_c1."""
    return DB1_C1


@pytest.fixture
def service() -> FakeTigrisService:
    return FakeTigrisService()


@pytest.fixture
def failing_service() -> FailingTigrisService:
    return FailingTigrisService()


@pytest.fixture
def server_port(service) -> Generator[int, None, None]:
    server, port = start_server(service)
    yield port
    server.stop(None)


@pytest.fixture
def failing_server_port(failing_service) -> Generator[int, None, None]:
    server, port = start_server(failing_service)
    yield port
    server.stop(None)


@pytest.fixture
def client(server_port, registry) -> Generator[TigrisClient, None, None]:
    client = TigrisClient(
        configuration(server_port),
        token_service=StaticTokenService(TEST_TOKEN),
        registry=registry,
    )
    yield client
    client.close()


@pytest.fixture
def async_client(server_port, registry) -> Generator[TigrisAsyncClient, None, None]:
    client = TigrisAsyncClient(
        configuration(server_port),
        token_service=StaticTokenService(TEST_TOKEN),
        registry=registry,
    )
    yield client
    client.close()


@pytest.fixture
def failing_client(failing_server_port, registry) -> Generator[TigrisClient, None, None]:
    client = TigrisClient(configuration(failing_server_port), registry=registry)
    yield client
    client.close()


@pytest.fixture
def failing_async_client(
    failing_server_port, registry
) -> Generator[TigrisAsyncClient, None, None]:
    client = TigrisAsyncClient(configuration(failing_server_port), registry=registry)
    yield client
    client.close()


@pytest.fixture
def schema_dir(tmp_path):
    """Directory holding schema files for db1_c5 and db1_c6."""
    directory = tmp_path / "schemas"
    directory.mkdir()
    for name in ("db1_c5", "db1_c6"):
        (directory / f"{name}.json").write_text(
            json.dumps(
                {
                    "name": name,
                    "properties": {"id": {"type": "integer"}, "name": {"type": "string"}},
                    "primary_key": ["id"],
                }
            )
        )
    return directory
