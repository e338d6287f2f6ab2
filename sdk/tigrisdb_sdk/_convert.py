"""
Request builders and response converters for TigrisDB SDK.

Internal module. Requests and responses are plain JSON dicts; filters,
field selections and update expressions are opaque values that are either
JSON-compatible already or expose ``to_json()``.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional, Sequence

from .model import (
    CollectionInfo,
    CommitTransactionResponse,
    CreateOrUpdateCollectionResponse,
    DatabaseInfo,
    DeleteResponse,
    DropCollectionResponse,
    InsertOrReplaceResponse,
    InsertResponse,
    ResponseMetadata,
    RollbackTransactionResponse,
    TigrisResponse,
    UpdateResponse,
)


def expression(value: Any) -> Any:
    """JSON form of a filter, field selection or update expression."""
    if value is None:
        return {}
    to_json = getattr(value, "to_json", None)
    if callable(to_json):
        rendered = to_json()
        return json.loads(rendered) if isinstance(rendered, (str, bytes)) else rendered
    return value


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def response_metadata(response: dict[str, Any]) -> ResponseMetadata:
    metadata = response.get("metadata") or {}
    return ResponseMetadata(
        created_at=parse_timestamp(metadata.get("created_at")),
        updated_at=parse_timestamp(metadata.get("updated_at")),
    )


# Requests


def database_request(db: str, options: Any = None) -> dict[str, Any]:
    request: dict[str, Any] = {"db": db}
    if options is not None:
        request["options"] = options.to_dict()
    return request


def create_or_update_collection_request(
    db: str,
    collection: str,
    schema: str,
    options: Any = None,
    only_create: bool = False,
) -> dict[str, Any]:
    return {
        "db": db,
        "collection": collection,
        "schema": schema,
        "only_create": only_create,
        "options": options.to_dict() if options is not None else {},
    }


def drop_collection_request(db: str, collection: str) -> dict[str, Any]:
    return {"db": db, "collection": collection}


def transaction_request(db: str, transaction_id: str) -> dict[str, Any]:
    return {"db": db, "tx_ctx": {"id": transaction_id}}


def read_request(
    db: str,
    collection: str,
    filter: Any,
    fields: Any = None,
    options: Any = None,
) -> dict[str, Any]:
    return {
        "db": db,
        "collection": collection,
        "filter": expression(filter),
        "fields": expression(fields),
        "options": options.to_dict() if options is not None else {},
    }


def write_request(
    db: str,
    collection: str,
    documents: Sequence[str],
    options: Any,
) -> dict[str, Any]:
    return {
        "db": db,
        "collection": collection,
        "documents": list(documents),
        "options": options.to_dict(),
    }


def update_request(
    db: str,
    collection: str,
    filter: Any,
    fields: Any,
    options: Any,
) -> dict[str, Any]:
    return {
        "db": db,
        "collection": collection,
        "filter": expression(filter),
        "fields": expression(fields),
        "options": options.to_dict(),
    }


def delete_request(db: str, collection: str, filter: Any, options: Any) -> dict[str, Any]:
    return {
        "db": db,
        "collection": collection,
        "filter": expression(filter),
        "options": options.to_dict(),
    }


# Responses


def to_database_infos(response: dict[str, Any]) -> list[DatabaseInfo]:
    return [DatabaseInfo(name=item["db"]) for item in response.get("databases", [])]


def to_collection_infos(response: dict[str, Any]) -> list[CollectionInfo]:
    return [
        CollectionInfo(name=item["collection"]) for item in response.get("collections", [])
    ]


def to_tigris_response(response: dict[str, Any]) -> TigrisResponse:
    return TigrisResponse(message=response.get("message"))


def to_create_or_update_collection_response(
    response: dict[str, Any],
) -> CreateOrUpdateCollectionResponse:
    return CreateOrUpdateCollectionResponse(to_tigris_response(response))


def to_drop_collection_response(response: dict[str, Any]) -> DropCollectionResponse:
    return DropCollectionResponse(to_tigris_response(response))


def to_transaction_id(response: dict[str, Any]) -> str:
    tx_ctx = response.get("tx_ctx") or {}
    transaction_id = tx_ctx.get("id")
    if not transaction_id:
        raise ValueError("BeginTransaction response carries no transaction id")
    return transaction_id


def to_commit_response(response: dict[str, Any]) -> CommitTransactionResponse:
    return CommitTransactionResponse(status=response.get("status"))


def to_rollback_response(response: dict[str, Any]) -> RollbackTransactionResponse:
    return RollbackTransactionResponse(status=response.get("status"))


def to_insert_response(response: dict[str, Any]) -> InsertResponse:
    return InsertResponse(status=response.get("status", ""), metadata=response_metadata(response))


def to_insert_or_replace_response(response: dict[str, Any]) -> InsertOrReplaceResponse:
    return InsertOrReplaceResponse(
        status=response.get("status", ""),
        metadata=response_metadata(response),
    )


def to_update_response(response: dict[str, Any]) -> UpdateResponse:
    return UpdateResponse(
        status=response.get("status", ""),
        modified_count=int(response.get("modified_count", 0)),
        metadata=response_metadata(response),
    )


def to_delete_response(response: dict[str, Any]) -> DeleteResponse:
    return DeleteResponse(status=response.get("status", ""), metadata=response_metadata(response))
