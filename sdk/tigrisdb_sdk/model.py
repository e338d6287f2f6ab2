"""
Request options and response types for TigrisDB SDK.

All types are immutable dataclasses compared by value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class DatabaseOptions:
    """Options for database-level calls."""

    def to_dict(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class CollectionOptions:
    """Options for collection DDL calls."""

    def to_dict(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class TransactionOptions:
    """Options for beginning a transaction."""

    def to_dict(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class WriteOptions:
    """Options shared by every write call."""

    def to_dict(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class ReadRequestOptions:
    """Options for reads.

    Attributes:
        limit: Maximum documents to return (server default when None)
        skip: Documents to skip before returning
    """

    limit: Optional[int] = None
    skip: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if self.limit is not None:
            options["limit"] = self.limit
        if self.skip is not None:
            options["skip"] = self.skip
        return options


@dataclass(frozen=True)
class InsertRequestOptions:
    write_options: WriteOptions = field(default_factory=WriteOptions)

    def to_dict(self) -> dict[str, Any]:
        return {"write_options": self.write_options.to_dict()}


@dataclass(frozen=True)
class InsertOrReplaceRequestOptions:
    write_options: WriteOptions = field(default_factory=WriteOptions)

    def to_dict(self) -> dict[str, Any]:
        return {"write_options": self.write_options.to_dict()}


@dataclass(frozen=True)
class UpdateRequestOptions:
    write_options: WriteOptions = field(default_factory=WriteOptions)

    def to_dict(self) -> dict[str, Any]:
        return {"write_options": self.write_options.to_dict()}


@dataclass(frozen=True)
class DeleteRequestOptions:
    write_options: WriteOptions = field(default_factory=WriteOptions)

    def to_dict(self) -> dict[str, Any]:
        return {"write_options": self.write_options.to_dict()}


@dataclass(frozen=True)
class TigrisResponse:
    """Plain server message.

    Attributes:
        message: Message returned by the server
    """

    message: Optional[str] = None


@dataclass(frozen=True)
class DatabaseInfo:
    name: str


@dataclass(frozen=True)
class CollectionInfo:
    name: str


@dataclass(frozen=True)
class ResponseMetadata:
    """Server timestamps attached to write responses."""

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class InsertResponse:
    status: str
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass(frozen=True)
class InsertOrReplaceResponse:
    status: str
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass(frozen=True)
class UpdateResponse:
    status: str
    modified_count: int = 0
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass(frozen=True)
class DeleteResponse:
    status: str
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)


@dataclass(frozen=True)
class CreateOrUpdateCollectionResponse:
    response: TigrisResponse


@dataclass(frozen=True)
class CreateOrUpdateCollectionsResponse:
    """Outcome of creating several collections in one transaction."""

    status: str
    message: str


@dataclass(frozen=True)
class DropCollectionResponse:
    response: TigrisResponse


@dataclass(frozen=True)
class CommitTransactionResponse:
    status: Optional[str] = None


@dataclass(frozen=True)
class RollbackTransactionResponse:
    status: Optional[str] = None
