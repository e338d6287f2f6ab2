"""
Unit tests for collection schemas.

Tests cover:
- Schema documents derived from models
- Document (de)serialization
- Schema files
"""

import json
from typing import Optional

import pytest
from pydantic import BaseModel

from tigrisdb_sdk.errors import ValidationError
from tigrisdb_sdk.schema import CollectionModel, JSONSchema, ModelSchema
from tigrisdb_sdk.validate import validate_or_raise


class Customer(BaseModel):
    id: int
    name: str
    email: Optional[str] = None


CUSTOMERS = CollectionModel(name="customers", model=Customer, primary_key=("id",))


class TestCollectionModel:
    """Tests for CollectionModel."""

    def test_to_schema(self):
        schema = CUSTOMERS.to_schema()

        assert schema["name"] == "customers"
        assert schema["type"] == "object"
        assert set(schema["properties"]) == {"id", "name", "email"}
        assert schema["required"] == ["id", "name"]
        assert schema["primary_key"] == ["id"]

    def test_schema_without_primary_key(self):
        schema = CollectionModel(name="customers", model=Customer).to_schema()

        assert "primary_key" not in schema

    def test_document_round_trip(self):
        customer = Customer(id=1, name="Ada")

        assert CUSTOMERS.from_document(CUSTOMERS.to_document(customer)) == customer


class TestModelSchema:
    """Tests for ModelSchema."""

    def test_content_is_valid(self):
        schema = ModelSchema(CUSTOMERS)

        document = validate_or_raise(schema.content())

        assert schema.name == "customers"
        assert document == json.loads(schema.content())

    def test_equality(self):
        assert ModelSchema(CUSTOMERS) == ModelSchema(CUSTOMERS)
        assert hash(ModelSchema(CUSTOMERS)) == hash(ModelSchema(CUSTOMERS))


class TestJSONSchema:
    """Tests for JSONSchema."""

    def test_name_from_file(self, tmp_path):
        path = tmp_path / "db1_c5.json"
        path.write_text('{"name": "db1_c5", "properties": {"id": {"type": "integer"}}}')

        schema = JSONSchema(path)

        assert schema.name == "db1_c5"
        assert json.loads(schema.content())["properties"] == {"id": {"type": "integer"}}

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("not json")

        with pytest.raises(ValidationError):
            JSONSchema(path).name

    def test_equality_by_path(self, tmp_path):
        path = tmp_path / "a.json"

        assert JSONSchema(path) == JSONSchema(str(path))
        assert repr(JSONSchema(path)) == f"JSONSchema(path={str(path)!r})"
