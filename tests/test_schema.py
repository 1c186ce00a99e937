"""Tests for the in-memory schema model."""

from __future__ import annotations

import pytest

from capnp_client_generator.capnp_types import FieldKind
from capnp_client_generator.schema import EnumSchema, FieldDescriptor, MessageSchema, ServiceDescriptor, TypeRef


class TestMessageSchema:
    def test_create_binds_owner(self):
        message = MessageSchema.create("Settings", [FieldDescriptor.scalar("timeout", "int32")])
        assert message.field("timeout").owner == "Settings"
        assert message.field_names == ["timeout"]

    def test_duplicate_field_names_are_rejected(self):
        with pytest.raises(ValueError, match="Duplicate field 'name'"):
            MessageSchema.create(
                "Book", [FieldDescriptor.scalar("name", "text"), FieldDescriptor.scalar("name", "int32")]
            )

    def test_missing_field(self):
        assert MessageSchema.create("Empty").field("name") is None

    def test_unknown_primitive(self):
        with pytest.raises(ValueError, match="Unknown primitive"):
            FieldDescriptor.scalar("name", "string")


class TestSchema:
    def test_duplicate_registration(self, schema):
        with pytest.raises(ValueError):
            schema.add_message(MessageSchema.create("Book"))
        with pytest.raises(ValueError):
            schema.add_enum(EnumSchema("Genre"))

    def test_lookups(self, schema):
        request = schema.message("CreateBookRequest")
        assert schema.has_message("CreateBookRequest")
        assert not schema.has_message("Missing")
        assert schema.message("Missing") is None
        assert schema.lookup_field(request, "tags").kind == FieldKind.REPEATED
        assert schema.field_kind(request.field("labels")) == FieldKind.MAP
        assert "Node" in [m.name for m in schema.messages()]

    def test_referenced_message(self, schema):
        request = schema.message("CreateBookRequest")
        assert schema.referenced_message(request.field("settings")).name == "Settings"

    def test_referenced_message_of_non_message_field(self, schema):
        request = schema.message("CreateBookRequest")
        with pytest.raises(ValueError):
            schema.referenced_message(request.field("name"))
        with pytest.raises(ValueError):
            schema.referenced_message(request.field("handle"))

    def test_referenced_message_not_registered(self, schema):
        with pytest.raises(KeyError):
            schema.referenced_message(schema.message("Node").field("ghost"))

    def test_enum_values(self, schema):
        book = schema.message("Book")
        assert schema.enum_values(book.field("genre")) == ["fiction", "science"]
        assert schema.enum_values(TypeRef(FieldKind.ENUM, type_name="Genre")) == ["fiction", "science"]
        assert schema.enum_values(TypeRef(FieldKind.ENUM, type_name="Unknown")) == []

    def test_enum_values_of_non_enum(self, schema):
        with pytest.raises(ValueError):
            schema.enum_values(schema.message("Book").field("name"))


def test_service_method_lookup(library):
    assert library.method("listBooks").output_type == "ListBooksResponse"
    assert library.method("missing") is None


def test_field_predicates():
    assert FieldDescriptor.message("book", "Book").is_message
    assert FieldDescriptor.enum("genre", "Genre").is_enum
    assert FieldDescriptor.repeated("tags", TypeRef(FieldKind.SCALAR, primitive="text")).is_repeated
    assert FieldDescriptor.map(
        "labels", TypeRef(FieldKind.SCALAR, primitive="text"), TypeRef(FieldKind.SCALAR, primitive="int32")
    ).is_map
