"""Pytest configuration and fixtures for capnp client generator tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from capnp_client_generator.config import PagedResponse
from capnp_client_generator.schema import (
    EnumSchema,
    FieldDescriptor,
    MessageSchema,
    MethodDescriptor,
    Schema,
    ServiceDescriptor,
    TypeRef,
)

TESTS_DIR = Path(__file__).parent

LIBRARY_SCHEMA = """
@0xd5e4c3b2a1f09e8d;

enum Genre {
  fiction @0;
  science @1;
}

struct Settings {
  timeout @0 :Int32;
  retries @1 :UInt8;
}

struct Book {
  name @0 :Text;
  genre @1 :Genre;
  tags @2 :List(Text);
  settings @3 :Settings;
  shelf :group {
    row @4 :UInt16;
    column @5 :UInt16;
  }
}

interface Library {
  createBook @0 (name :Text, settings :Settings) -> (book :Book);
  listBooks @1 (parent :Text, pageSize :Int32, pageToken :Text) -> (books :List(Book), nextPageToken :Text);
}
"""


def build_library_schema() -> Schema:
    """An in-memory schema with nested, repeated, map, opaque and cyclic fields."""
    schema = Schema()
    schema.add_enum(EnumSchema("Genre", ("fiction", "science")))
    schema.add_enum(EnumSchema("Empty"))

    schema.add_message(
        MessageSchema.create(
            "Settings",
            [
                FieldDescriptor.scalar("timeout", "int32"),
                FieldDescriptor.scalar("retries", "uint8"),
                FieldDescriptor.enum("mode", "Genre"),
            ],
        )
    )
    schema.add_message(
        MessageSchema.create(
            "Filter",
            [
                FieldDescriptor.scalar("author", "text"),
                FieldDescriptor.message("settings", "Settings"),
            ],
        )
    )
    schema.add_message(
        MessageSchema.create(
            "Book",
            [
                FieldDescriptor.scalar("name", "text"),
                FieldDescriptor.enum("genre", "Genre"),
            ],
        )
    )
    schema.add_message(
        MessageSchema.create(
            "CreateBookRequest",
            [
                FieldDescriptor.scalar("name", "text"),
                FieldDescriptor.message("settings", "Settings"),
                FieldDescriptor.scalar("parent", "text"),
                FieldDescriptor.repeated("tags", TypeRef("scalar", primitive="text")),
                FieldDescriptor.map("labels", TypeRef("scalar", primitive="text"), TypeRef("scalar", primitive="text")),
                FieldDescriptor.message("book", "Book"),
                FieldDescriptor.repeated("results", TypeRef("message", type_name="Book")),
                FieldDescriptor.message("handle", "Library", opaque=True),
                FieldDescriptor.enum("empty", "Empty"),
                FieldDescriptor.message("filter", "Filter"),
                FieldDescriptor.scalar("payload", "data"),
            ],
        )
    )
    schema.add_message(
        MessageSchema.create(
            "ListBooksRequest",
            [
                FieldDescriptor.scalar("parent", "text"),
                FieldDescriptor.scalar("pageSize", "int32"),
                FieldDescriptor.scalar("pageToken", "text"),
                FieldDescriptor.message("filter", "Filter"),
            ],
        )
    )
    schema.add_message(
        MessageSchema.create(
            "ListBooksResponse",
            [
                FieldDescriptor.repeated("books", TypeRef("message", type_name="Book")),
                FieldDescriptor.scalar("nextPageToken", "text"),
            ],
        )
    )
    schema.add_message(
        MessageSchema.create(
            "Node",
            [
                FieldDescriptor.scalar("name", "text"),
                FieldDescriptor.message("child", "Node"),
                FieldDescriptor.message("ghost", "Ghost"),
            ],
        )
    )
    return schema


@pytest.fixture
def schema() -> Schema:
    return build_library_schema()


@pytest.fixture
def create_book() -> MethodDescriptor:
    return MethodDescriptor("createBook", "CreateBookRequest", "Book")


@pytest.fixture
def list_books() -> MethodDescriptor:
    return MethodDescriptor("listBooks", "ListBooksRequest", "ListBooksResponse")


@pytest.fixture
def chat() -> MethodDescriptor:
    return MethodDescriptor("chat", "CreateBookRequest", "Book", client_streaming=True, server_streaming=True)


@pytest.fixture
def upload() -> MethodDescriptor:
    return MethodDescriptor("upload", "CreateBookRequest", "Book", client_streaming=True)


@pytest.fixture
def watch() -> MethodDescriptor:
    return MethodDescriptor("watch", "ListBooksRequest", "Book", server_streaming=True)


@pytest.fixture
def library(create_book, list_books, chat, upload, watch) -> ServiceDescriptor:
    """The `Library` service with one method per streaming kind."""
    return ServiceDescriptor("Library", (create_book, list_books, chat, upload, watch), "library.capnp")


@pytest.fixture
def paging() -> PagedResponse:
    return PagedResponse("pageSize", "nextPageToken", "books")


@pytest.fixture
def library_schema_file(tmp_path) -> Path:
    """Write the library schema to a temporary directory.

    Tests that compile it are skipped when pycapnp cannot load the schema.
    """
    capnp = pytest.importorskip("capnp")
    path = tmp_path / "library.capnp"
    path.write_text(LIBRARY_SCHEMA, encoding="utf-8")
    try:
        capnp.SchemaParser().load(str(path), imports=[])
    except capnp.KjException as e:
        pytest.skip(f"pycapnp cannot compile the test schema: {e}")
    return path
