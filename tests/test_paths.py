"""Tests for property paths and their resolution through nested messages."""

from __future__ import annotations

import pytest

from capnp_client_generator.errors import InvalidPathSegmentError, ResolutionError, UnknownFieldError
from capnp_client_generator.paths import PropertyPath, resolve


class TestPropertyPath:
    def test_parse(self):
        path = PropertyPath.parse("settings.timeout")
        assert path.segments == ("settings", "timeout")
        assert str(path) == "settings.timeout"
        assert len(path) == 2
        assert list(path) == ["settings", "timeout"]

    def test_parent_and_child(self):
        path = PropertyPath.of("filter", "settings", "timeout")
        assert path.last_segment == "timeout"
        assert path.parent == PropertyPath.of("filter", "settings")
        assert PropertyPath.of("name").parent is None
        assert PropertyPath.of("filter").child("settings.timeout") == path

    def test_startswith(self):
        path = PropertyPath.parse("filter.author")
        assert path.startswith(PropertyPath.of("filter"))
        assert not path.startswith(PropertyPath.of("author"))

    @pytest.mark.parametrize("dotted", ["", "a..b", ".a", "a."])
    def test_invalid_paths(self, dotted):
        with pytest.raises(ValueError):
            PropertyPath.parse(dotted)

    def test_segments_cannot_contain_dots(self):
        with pytest.raises(ValueError):
            PropertyPath.of("a.b")


class TestResolve:
    def test_top_level_scalar(self, schema):
        info = resolve(PropertyPath.of("name"), schema.message("CreateBookRequest"), schema)
        assert info.field.name == "name"
        assert info.message.name == "CreateBookRequest"
        assert info.type_name == "str"

    def test_nested_scalar(self, schema):
        info = resolve(PropertyPath.parse("settings.timeout"), schema.message("CreateBookRequest"), schema)
        assert info.field.name == "timeout"
        assert info.message.name == "Settings"
        assert info.type_name == "int"
        assert info.path == PropertyPath.parse("settings.timeout")

    def test_deeply_nested(self, schema):
        info = resolve(PropertyPath.parse("filter.settings.mode"), schema.message("ListBooksRequest"), schema)
        assert info.message.name == "Settings"
        assert info.type_name == "Genre"

    def test_is_deterministic(self, schema):
        root = schema.message("CreateBookRequest")
        path = PropertyPath.parse("filter.settings.timeout")
        assert resolve(path, root, schema) == resolve(path, root, schema)

    @pytest.mark.parametrize(
        "dotted, type_name",
        [
            ("tags", "list[str]"),
            ("labels", "dict[str, str]"),
            ("results", "list[Book]"),
            ("book", "Book"),
            ("handle", "Library"),
            ("payload", "bytes"),
        ],
    )
    def test_terminal_segment_may_be_any_kind(self, schema, dotted, type_name):
        info = resolve(PropertyPath.parse(dotted), schema.message("CreateBookRequest"), schema)
        assert info.type_name == type_name

    @pytest.mark.parametrize(
        "dotted, segment, kind",
        [
            ("results.name", "results", "repeated"),
            ("labels.key", "labels", "map"),
            ("name.length", "name", "scalar"),
            ("empty.value", "empty", "enum"),
            ("handle.id", "handle", "opaque"),
            ("settings.timeout.seconds", "timeout", "scalar"),
        ],
    )
    def test_non_terminal_segment_must_be_a_message(self, schema, dotted, segment, kind):
        with pytest.raises(InvalidPathSegmentError) as exc_info:
            resolve(PropertyPath.parse(dotted), schema.message("CreateBookRequest"), schema)
        assert exc_info.value.segment == segment
        assert exc_info.value.kind == kind
        assert exc_info.value.path == dotted
        assert segment in str(exc_info.value)

    def test_unknown_field(self, schema):
        with pytest.raises(UnknownFieldError) as exc_info:
            resolve(PropertyPath.parse("settings.missing"), schema.message("CreateBookRequest"), schema)
        assert exc_info.value.segment == "missing"
        assert exc_info.value.message_name == "Settings"
        assert "settings.missing" in str(exc_info.value)

    def test_unregistered_message(self, schema):
        with pytest.raises(ResolutionError):
            resolve(PropertyPath.parse("ghost.name"), schema.message("Node"), schema)

    def test_cyclic_messages(self, schema):
        path = PropertyPath.parse("child.child.child.name")
        info = resolve(path, schema.message("Node"), schema)
        assert info.message.name == "Node"
        assert info.type_name == "str"
