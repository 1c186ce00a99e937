"""Tests for sample synthesis."""

from __future__ import annotations

import pytest

from capnp_client_generator.errors import MissingEnumDefaultError
from capnp_client_generator.samples import (
    CANONICAL_PAGE_SIZE,
    DOUBLE_KEY,
    EnumSample,
    LiteralSample,
    MappingSample,
    PlaceholderSample,
    SequenceSample,
    canonical_literal,
    is_opaque,
    materialize,
    page_size_sample,
    sample_for_field,
    sample_source,
)
from capnp_client_generator.schema import FieldDescriptor, TypeRef


@pytest.mark.parametrize(
    "primitive, value",
    [
        ("text", "hi there!"),
        ("bool", True),
        ("int32", 2),
        ("uint16", 2),
        ("int64", 400),
        ("uint64", 400),
        ("float32", 4.0),
        ("float64", 2.0),
        ("data", b"hi there!"),
        ("void", None),
    ],
)
def test_canonical_literals(primitive, value):
    assert canonical_literal(primitive) == LiteralSample(value)


def test_unknown_primitive():
    with pytest.raises(KeyError):
        canonical_literal("string")


def test_page_size():
    assert page_size_sample().value == CANONICAL_PAGE_SIZE == 14


class TestSampleForField:
    def test_scalar(self, schema):
        assert sample_for_field(schema.message("Settings").field("timeout"), schema) == LiteralSample(2)

    def test_is_stable(self, schema):
        name = schema.message("CreateBookRequest").field("name")
        assert sample_for_field(name, schema) == sample_for_field(name, schema)
        assert materialize(sample_for_field(name, schema)) == "hi there!"

    def test_enum_uses_first_value(self, schema):
        assert sample_for_field(schema.message("Book").field("genre"), schema) == EnumSample("Genre", "fiction")

    def test_enum_without_values(self, schema):
        with pytest.raises(MissingEnumDefaultError) as exc_info:
            sample_for_field(schema.message("CreateBookRequest").field("empty"), schema)
        assert exc_info.value.enum_name == "Empty"
        assert exc_info.value.field_name == "empty"

    def test_repeated(self, schema):
        sample = sample_for_field(schema.message("CreateBookRequest").field("tags"), schema)
        assert sample == SequenceSample(LiteralSample("hi there!"))
        assert materialize(sample) == ["hi there!"]

    def test_repeated_enum(self, schema):
        tags = FieldDescriptor.repeated("genres", TypeRef("enum", type_name="Genre"))
        assert materialize(sample_for_field(tags, schema)) == ["fiction"]

    def test_map(self, schema):
        sample = sample_for_field(schema.message("CreateBookRequest").field("labels"), schema)
        assert sample == MappingSample(LiteralSample("hi there!"), LiteralSample("hi there!"))
        assert materialize(sample) == {"hi there!": "hi there!"}

    def test_message(self, schema):
        sample = sample_for_field(schema.message("CreateBookRequest").field("settings"), schema)
        assert sample == PlaceholderSample("Settings")
        assert is_opaque(sample)

    def test_unknown_field(self, schema):
        assert sample_for_field(None, schema) == PlaceholderSample("Any")


class TestMaterialize:
    def test_doubles_are_fresh(self):
        sample = PlaceholderSample("Book")
        first, second = materialize(sample), materialize(sample)
        assert first == second == {DOUBLE_KEY: "Book"}
        assert first is not second

    def test_message_map_keys(self):
        sample = MappingSample(PlaceholderSample("Book"), LiteralSample(2))
        assert materialize(sample) == {"Book": 2}

    def test_opaque(self):
        assert is_opaque(SequenceSample(PlaceholderSample("Book")))
        assert is_opaque(MappingSample(LiteralSample("k"), PlaceholderSample("Book")))
        assert not is_opaque(SequenceSample(LiteralSample(2)))
        assert not is_opaque(EnumSample("Genre", "fiction"))


@pytest.mark.parametrize(
    "sample",
    [
        LiteralSample("hi there!"),
        LiteralSample(b"hi there!"),
        LiteralSample(2.0),
        EnumSample("Genre", "fiction"),
        PlaceholderSample("Book"),
        SequenceSample(PlaceholderSample("Book")),
        MappingSample(LiteralSample("hi there!"), LiteralSample(400)),
        MappingSample(PlaceholderSample("Book"), LiteralSample(True)),
    ],
)
def test_sample_source_matches_materialize(sample):
    assert eval(sample_source(sample)) == materialize(sample)
