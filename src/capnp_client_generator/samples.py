"""Sample values for generated call parameters.

The same literal is used for a primitive type everywhere a sample is needed, so
generated examples, generated client calls and generated tests agree.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from capnp_client_generator.capnp_types import FieldKind
from capnp_client_generator.errors import MissingEnumDefaultError
from capnp_client_generator.schema import FieldDescriptor, SchemaAccessor, TypeRef

CANONICAL_LITERALS: dict[str, Any] = {
    "void": None,
    "bool": True,
    "int8": 2,
    "int16": 2,
    "int32": 2,
    "uint8": 2,
    "uint16": 2,
    "uint32": 2,
    "int64": 400,
    "uint64": 400,
    "float32": 4.0,
    "float64": 2.0,
    "text": "hi there!",
    "data": b"hi there!",
}

CANONICAL_PAGE_SIZE = 14

# Key that marks a dictionary as a stand-in for a message the caller would build.
DOUBLE_KEY = "__double__"


@dataclass(frozen=True)
class LiteralSample:
    value: Any


@dataclass(frozen=True)
class EnumSample:
    enum_name: str
    value: str


@dataclass(frozen=True)
class PlaceholderSample:
    """Signals that a test double of `type_name` has to be substituted."""

    type_name: str


@dataclass(frozen=True)
class SequenceSample:
    element: Sample


@dataclass(frozen=True)
class MappingSample:
    key: Sample
    value: Sample


Sample = LiteralSample | EnumSample | PlaceholderSample | SequenceSample | MappingSample


def canonical_literal(primitive: str) -> LiteralSample:
    """Return the canonical literal of a capnp primitive type.

    Raises:
        KeyError: If the primitive is unknown.
    """
    return LiteralSample(CANONICAL_LITERALS[primitive])


def page_size_sample() -> LiteralSample:
    return LiteralSample(CANONICAL_PAGE_SIZE)


def _first_enum_value(enum_name: str, values: list[str], field_name: str) -> EnumSample:
    if not values:
        raise MissingEnumDefaultError(enum_name, field_name)
    return EnumSample(enum_name, values[0])


def _sample_for_ref(ref: TypeRef, accessor: SchemaAccessor, field_name: str) -> Sample:
    if ref.kind == FieldKind.SCALAR and ref.primitive in CANONICAL_LITERALS:
        return canonical_literal(ref.primitive)
    if ref.kind == FieldKind.ENUM and ref.type_name is not None:
        return _first_enum_value(ref.type_name, accessor.enum_values(ref), field_name)
    return PlaceholderSample(ref.type_name or "Any")


def sample_for_field(message_field: FieldDescriptor | None, accessor: SchemaAccessor) -> Sample:
    """Synthesize the sample of a field by its kind.

    Enums use their first declared value, scalars their canonical literal, repeated
    fields a one-element list and maps a one-entry mapping. Messages, opaque fields and
    unknown kinds get a placeholder.

    Args:
        message_field (FieldDescriptor | None): The field, or None when it is unknown.
        accessor (SchemaAccessor): Schema lookups.

    Returns:
        Sample: The sample.

    Raises:
        MissingEnumDefaultError: If an enum involved declares no values.
    """
    if message_field is None:
        return PlaceholderSample("Any")

    kind = accessor.field_kind(message_field)
    if kind == FieldKind.ENUM and message_field.type_name is not None:
        return _first_enum_value(message_field.type_name, accessor.enum_values(message_field), message_field.name)
    elif kind == FieldKind.SCALAR and message_field.primitive in CANONICAL_LITERALS:
        return canonical_literal(message_field.primitive)
    elif kind == FieldKind.REPEATED and message_field.element is not None:
        return SequenceSample(_sample_for_ref(message_field.element, accessor, message_field.name))
    elif kind == FieldKind.MAP and message_field.key is not None and message_field.value is not None:
        return MappingSample(
            _sample_for_ref(message_field.key, accessor, message_field.name),
            _sample_for_ref(message_field.value, accessor, message_field.name),
        )
    return PlaceholderSample(message_field.type_name or "Any")


def new_double(type_name: str) -> dict[str, Any]:
    """Create a fresh stand-in for a message of type `type_name`."""
    return {DOUBLE_KEY: type_name}


def materialize(sample: Sample) -> Any:
    """Turn a sample into the Python value a caller would pass.

    Every placeholder becomes a new test double, so identity can be used to check
    that a value was passed through unchanged.
    """
    if isinstance(sample, LiteralSample):
        return sample.value
    elif isinstance(sample, EnumSample):
        return sample.value
    elif isinstance(sample, PlaceholderSample):
        return new_double(sample.type_name)
    elif isinstance(sample, SequenceSample):
        return [materialize(sample.element)]
    elif isinstance(sample, MappingSample):
        # Map keys have to be hashable, so a message key is represented by its type name.
        key = sample.key.type_name if isinstance(sample.key, PlaceholderSample) else materialize(sample.key)
        return {key: materialize(sample.value)}
    raise TypeError(f"Unknown sample {sample!r}.")


def is_opaque(sample: Sample) -> bool:
    """Whether the sample involves a test double anywhere."""
    if isinstance(sample, PlaceholderSample):
        return True
    elif isinstance(sample, SequenceSample):
        return is_opaque(sample.element)
    elif isinstance(sample, MappingSample):
        return is_opaque(sample.key) or is_opaque(sample.value)
    return False


def sample_source(sample: Sample) -> str:
    """Render a sample as Python source text, matching what `materialize` returns."""
    if isinstance(sample, LiteralSample | EnumSample):
        return repr(sample.value)
    elif isinstance(sample, PlaceholderSample):
        return f"{{{DOUBLE_KEY!r}: {sample.type_name!r}}}"
    elif isinstance(sample, SequenceSample):
        return f"[{sample_source(sample.element)}]"
    elif isinstance(sample, MappingSample):
        key = repr(sample.key.type_name) if isinstance(sample.key, PlaceholderSample) else sample_source(sample.key)
        return f"{{{key}: {sample_source(sample.value)}}}"
    raise TypeError(f"Unknown sample {sample!r}.")
