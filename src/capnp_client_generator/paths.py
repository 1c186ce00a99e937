"""Property path traversal through nested message fields."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
import sys

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

from capnp_client_generator.capnp_types import CAPNP_TYPE_TO_PYTHON, FieldKind
from capnp_client_generator.errors import InvalidPathSegmentError, UnknownFieldError
from capnp_client_generator.schema import FieldDescriptor, MessageSchema, SchemaAccessor, TypeRef

logger = logging.getLogger(__name__)

PATH_SEPARATOR = "."


@dataclass(frozen=True)
class PropertyPath:
    """A non-empty sequence of field names, rooted at a method input message."""

    segments: tuple[str, ...]

    def __post_init__(self):
        """Sanity check for segment content."""
        if not self.segments:
            raise ValueError("A property path needs at least one segment.")
        for segment in self.segments:
            if not segment or PATH_SEPARATOR in segment:
                raise ValueError(f"Invalid path segment '{segment}' in {self.segments!r}.")

    @classmethod
    def parse(cls, dotted: str) -> PropertyPath:
        """Parse a dotted path like `settings.timeout`."""
        return cls(tuple(dotted.strip().split(PATH_SEPARATOR)))

    @classmethod
    def of(cls, *segments: str) -> PropertyPath:
        return cls(tuple(segments))

    @property
    def last_segment(self) -> str:
        return self.segments[-1]

    @property
    def parent(self) -> PropertyPath | None:
        if len(self.segments) == 1:
            return None
        return PropertyPath(self.segments[:-1])

    def child(self, other: PropertyPath | str) -> PropertyPath:
        """Append `other` to this path."""
        if isinstance(other, str):
            other = PropertyPath.parse(other)
        return PropertyPath(self.segments + other.segments)

    def startswith(self, prefix: PropertyPath) -> bool:
        return self.segments[: len(prefix.segments)] == prefix.segments

    @override
    def __str__(self) -> str:
        return PATH_SEPARATOR.join(self.segments)

    def __iter__(self) -> Iterator[str]:
        return iter(self.segments)

    def __len__(self) -> int:
        return len(self.segments)


@dataclass(frozen=True)
class ProtoFieldInfo:
    """The result of resolving a property path.

    Attributes:
        field: The terminal field.
        message: The message that owns the terminal field.
        type_name: The semantic type exposed to callers, as a Python annotation string.
        path: The path that was resolved.
    """

    field: FieldDescriptor
    message: MessageSchema
    type_name: str
    path: PropertyPath


def _type_ref_name(ref: TypeRef) -> str:
    if ref.kind == FieldKind.SCALAR and ref.primitive is not None:
        return CAPNP_TYPE_TO_PYTHON[ref.primitive]
    return ref.type_name or "Any"


def semantic_type(message_field: FieldDescriptor) -> str:
    """Return the type a caller sees for a field.

    Scalars map to their Python builtin, enums and messages to their schema name,
    repeated fields to `list[...]` and maps to `dict[..., ...]`.

    Args:
        message_field (FieldDescriptor): The field.

    Returns:
        str: The type as an annotation string.
    """
    kind = message_field.kind
    if kind == FieldKind.SCALAR:
        return CAPNP_TYPE_TO_PYTHON.get(message_field.primitive or "", "Any")
    elif kind in (FieldKind.ENUM, FieldKind.MESSAGE):
        return message_field.type_name or "Any"
    elif kind == FieldKind.REPEATED and message_field.element is not None:
        return f"list[{_type_ref_name(message_field.element)}]"
    elif kind == FieldKind.MAP and message_field.key is not None and message_field.value is not None:
        return f"dict[{_type_ref_name(message_field.key)}, {_type_ref_name(message_field.value)}]"
    else:
        return "Any"


def _resolve_segments(
    path: PropertyPath,
    remaining: Sequence[str],
    message: MessageSchema,
    accessor: SchemaAccessor,
) -> ProtoFieldInfo:
    segment = remaining[0]
    message_field = accessor.lookup_field(message, segment)
    if message_field is None:
        raise UnknownFieldError(str(path), segment, message.name)

    if len(remaining) == 1:
        return ProtoFieldInfo(message_field, message, semantic_type(message_field), path)

    kind = accessor.field_kind(message_field)
    if kind != FieldKind.MESSAGE or message_field.opaque:
        raise InvalidPathSegmentError(str(path), segment, message.name, "opaque" if message_field.opaque else kind)

    try:
        child = accessor.referenced_message(message_field)
    except (KeyError, ValueError) as e:
        raise UnknownFieldError(str(path), remaining[1], message_field.type_name or segment) from e

    return _resolve_segments(path, remaining[1:], child, accessor)


def resolve(path: PropertyPath, root: MessageSchema, accessor: SchemaAccessor) -> ProtoFieldInfo:
    """Resolve a property path against a message.

    Every segment but the last must name a message-kind field; the last one may be of
    any kind. Recursion depth is bounded by the path length, so cyclic message
    references in the schema are irrelevant.

    Args:
        path (PropertyPath): The path to resolve.
        root (MessageSchema): The message the path is rooted at.
        accessor (SchemaAccessor): Schema lookups.

    Returns:
        ProtoFieldInfo: The terminal field with its owning message.

    Raises:
        UnknownFieldError: If a segment is not a field of its message.
        InvalidPathSegmentError: If a non-terminal segment cannot be descended into.
    """
    info = _resolve_segments(path, path.segments, root, accessor)
    logger.debug(f"Resolved {path} on {root.name} to {info.type_name}")
    return info
