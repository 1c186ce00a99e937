"""In-memory schema model consumed by the client generator.

The generator never talks to a schema compiler directly. It works against the
`SchemaAccessor` protocol, which exposes message, field and enum lookups for an
already parsed schema. `Schema` is the in-memory implementation; the capnp loader
fills one from a compiled `*.capnp` module.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace
from typing import Protocol

from capnp_client_generator.capnp_types import CAPNP_TYPE_TO_PYTHON, FieldKind, FieldKindName


@dataclass(frozen=True)
class TypeRef:
    """The element type of a repeated field, or the key/value type of a map field."""

    kind: FieldKindName
    primitive: str | None = None
    type_name: str | None = None


@dataclass(frozen=True)
class FieldDescriptor:
    """A single field of a message.

    Attributes:
        name: The field name, unique within the owning message.
        kind: The semantic kind of the field.
        owner: The name of the message that declares the field.
        primitive: The capnp primitive tag for scalar fields (e.g. "text", "int64").
        type_name: The referenced message or enum name for message/enum fields.
        element: The element type of repeated fields.
        key: The key type of map fields.
        value: The value type of map fields.
        opaque: True for message-like fields that cannot be descended into
            (interfaces, AnyPointer).
    """

    name: str
    kind: FieldKindName
    owner: str = ""
    primitive: str | None = None
    type_name: str | None = None
    element: TypeRef | None = None
    key: TypeRef | None = None
    value: TypeRef | None = None
    opaque: bool = False

    @property
    def is_message(self) -> bool:
        return self.kind == FieldKind.MESSAGE

    @property
    def is_enum(self) -> bool:
        return self.kind == FieldKind.ENUM

    @property
    def is_repeated(self) -> bool:
        return self.kind == FieldKind.REPEATED

    @property
    def is_map(self) -> bool:
        return self.kind == FieldKind.MAP

    @classmethod
    def scalar(cls, name: str, primitive: str) -> FieldDescriptor:
        """Create a scalar field with the given capnp primitive tag."""
        if primitive not in CAPNP_TYPE_TO_PYTHON:
            raise ValueError(f"Unknown primitive type '{primitive}' for field '{name}'.")
        return cls(name, FieldKind.SCALAR, primitive=primitive)

    @classmethod
    def enum(cls, name: str, enum_name: str) -> FieldDescriptor:
        """Create an enum field referencing the enum `enum_name`."""
        return cls(name, FieldKind.ENUM, type_name=enum_name)

    @classmethod
    def message(cls, name: str, message_name: str, opaque: bool = False) -> FieldDescriptor:
        """Create a field referencing the message `message_name`."""
        return cls(name, FieldKind.MESSAGE, type_name=message_name, opaque=opaque)

    @classmethod
    def repeated(cls, name: str, element: TypeRef) -> FieldDescriptor:
        """Create a repeated field with the given element type."""
        return cls(name, FieldKind.REPEATED, element=element)

    @classmethod
    def map(cls, name: str, key: TypeRef, value: TypeRef) -> FieldDescriptor:
        """Create a map field with the given key and value types."""
        return cls(name, FieldKind.MAP, key=key, value=value)


@dataclass(frozen=True)
class MessageSchema:
    """A named message type with an ordered set of fields."""

    name: str
    fields: tuple[FieldDescriptor, ...] = ()

    def __post_init__(self):
        """Sanity check for field name uniqueness."""
        seen: set[str] = set()
        for message_field in self.fields:
            if message_field.name in seen:
                raise ValueError(f"Duplicate field '{message_field.name}' in message '{self.name}'.")
            seen.add(message_field.name)

    @classmethod
    def create(cls, name: str, fields: Iterable[FieldDescriptor] = ()) -> MessageSchema:
        """Create a message and bind every field to it as owner.

        Args:
            name (str): The message name.
            fields (Iterable[FieldDescriptor]): The fields, in declaration order.

        Returns:
            MessageSchema: The new message.
        """
        return cls(name, tuple(replace(f, owner=name) for f in fields))

    def field(self, name: str) -> FieldDescriptor | None:
        for message_field in self.fields:
            if message_field.name == name:
                return message_field
        return None

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]


@dataclass(frozen=True)
class EnumSchema:
    """A named enum with its values in declaration order."""

    name: str
    values: tuple[str, ...] = ()


@dataclass(frozen=True)
class MethodDescriptor:
    """A remote method: its input/output messages and two independent streaming flags."""

    name: str
    input_type: str
    output_type: str
    client_streaming: bool = False
    server_streaming: bool = False


@dataclass(frozen=True)
class ServiceDescriptor:
    """A service (capnp interface) with its methods in declaration order."""

    name: str
    methods: tuple[MethodDescriptor, ...] = ()
    source: str = ""

    def method(self, name: str) -> MethodDescriptor | None:
        for method in self.methods:
            if method.name == name:
                return method
        return None


class SchemaAccessor(Protocol):
    """Lookups the generator needs from an already parsed schema."""

    def message(self, name: str) -> MessageSchema | None: ...

    def lookup_field(self, message: MessageSchema, name: str) -> FieldDescriptor | None: ...

    def field_kind(self, message_field: FieldDescriptor) -> FieldKindName: ...

    def referenced_message(self, message_field: FieldDescriptor) -> MessageSchema: ...

    def enum_values(self, message_field: FieldDescriptor | TypeRef) -> list[str]: ...


class Schema:
    """Registry of messages and enums, implementing `SchemaAccessor`.

    Messages and enums are added while the schema is built and are treated as
    immutable afterwards.
    """

    def __init__(self) -> None:
        """Initialize an empty schema."""
        self._messages: dict[str, MessageSchema] = {}
        self._enums: dict[str, EnumSchema] = {}

    def add_message(self, message: MessageSchema) -> MessageSchema:
        if message.name in self._messages:
            raise ValueError(f"Message '{message.name}' is already registered.")
        self._messages[message.name] = message
        return message

    def add_enum(self, enum: EnumSchema) -> EnumSchema:
        if enum.name in self._enums:
            raise ValueError(f"Enum '{enum.name}' is already registered.")
        self._enums[enum.name] = enum
        return enum

    def has_message(self, name: str) -> bool:
        return name in self._messages

    def has_enum(self, name: str) -> bool:
        return name in self._enums

    def message(self, name: str) -> MessageSchema | None:
        return self._messages.get(name)

    def enum(self, name: str) -> EnumSchema | None:
        return self._enums.get(name)

    def messages(self) -> Iterator[MessageSchema]:
        return iter(self._messages.values())

    def lookup_field(self, message: MessageSchema, name: str) -> FieldDescriptor | None:
        return message.field(name)

    def field_kind(self, message_field: FieldDescriptor) -> FieldKindName:
        return message_field.kind

    def referenced_message(self, message_field: FieldDescriptor) -> MessageSchema:
        """Return the message referenced by a message-kind field.

        Args:
            message_field (FieldDescriptor): A message-kind field.

        Returns:
            MessageSchema: The referenced message.

        Raises:
            ValueError: If the field is not message-kind, or is opaque.
            KeyError: If the referenced message is not registered.
        """
        if not message_field.is_message or message_field.opaque or message_field.type_name is None:
            raise ValueError(f"Field '{message_field.name}' does not reference a message.")
        message = self._messages.get(message_field.type_name)
        if message is None:
            raise KeyError(f"Message '{message_field.type_name}' is not registered.")
        return message

    def enum_values(self, message_field: FieldDescriptor | TypeRef) -> list[str]:
        """Return the declared values of an enum-kind field or type reference.

        Unknown enums have no values.
        """
        if message_field.kind != FieldKind.ENUM or message_field.type_name is None:
            raise ValueError(f"{message_field!r} is not an enum.")
        enum = self._enums.get(message_field.type_name)
        return list(enum.values) if enum is not None else []
