"""Load compiled capnp schemas into the in-memory schema model.

Notes:
    - Structs are named by their display name without the file prefix, e.g.
      `Calculator.evaluate$Params` for the implicit parameter struct of a method.
    - Interface and AnyPointer fields become opaque message fields. They are passed
      through as a whole and cannot be flattened.
"""

from __future__ import annotations

import logging
import os.path
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import capnp

from capnp_client_generator import capnp_types, helper
from capnp_client_generator.capnp_types import FieldKind
from capnp_client_generator.schema import (
    EnumSchema,
    FieldDescriptor,
    MessageSchema,
    MethodDescriptor,
    Schema,
    ServiceDescriptor,
    TypeRef,
)

if hasattr(capnp, "remove_import_hook"):
    capnp.remove_import_hook()

logger = logging.getLogger(__name__)

ANY_POINTER_TYPE = "AnyPointer"


@dataclass
class LoadedSchema:
    """The result of loading a single `*.capnp` file."""

    schema: Schema
    services: list[ServiceDescriptor] = field(default_factory=list)
    module_name: str = ""


def qualified_name(schema: Any) -> str:
    """The display name of a schema node without its file prefix.

    E.g. `calculator.capnp:Calculator.Value` becomes `Calculator.Value`.
    """
    display_name: str = schema.node.displayName
    return display_name.split(":", 1)[-1]


class SchemaLoader:
    """Walks a parsed capnp module and fills a `Schema`.

    Referenced structs are queued and converted after the struct that references
    them, so recursive structs terminate.
    """

    def __init__(self) -> None:
        """Initialize the loader."""
        self.schema = Schema()
        self.services: list[ServiceDescriptor] = []
        self._names_by_id: dict[int, str] = {}
        self._pending: list[Any] = []
        self._source = ""

    def load_module(self, module: Any, source: str = "") -> None:
        """Convert every node of a parsed module.

        Args:
            module (Any): A module returned by `capnp.SchemaParser.load`.
            source (str, optional): The schema file, recorded on the services. Defaults to "".
        """
        self._source = source
        self._walk_nested(module.schema)
        self._drain()

    def _walk_nested(self, schema: Any) -> None:
        for nested_node in schema.node.nestedNodes:
            nested_schema = schema.get_nested(nested_node.name)
            node_type = nested_schema.node.which()

            if node_type == capnp_types.CapnpElementType.STRUCT:
                self._queue_struct(nested_schema)
            elif node_type == capnp_types.CapnpElementType.ENUM:
                self._add_enum(nested_schema)
            elif node_type == capnp_types.CapnpElementType.INTERFACE:
                self._add_interface(nested_schema)
            else:
                logger.debug(f"Skipping {node_type} node {nested_node.name}")
                continue

            self._walk_nested(nested_schema)

    def _queue_struct(self, schema: Any) -> str:
        """Register the name of a struct and queue its conversion."""
        name = qualified_name(schema)
        if schema.node.id not in self._names_by_id:
            self._names_by_id[schema.node.id] = name
            self._pending.append(schema)
        return name

    def _drain(self) -> None:
        while self._pending:
            self._add_struct(self._pending.pop(0))

    def _add_struct(self, schema: Any) -> None:
        name = qualified_name(schema)
        if self.schema.has_message(name):
            return

        fields = []
        for struct_field, raw_field in zip(schema.node.struct.fields, schema.as_struct().fields_list):
            field_type = struct_field.which()
            if field_type == capnp_types.CapnpFieldType.SLOT:
                fields.append(self._slot_field(struct_field, raw_field))
            elif field_type == capnp_types.CapnpFieldType.GROUP:
                fields.append(FieldDescriptor.message(struct_field.name, self._queue_struct(raw_field.schema)))
            else:
                raise AssertionError(f"{name}: {struct_field.name}: {field_type}")

        self.schema.add_message(MessageSchema.create(name, fields))
        logger.debug(f"Loaded struct {name} with {len(fields)} field(s)")

    def _add_enum(self, schema: Any) -> str:
        name = qualified_name(schema)
        self._names_by_id.setdefault(schema.node.id, name)
        if not self.schema.has_enum(name):
            values = tuple(enumerant.name for enumerant in schema.node.enum.enumerants)
            self.schema.add_enum(EnumSchema(name, values))
        return name

    def _add_interface(self, schema: Any) -> None:
        interface_name = qualified_name(schema)
        self._names_by_id.setdefault(schema.node.id, interface_name)
        methods = []
        for method_name, method in schema.as_interface().methods.items():
            input_type = self._queue_struct(method.param_type)
            output_type = self._queue_struct(method.result_type)
            client_streaming = helper.get_display_name(method.result_type).endswith(capnp_types.STREAM_RESULT_NAME)
            methods.append(MethodDescriptor(method_name, input_type, output_type, client_streaming=client_streaming))

        self.services.append(ServiceDescriptor(interface_name, tuple(methods), self._source))
        logger.debug(f"Loaded interface {interface_name} with {len(methods)} method(s)")

    def _slot_field(self, struct_field: Any, raw_field: Any) -> FieldDescriptor:
        name = struct_field.name
        slot_type = struct_field.slot.type
        field_type = slot_type.which()

        if field_type in capnp_types.CAPNP_TYPE_TO_PYTHON:
            return FieldDescriptor.scalar(name, field_type)
        elif field_type == capnp_types.CapnpElementType.ENUM:
            return FieldDescriptor.enum(name, self._add_enum(raw_field.schema))
        elif field_type == capnp_types.CapnpElementType.STRUCT:
            return FieldDescriptor.message(name, self._queue_struct(raw_field.schema))
        elif field_type == capnp_types.CapnpElementType.LIST:
            list_schema = raw_field.schema if raw_field is not None else None
            return FieldDescriptor.repeated(name, self._element_ref(slot_type.list.elementType, list_schema))
        elif field_type == capnp_types.CapnpElementType.INTERFACE:
            return FieldDescriptor.message(name, self._name_of(slot_type.interface.typeId), opaque=True)
        else:
            return FieldDescriptor.message(name, ANY_POINTER_TYPE, opaque=True)

    def _element_ref(self, element_type: Any, list_schema: Any = None) -> TypeRef:
        """The type of list elements.

        Struct and enum elements are loaded from the list schema when it is given, so types
        from imported files get the same name as in direct fields. Otherwise they are looked
        up by node id.
        """
        element_which = element_type.which()
        if element_which in capnp_types.CAPNP_TYPE_TO_PYTHON:
            return TypeRef(FieldKind.SCALAR, primitive=element_which)
        elif element_which == capnp_types.CapnpElementType.ENUM:
            if list_schema is not None:
                return TypeRef(FieldKind.ENUM, type_name=self._add_enum(list_schema.elementType))
            return TypeRef(FieldKind.ENUM, type_name=self._name_of(element_type.enum.typeId))
        elif element_which == capnp_types.CapnpElementType.STRUCT:
            if list_schema is not None:
                return TypeRef(FieldKind.MESSAGE, type_name=self._queue_struct(list_schema.elementType))
            return TypeRef(FieldKind.MESSAGE, type_name=self._name_of(element_type.struct.typeId))
        elif element_which == capnp_types.CapnpElementType.INTERFACE:
            return TypeRef(FieldKind.MESSAGE, type_name=self._name_of(element_type.interface.typeId))
        elif element_which == capnp_types.CapnpElementType.LIST:
            return TypeRef(FieldKind.REPEATED, type_name="list")
        return TypeRef(FieldKind.MESSAGE, type_name=ANY_POINTER_TYPE)

    def _name_of(self, type_id: int) -> str:
        # Types declared in imported files that were never walked keep their id.
        return self._names_by_id.get(type_id, f"0x{type_id:x}")


def load_schema(path: str, import_paths: Sequence[str] = ()) -> LoadedSchema:
    """Parse a `*.capnp` file and convert it into the in-memory schema model.

    Args:
        path (str): The schema file.
        import_paths (Sequence[str], optional): Additional directories for absolute imports. Defaults to ().

    Returns:
        LoadedSchema: The schema, its services (interfaces) and the base name of the generated module.
    """
    parser = capnp.SchemaParser()
    module = parser.load(path, imports=list(import_paths))

    loader = SchemaLoader()
    loader.load_module(module, source=path)
    logger.info(f"Loaded {len(loader.services)} service(s) from {path}")

    module_name = helper.replace_capnp_suffix(os.path.basename(path)).removesuffix("_capnp")
    return LoadedSchema(loader.schema, loader.services, module_name)
