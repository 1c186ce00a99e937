"""Binding of method shapes and flattening paths to call parameters.

A `Binding` holds the ordered call parameters together with the plan that
assembles the request message from them. Both the generated client and the
generated test are projected from the same binding.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from capnp_client_generator import helper
from capnp_client_generator.config import FlatteningConfig, PagedResponse
from capnp_client_generator.errors import MissingEnumDefaultError, ParameterBindingError, ResolutionError
from capnp_client_generator.paths import PropertyPath, ProtoFieldInfo, resolve
from capnp_client_generator.samples import PlaceholderSample, Sample, page_size_sample, sample_for_field
from capnp_client_generator.schema import MessageSchema, MethodDescriptor, SchemaAccessor
from capnp_client_generator.shape import MethodShape

logger = logging.getLogger(__name__)

REQUEST_PARAMETER = "request"
PAGE_SIZE_PARAMETER = "page_size"
SELF_PARAMETER = "self"


@dataclass(frozen=True)
class ParameterInfo:
    """A parameter of a generated call.

    Attributes:
        name: The Python parameter name.
        type_name: The semantic type of the parameter.
        sample: The synthesized sample value.
        field_info: The resolved field the parameter was flattened from. None for the
            whole-message and the page size parameters.
    """

    name: str
    type_name: str
    sample: Sample
    field_info: ProtoFieldInfo | None = None

    @property
    def path(self) -> PropertyPath | None:
        return self.field_info.path if self.field_info is not None else None


@dataclass(frozen=True)
class FieldBinding:
    """Sets the field `field_name` of the message under construction from a parameter."""

    field_name: str
    parameter: ParameterInfo


@dataclass(frozen=True)
class MessageConstruction:
    """Builds a message from leaf parameters and nested sub-messages.

    Attributes:
        message_name: The type of the message that is built.
        path: The path of the message relative to the request, None for the request itself.
        fields: Field bindings and nested constructions, in order of first appearance.
    """

    message_name: str
    path: PropertyPath | None
    fields: tuple[FieldBinding | MessageConstruction, ...]

    @property
    def field_name(self) -> str | None:
        return self.path.last_segment if self.path is not None else None

    def leaves(self) -> Iterator[tuple[PropertyPath, FieldBinding]]:
        """Iterate over all field bindings with their full path, depth first."""
        for entry in self.fields:
            if isinstance(entry, MessageConstruction):
                yield from entry.leaves()
            elif self.path is None:
                yield PropertyPath.of(entry.field_name), entry
            else:
                yield self.path.child(entry.field_name), entry

    def steps(self) -> list[MessageConstruction]:
        """Return the constructions in the order they are built: children before their parent."""
        ordered: list[MessageConstruction] = []
        for entry in self.fields:
            if isinstance(entry, MessageConstruction):
                ordered.extend(entry.steps())
        ordered.append(self)
        return ordered


@dataclass(frozen=True)
class PassThrough:
    """Uses a whole-message parameter as request, with some fields replaced."""

    parameter: ParameterInfo
    message_name: str
    overrides: tuple[FieldBinding, ...] = ()


RequestPlan = PassThrough | MessageConstruction


@dataclass(frozen=True)
class Binding:
    """The ordered parameters of a call and the plan to assemble its request."""

    parameters: tuple[ParameterInfo, ...]
    request: RequestPlan
    page_size: ParameterInfo | None = None

    @property
    def flattened(self) -> bool:
        return isinstance(self.request, MessageConstruction)


def _page_size_parameter(
    method: MethodDescriptor,
    root: MessageSchema,
    paging: PagedResponse | None,
    accessor: SchemaAccessor,
) -> ParameterInfo:
    if paging is None:
        raise ParameterBindingError(method.name, None, "the method is paged but no paging fields are configured")
    if accessor.lookup_field(root, paging.page_size) is None:
        raise ParameterBindingError(
            method.name, paging.page_size, f"page size field does not exist on message '{root.name}'"
        )
    return ParameterInfo(PAGE_SIZE_PARAMETER, "int", page_size_sample())


def _check_paths(method: MethodDescriptor, paths: list[PropertyPath]):
    seen: set[PropertyPath] = set()
    for path in paths:
        if path in seen:
            raise ParameterBindingError(method.name, str(path), "the path is flattened more than once")
        seen.add(path)

    for path in paths:
        for other in paths:
            if other != path and other.startswith(path):
                raise ParameterBindingError(
                    method.name, str(path), f"the path is both a parameter and a prefix of '{other}'"
                )


def _parameter_names(method: MethodDescriptor, paths: list[PropertyPath], reserved: set[str]) -> list[str]:
    short_names = [helper.snake_case(p.last_segment) for p in paths]
    names = []
    for path, short_name in zip(paths, short_names):
        if short_names.count(short_name) > 1 or short_name in reserved:
            joined = helper.snake_case("_".join(path.segments))
            names.append(f"{joined}_" if joined in reserved else joined)
        else:
            names.append(short_name)

    for path, name in zip(paths, names):
        if names.count(name) > 1 or name in reserved:
            raise ParameterBindingError(method.name, str(path), f"parameter name '{name}' is ambiguous")
    return names


def _construct(
    message_name: str,
    prefix: PropertyPath | None,
    leaves: list[tuple[tuple[str, ...], ParameterInfo]],
    infos: dict[PropertyPath, ProtoFieldInfo],
) -> MessageConstruction:
    """Group leaves by their first segment into a construction tree.

    Args:
        message_name (str): The type of the message under construction.
        prefix (PropertyPath | None): The path of the message, None for the request.
        leaves (list): Leaf parameters keyed by their path relative to the message.
        infos (dict): Resolved fields of all message-kind prefixes.

    Returns:
        MessageConstruction: The construction tree.
    """
    groups: dict[str, list[tuple[tuple[str, ...], ParameterInfo]]] = {}
    for segments, parameter in leaves:
        groups.setdefault(segments[0], []).append((segments, parameter))

    fields: list[FieldBinding | MessageConstruction] = []
    for segment, members in groups.items():
        if len(members) == 1 and len(members[0][0]) == 1:
            fields.append(FieldBinding(segment, members[0][1]))
            continue

        path = prefix.child(segment) if prefix is not None else PropertyPath.of(segment)
        sub_message = infos[path].field.type_name or infos[path].type_name
        fields.append(_construct(sub_message, path, [(s[1:], p) for s, p in members], infos))

    return MessageConstruction(message_name, prefix, tuple(fields))


def _bind_whole_message(
    shape: MethodShape,
    method: MethodDescriptor,
    root: MessageSchema,
    accessor: SchemaAccessor,
    paging: PagedResponse | None,
) -> Binding:
    request = ParameterInfo(REQUEST_PARAMETER, method.input_type, PlaceholderSample(method.input_type))
    if not shape.paged:
        return Binding((request,), PassThrough(request, method.input_type))

    page_size = _page_size_parameter(method, root, paging, accessor)
    plan = PassThrough(request, method.input_type, (FieldBinding(paging.page_size, page_size),))
    return Binding((request, page_size), plan, page_size)


def _bind_flattened(
    shape: MethodShape,
    flattening: FlatteningConfig,
    method: MethodDescriptor,
    root: MessageSchema,
    accessor: SchemaAccessor,
    paging: PagedResponse | None,
) -> Binding:
    paths = flattening.leaf_paths()
    _check_paths(method, paths)

    if shape.paged and paging is not None and PropertyPath.of(paging.page_size) in paths:
        raise ParameterBindingError(method.name, paging.page_size, "the page size field cannot be flattened")

    infos: dict[PropertyPath, ProtoFieldInfo] = {}
    for path in paths:
        try:
            infos[path] = resolve(path, root, accessor)
            prefix = path.parent
            while prefix is not None and prefix not in infos:
                infos[prefix] = resolve(prefix, root, accessor)
                prefix = prefix.parent
        except ResolutionError as e:
            raise ParameterBindingError(method.name, str(path), str(e)) from e

    reserved = {SELF_PARAMETER, PAGE_SIZE_PARAMETER} if shape.paged else {SELF_PARAMETER}
    parameters: list[ParameterInfo] = []
    for path, name in zip(paths, _parameter_names(method, paths, reserved)):
        info = infos[path]
        try:
            sample = sample_for_field(info.field, accessor)
        except MissingEnumDefaultError as e:
            raise ParameterBindingError(method.name, str(path), str(e)) from e
        parameters.append(ParameterInfo(name, info.type_name, sample, info))

    plan = _construct(method.input_type, None, [(p.path.segments, p) for p in parameters], infos)

    page_size = None
    if shape.paged:
        page_size = _page_size_parameter(method, root, paging, accessor)
        plan = MessageConstruction(plan.message_name, None, plan.fields + (FieldBinding(paging.page_size, page_size),))
        parameters.append(page_size)

    return Binding(tuple(parameters), plan, page_size)


def bind(
    shape: MethodShape,
    flattening: FlatteningConfig | None,
    method: MethodDescriptor,
    accessor: SchemaAccessor,
    paging: PagedResponse | None = None,
) -> Binding:
    """Bind the parameters of a method signature.

    Without flattening the whole input message is a single `request` parameter. With
    flattening every leaf path becomes a parameter, and leaves that share a prefix are
    set on one nested sub-message. Paged methods get an extra `page_size` parameter.

    Args:
        shape (MethodShape): The classified shape of the method.
        flattening (FlatteningConfig | None): The flattening of this signature.
        method (MethodDescriptor): The method.
        accessor (SchemaAccessor): Schema lookups.
        paging (PagedResponse | None, optional): The paging fields. Defaults to None.

    Returns:
        Binding: The parameters and request assembly plan.

    Raises:
        ParameterBindingError: If any path cannot be bound. The underlying error is chained.
    """
    root = accessor.message(method.input_type)
    if root is None:
        raise ParameterBindingError(method.name, None, f"input message '{method.input_type}' does not exist")

    if shape.flattened and flattening is not None:
        binding = _bind_flattened(shape, flattening, method, root, accessor, paging)
    else:
        binding = _bind_whole_message(shape, method, root, accessor, paging)

    logger.debug(f"Bound {method.name}({', '.join(p.name for p in binding.parameters)})")
    return binding
