"""Documentation of generated client methods, derived from the same binding as the call."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from capnp_client_generator.binder import Binding, ParameterInfo
from capnp_client_generator.config import SampleMethod
from capnp_client_generator.errors import ConfigurationError
from capnp_client_generator.paths import PropertyPath
from capnp_client_generator.projector import CallDescriptor, ResultKind
from capnp_client_generator.samples import PlaceholderSample, sample_source


@dataclass(frozen=True)
class ExampleInvocation:
    """One example call of a client method.

    Attributes:
        method_name: The client method.
        arguments: The argument source text, in parameter order.
        paged: Whether the example iterates over the first page.
    """

    method_name: str
    arguments: tuple[str, ...]
    paged: bool = False


@dataclass(frozen=True)
class ParameterDoc:
    name: str
    type_name: str
    path: str | None = None


@dataclass(frozen=True)
class PageSizeNote:
    """Explains the page size parameter of paged methods."""

    parameter: str


DocumentationExtra = PageSizeNote


@dataclass(frozen=True)
class MethodDocumentation:
    summary: str
    examples: tuple[ExampleInvocation, ...]
    parameters: tuple[ParameterDoc, ...]
    extras: tuple[DocumentationExtra, ...] = ()


def _nest_overrides(prefix: PropertyPath | None, sample: SampleMethod) -> dict:
    """Collect the sample overrides below `prefix` into nested dictionaries of source text."""
    nested: dict = {}
    for dotted, value in sample.parameters.items():
        try:
            path = PropertyPath.parse(dotted)
        except ValueError as e:
            raise ConfigurationError(f"Sample parameter '{dotted}': {e}") from e
        if prefix is not None:
            if len(path) <= len(prefix) or not path.startswith(prefix):
                continue
            path = PropertyPath(path.segments[len(prefix) :])

        target = nested
        for segment in path.segments[:-1]:
            target = target.setdefault(segment, {})
            if not isinstance(target, dict):
                break
        else:
            target[path.last_segment] = value
    return nested


def _dict_source(nested: dict) -> str:
    entries = []
    for key, value in nested.items():
        rendered = _dict_source(value) if isinstance(value, dict) else value
        entries.append(f"{key!r}: {rendered}")
    return "{" + ", ".join(entries) + "}"


def _argument_source(parameter: ParameterInfo, sample: SampleMethod | None) -> str:
    if sample is not None:
        if parameter.path is not None:
            override = sample.value_for(parameter.path)
            if override is not None:
                return override
        if isinstance(parameter.sample, PlaceholderSample):
            overrides = _nest_overrides(parameter.path, sample)
            if overrides:
                return _dict_source(overrides)
    return sample_source(parameter.sample)


def _example(call: CallDescriptor, sample: SampleMethod | None) -> ExampleInvocation:
    arguments = tuple(_argument_source(p, sample) for p in call.parameters)
    return ExampleInvocation(call.method_name, arguments, paged=call.result == ResultKind.PAGED)


def document(call: CallDescriptor, binding: Binding, samples: Sequence[SampleMethod] = ()) -> MethodDocumentation:
    """Derive the documentation of a client method.

    There is one example per configured sample, where values given for a parameter
    path replace the synthesized sample. Without configured samples a single example
    uses the synthesized samples.

    Args:
        call (CallDescriptor): The call the documentation is for.
        binding (Binding): The binding the call was projected from.
        samples (Sequence[SampleMethod], optional): Configured samples. Defaults to ().

    Returns:
        MethodDocumentation: The documentation.
    """
    summary = f"Call `{call.rpc_name}` of the `{call.service}` service."
    if call.result == ResultKind.PAGED:
        summary = f"Call `{call.rpc_name}` of the `{call.service}` service and iterate over its result pages."
    elif call.result == ResultKind.OPERATION:
        summary = f"Start the long running `{call.rpc_name}` operation of the `{call.service}` service."

    examples = tuple(_example(call, s) for s in samples) if samples else (_example(call, None),)
    parameters = tuple(
        ParameterDoc(p.name, p.type_name, str(p.path) if p.path is not None else None) for p in binding.parameters
    )
    extras = (PageSizeNote(binding.page_size.name),) if binding.page_size is not None else ()
    return MethodDocumentation(summary, examples, parameters, extras)
