"""Render call and verification descriptors into Python client and pytest modules."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from capnp_client_generator import helper
from capnp_client_generator.binder import MessageConstruction, PassThrough
from capnp_client_generator.documentation import MethodDocumentation, PageSizeNote
from capnp_client_generator.generator import GeneratedMethod, ServiceGeneration
from capnp_client_generator.paths import PropertyPath
from capnp_client_generator.projector import CallDescriptor, RequestDelivery, TransportMethod, VerificationDescriptor
from capnp_client_generator.samples import (
    EnumSample,
    LiteralSample,
    MappingSample,
    PlaceholderSample,
    Sample,
    SequenceSample,
    sample_source,
)

logger = logging.getLogger(__name__)

CLIENT_SUFFIX = "Client"
REQUEST_VARIABLE = "request"
STREAM_VARIABLE = "stream"
TRANSPORT_ATTRIBUTE = "self._transport"
MESSAGE_ANNOTATION = "dict[str, Any]"

TRANSPORT_PROTOCOL = [
    "class Transport(Protocol):",
    '    """The operations a generated client calls on its transport."""',
    "",
    "    def unary(self, rpc: str, request: dict[str, Any]) -> Any: ...",
    "",
    "    def paged(",
    "        self,",
    "        rpc: str,",
    "        request: dict[str, Any],",
    "        *,",
    "        page_size_field: str,",
    "        page_token_field: str,",
    "        results_field: str,",
    "    ) -> Iterator[Any]: ...",
    "",
    "    def long_running(self, rpc: str, request: dict[str, Any]) -> Any: ...",
    "",
    "    def client_streaming(self, rpc: str) -> Any: ...",
    "",
    "    def server_streaming(self, rpc: str, request: dict[str, Any]) -> Iterator[Any]: ...",
    "",
    "    def bidi_streaming(self, rpc: str) -> Any: ...",
]


def client_class_name(service: str) -> str:
    return f"{helper.pascal_case(service)}{CLIENT_SUFFIX}"


def sample_annotation(sample: Sample) -> str:
    """The annotation of a parameter that takes values like `sample`."""
    if isinstance(sample, LiteralSample):
        return "None" if sample.value is None else type(sample.value).__name__
    elif isinstance(sample, EnumSample):
        return "str"
    elif isinstance(sample, PlaceholderSample):
        return MESSAGE_ANNOTATION
    elif isinstance(sample, SequenceSample):
        return f"list[{sample_annotation(sample.element)}]"
    elif isinstance(sample, MappingSample):
        key = "str" if isinstance(sample.key, PlaceholderSample) else sample_annotation(sample.key)
        return f"dict[{key}, {sample_annotation(sample.value)}]"
    return "Any"


def accessor_source(variable: str, accessor: PropertyPath) -> str:
    """Render `request["a"]["b"]` for the accessor `a.b`."""
    return variable + "".join(f"[{segment!r}]" for segment in accessor)


def _dict_entries(entries: Iterable[tuple[str, str]]) -> str:
    return "{" + ", ".join(f"{key!r}: {value}" for key, value in entries) + "}"


class ClientWriter:
    """Writes a client module with one client class per service."""

    def __init__(self, source_name: str):
        """Initialize the writer.

        Args:
            source_name (str): The name of the schema file the client is generated from.
        """
        self._source_name = source_name
        self._classes: list[list[str]] = []
        self._imports: list[str] = []
        self._add_import("from __future__ import annotations")
        self._add_import("from collections.abc import Iterator")
        self._add_import("from typing import Any, Protocol")

        self.docstring = f'"""This is an automatically generated client for `{source_name}`."""'

    def _add_import(self, import_line: str):
        if import_line not in self._imports:
            self._imports.append(import_line)

    @property
    def imports(self) -> list[str]:
        return list(self._imports)

    @staticmethod
    def _local_names(call: CallDescriptor) -> tuple[dict[PropertyPath | None, str], str]:
        """Name the local variables of the built messages and the stream, avoiding parameter names.

        Returns:
            tuple[dict[PropertyPath | None, str], str]: Message variables keyed by path, and the stream variable.
        """
        taken = {p.name for p in call.parameters}

        def unique(name: str) -> str:
            while name in taken:
                name = f"{name}_"
            taken.add(name)
            return name

        plan = call.request
        if isinstance(plan, PassThrough):
            names: dict[PropertyPath | None, str] = {None: plan.parameter.name}
        else:
            names = {None: unique(REQUEST_VARIABLE)}
            for step in plan.steps():
                if step.path is not None:
                    names[step.path] = unique(f"{helper.snake_case('_'.join(step.path.segments))}_message")
        return names, unique(STREAM_VARIABLE)

    def _request_lines(self, call: CallDescriptor, names: dict[PropertyPath | None, str]) -> list[str]:
        plan = call.request
        if isinstance(plan, PassThrough):
            if not plan.overrides:
                return []
            overrides = ", ".join(f"{o.field_name!r}: {o.parameter.name}" for o in plan.overrides)
            return [f"{names[None]} = {{**{plan.parameter.name}, {overrides}}}"]

        lines = []
        for step in plan.steps():
            entries = []
            for entry in step.fields:
                if isinstance(entry, MessageConstruction):
                    entries.append((entry.field_name, names[entry.path]))
                else:
                    entries.append((entry.field_name, entry.parameter.name))
            lines.append(f"{names[step.path]} = {_dict_entries(entries)}")
        return lines

    def _call_lines(self, call: CallDescriptor, request: str, stream: str) -> list[str]:
        rpc = repr(call.rpc_name)
        method = call.transport_method

        if call.delivery == RequestDelivery.STREAM:
            return [
                f"{stream} = {TRANSPORT_ATTRIBUTE}.{method}({rpc})",
                f"{stream}.send({request})",
                f"return {stream}",
            ]

        if method == TransportMethod.PAGED and call.paging is not None:
            paging = call.paging
            return [
                f"return {TRANSPORT_ATTRIBUTE}.paged(",
                f"    {rpc},",
                f"    {request},",
                f"    page_size_field={paging.page_size_field!r},",
                f"    page_token_field={paging.response_page_token!r},",
                f"    results_field={paging.response_list!r},",
                ")",
            ]
        return [f"return {TRANSPORT_ATTRIBUTE}.{method}({rpc}, {request})"]

    @staticmethod
    def _docstring(call: CallDescriptor, documentation: MethodDocumentation) -> list[str]:
        lines = [f'"""{documentation.summary}', ""]
        for example in documentation.examples:
            lines.append("For example:")
            lines.append(f"    client = {client_class_name(call.service)}(transport)")
            lines.append(f"    result = client.{example.method_name}({helper.join_parameters(example.arguments)})")
            if example.paged:
                lines.append("    page = next(iter(result))")
            lines.append("")

        if documentation.parameters:
            lines.append("Args:")
            types = {p.name: p.type_name for p in call.parameters}
            notes = {e.parameter for e in documentation.extras if isinstance(e, PageSizeNote)}
            for parameter in documentation.parameters:
                if parameter.name in notes:
                    text = "The number of results per page."
                elif parameter.path is not None:
                    text = f"Value of `{parameter.path}` of the request."
                else:
                    text = "The request message."
                lines.append(f"    {parameter.name} ({types[parameter.name]}): {text}")
            lines.append("")

        lines.append("Returns:")
        lines.append(f"    Any: {_result_text(call)}")
        lines.append('"""')
        return lines

    def _method_lines(self, generated: GeneratedMethod) -> list[str]:
        call = generated.call
        arguments = ["self"] + [f"{p.name}: {sample_annotation(p.sample)}" for p in call.parameters]
        names, stream = self._local_names(call)

        body = self._docstring(call, generated.documentation)
        body.extend(self._request_lines(call, names))
        body.extend(self._call_lines(call, names[None], stream))
        return [helper.new_function(call.method_name, arguments, "Any"), *helper.indent(body)]

    def add_service(self, generation: ServiceGeneration):
        """Add the client class of a service.

        Args:
            generation (ServiceGeneration): The generated methods of the service.
        """
        service = generation.service.name
        lines = [
            helper.new_class_declaration(client_class_name(service)),
            f'    """Client for the `{service}` service."""',
            "",
            "    def __init__(self, transport: Transport) -> None:",
            "        self._transport = transport",
        ]
        for generated in generation.methods:
            lines.append("")
            lines.extend(helper.indent(self._method_lines(generated)))

        self._classes.append(lines)
        logger.debug(f"Added client class for {service} with {len(generation.methods)} method(s).")

    def dumps(self) -> str:
        """Generates the string output of the client module.

        Returns:
            str: The output string.
        """
        out: list[str] = [self.docstring, ""]
        out.extend(self.imports)
        out.extend(["", ""])
        out.extend(TRANSPORT_PROTOCOL)
        for lines in self._classes:
            out.extend(["", ""])
            out.extend(lines)
        out.append("")
        return "\n".join(out)


def _result_text(call: CallDescriptor) -> str:
    method = call.transport_method
    if method == TransportMethod.PAGED:
        return "An iterator over the result pages."
    elif method == TransportMethod.LONG_RUNNING:
        return "A handle of the long running operation."
    elif call.delivery == RequestDelivery.STREAM:
        return "The stream, with the request already sent as first message."
    elif method == TransportMethod.SERVER_STREAMING:
        return "The stream of responses."
    return f"The `{call.output_type}` response."


class TestWriter:
    """Writes a pytest module that verifies the generated client module."""

    __test__ = False

    def __init__(self, source_name: str, client_module: str):
        """Initialize the writer.

        Args:
            source_name (str): The name of the schema file the client is generated from.
            client_module (str): The import name of the generated client module.
        """
        self._source_name = source_name
        self._client_module = client_module
        self._clients: list[str] = []
        self._functions: list[list[str]] = []

        self.docstring = f'"""This is an automatically generated test for the client of `{source_name}`."""'

    @staticmethod
    def _fixture_name(service: str) -> str:
        return f"{helper.snake_case(service)}_client"

    def _request_source(self, verification: VerificationDescriptor) -> list[str]:
        transport = f"transport.{verification.transport_method}"
        if verification.streams_request:
            return [
                f"stream = {transport}.return_value",
                "stream.send.assert_called_once()",
                "request = stream.send.call_args.args[0]",
            ]
        return [
            f"{transport}.assert_called_once()",
            f"request = {transport}.call_args.args[1]",
        ]

    @staticmethod
    def _check_lines(verification: VerificationDescriptor) -> list[str]:
        lines = []
        check = verification.pass_through
        if check is not None:
            argument = f"the_{check.parameter.name}"
            if check.ignored:
                ignored = ", ".join(repr(i) for i in check.ignored)
                lines.append(f"assert {{k: v for k, v in request.items() if k not in ({ignored},)}} == {argument}")
            else:
                lines.append(f"assert request is {argument}")

        for assertion in verification.assertions:
            operator = "is" if assertion.identity else "=="
            actual = accessor_source("request", assertion.accessor)
            lines.append(f"assert {actual} {operator} the_{assertion.parameter.name}")

        page_size = verification.page_size
        if page_size is not None:
            lines.append(f"assert {accessor_source('request', page_size.accessor)} == {page_size.expected}")
        return lines

    @staticmethod
    def _result_lines(verification: VerificationDescriptor) -> list[str]:
        if verification.result.identity:
            return [f"assert result is transport.{verification.transport_method}.return_value"]
        return ["assert result is not None"]

    def _test_lines(self, service: str, generated: GeneratedMethod) -> list[str]:
        verification = generated.verification
        call = generated.call
        fixture = self._fixture_name(service)
        doubles = {d.parameter for d in verification.doubles}

        body = []
        for parameter in verification.arguments:
            line = f"the_{parameter.name} = {sample_source(parameter.sample)}"
            if parameter.name in doubles:
                line += f"  # stands in for {parameter.type_name}"
            body.append(line)
        body.append("")

        arguments = helper.join_parameters([f"the_{p.name}" for p in verification.arguments])
        body.append(f"result = {fixture}.{verification.method_name}({arguments})")
        body.append("")
        body.extend(self._request_source(verification))
        body.append(f"assert transport.{verification.transport_method}.call_args.args[0] == {call.rpc_name!r}")
        body.extend(self._check_lines(verification))
        body.extend(self._result_lines(verification))

        signature = helper.new_function(verification.test_name, [fixture, "transport"])
        return [signature, *helper.indent(body)]

    def add_service(self, generation: ServiceGeneration):
        """Add the tests of all generated methods of a service.

        Args:
            generation (ServiceGeneration): The generated methods of the service.
        """
        service = generation.service.name
        self._clients.append(service)
        for generated in generation.methods:
            self._functions.append(self._test_lines(service, generated))

    def dumps(self) -> str:
        """Generates the string output of the test module.

        Returns:
            str: The output string.
        """
        out: list[str] = [self.docstring, "", "from __future__ import annotations", "", "from unittest import mock", ""]
        out.append("import pytest")
        out.append("")
        if self._clients:
            names = ", ".join(client_class_name(s) for s in self._clients)
            out.append(f"from {self._client_module} import {names}")

        out.extend(["", ""])
        out.append(helper.new_decorator("pytest.fixture"))
        out.append(helper.new_function("transport", return_type="mock.MagicMock"))
        out.append("    return mock.MagicMock()")

        for service in self._clients:
            out.extend(["", ""])
            out.append(helper.new_decorator("pytest.fixture"))
            out.append(helper.new_function(self._fixture_name(service), ["transport"], client_class_name(service)))
            out.append(f"    return {client_class_name(service)}(transport)")

        for lines in self._functions:
            out.extend(["", ""])
            out.extend(lines)
        out.append("")
        return "\n".join(out)
