"""Projection of a binding into a call descriptor and a matching verification descriptor.

Both descriptors are derived from the same `Binding`, so the generated client and
its generated test cannot disagree on parameters, samples or request layout.
`replay` and `verify` execute the two descriptors against each other.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from capnp_client_generator import helper
from capnp_client_generator.binder import Binding, MessageConstruction, ParameterInfo, PassThrough, RequestPlan
from capnp_client_generator.capnp_types import StreamingKind, StreamingKindName
from capnp_client_generator.config import PagedResponse
from capnp_client_generator.paths import PropertyPath
from capnp_client_generator.samples import CANONICAL_PAGE_SIZE, is_opaque, materialize
from capnp_client_generator.schema import MethodDescriptor
from capnp_client_generator.shape import MethodShape

logger = logging.getLogger(__name__)


class ResultKind:
    """How the result of a call is interpreted."""

    VALUE = "value"
    PAGED = "paged"
    OPERATION = "operation"
    STREAM = "stream"


class RequestDelivery:
    """How the assembled request reaches the transport."""

    ARGUMENT = "argument"
    STREAM = "stream"


class TransportMethod:
    """Names of the transport operations the generated client calls."""

    UNARY = "unary"
    PAGED = "paged"
    LONG_RUNNING = "long_running"
    CLIENT_STREAMING = "client_streaming"
    SERVER_STREAMING = "server_streaming"
    BIDI_STREAMING = "bidi_streaming"


@dataclass(frozen=True)
class PagingPlan:
    page_size_field: str
    page_size_parameter: str
    response_page_token: str
    response_list: str


@dataclass(frozen=True)
class CallDescriptor:
    """How a generated client method calls the transport.

    Attributes:
        service: The service name.
        rpc_name: The name of the remote method.
        method_name: The name of the generated client method.
        transport: The streaming kind of the transport call.
        parameters: The method parameters, in order.
        request: How the request is assembled from the parameters.
        delivery: Whether the request is an argument of the call or sent on the outbound stream.
        result: How the result is interpreted.
        input_type: The input message type.
        output_type: The output message type.
        paging: The paging fields, for paged results.
    """

    service: str
    rpc_name: str
    method_name: str
    transport: StreamingKindName
    parameters: tuple[ParameterInfo, ...]
    request: RequestPlan
    delivery: str
    result: str
    input_type: str
    output_type: str
    paging: PagingPlan | None = None

    @property
    def transport_method(self) -> str:
        return select_transport_method(self.transport, self.result)


@dataclass(frozen=True)
class TestDouble:
    """A test double standing in for an opaque parameter."""

    __test__ = False

    parameter: str
    type_name: str


@dataclass(frozen=True)
class FieldAssertion:
    """Asserts that the field at `accessor` of the request holds the bound sample.

    Opaque samples are compared by identity, literals by equality.
    """

    accessor: PropertyPath
    parameter: ParameterInfo
    identity: bool = False


@dataclass(frozen=True)
class PassThroughCheck:
    """Asserts that the request is the whole-message parameter, ignoring overridden fields."""

    parameter: ParameterInfo
    ignored: tuple[str, ...] = ()


@dataclass(frozen=True)
class PageSizeAssertion:
    """Asserts that the page size field of the request holds the page size parameter."""

    accessor: PropertyPath
    parameter: ParameterInfo
    expected: int = CANONICAL_PAGE_SIZE


@dataclass(frozen=True)
class StreamedRequestAssertion:
    """Asserts that the request was sent as first message on the outbound stream."""

    message_type: str


VerificationExtension = PageSizeAssertion | StreamedRequestAssertion


@dataclass(frozen=True)
class ResultExpectation:
    """What the test expects the client method to return.

    With `identity` the result is the transport's return value, otherwise it only has
    to be present.
    """

    kind: str
    identity: bool = True


@dataclass(frozen=True)
class VerificationDescriptor:
    """What a generated test asserts about one generated client method."""

    test_name: str
    method_name: str
    transport_method: str
    arguments: tuple[ParameterInfo, ...]
    doubles: tuple[TestDouble, ...]
    pass_through: PassThroughCheck | None
    assertions: tuple[FieldAssertion, ...]
    extensions: tuple[VerificationExtension, ...]
    result: ResultExpectation

    @property
    def streams_request(self) -> bool:
        return any(isinstance(e, StreamedRequestAssertion) for e in self.extensions)

    @property
    def page_size(self) -> PageSizeAssertion | None:
        for extension in self.extensions:
            if isinstance(extension, PageSizeAssertion):
                return extension
        return None


class NameRegistry:
    """Assigns unique client method and test names within one generation pass.

    Names are keyed by (service, rpc, signature index), so asking twice for the same
    signature returns the same name. Further signatures of an rpc get a numbered suffix.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._method_names: dict[tuple[str, str, int], str] = {}
        self._test_names: dict[tuple[str, str, int], str] = {}
        self._taken_methods: dict[str, set[str]] = {}
        self._taken_tests: set[str] = set()

    @staticmethod
    def _unique(base: str, taken: set[str]) -> str:
        candidate = base
        counter = 0
        while candidate in taken:
            counter += 1
            candidate = f"{base}_{counter}"
        taken.add(candidate)
        return candidate

    def method_name(self, service: str, rpc: str, signature: int = 0) -> str:
        key = (service, rpc, signature)
        if key not in self._method_names:
            taken = self._taken_methods.setdefault(service, set())
            self._method_names[key] = self._unique(helper.snake_case(rpc), taken)
        return self._method_names[key]

    def test_name(self, service: str, rpc: str, signature: int = 0) -> str:
        key = (service, rpc, signature)
        if key not in self._test_names:
            base = f"test_{helper.snake_case(service)}_{self.method_name(service, rpc, signature)}"
            self._test_names[key] = self._unique(base, self._taken_tests)
        return self._test_names[key]


def select_transport_method(transport: StreamingKindName, result: str) -> str:
    """Map a streaming kind and result kind to the transport operation."""
    if transport == StreamingKind.UNARY:
        if result == ResultKind.PAGED:
            return TransportMethod.PAGED
        elif result == ResultKind.OPERATION:
            return TransportMethod.LONG_RUNNING
        return TransportMethod.UNARY
    return transport


def _result_kind(shape: MethodShape) -> str:
    if shape.paged:
        return ResultKind.PAGED
    elif shape.long_running:
        return ResultKind.OPERATION
    elif not shape.is_unary:
        return ResultKind.STREAM
    return ResultKind.VALUE


def _doubles(parameters: tuple[ParameterInfo, ...]) -> tuple[TestDouble, ...]:
    return tuple(TestDouble(p.name, p.type_name) for p in parameters if is_opaque(p.sample))


def _request_checks(binding: Binding) -> tuple[PassThroughCheck | None, tuple[FieldAssertion, ...]]:
    page_size = binding.page_size
    if isinstance(binding.request, PassThrough):
        ignored = tuple(o.field_name for o in binding.request.overrides)
        return PassThroughCheck(binding.request.parameter, ignored), ()

    assertions = tuple(
        FieldAssertion(path, leaf.parameter, is_opaque(leaf.parameter.sample))
        for path, leaf in binding.request.leaves()
        if leaf.parameter is not page_size
    )
    return None, assertions


def project(
    shape: MethodShape,
    method: MethodDescriptor,
    binding: Binding,
    registry: NameRegistry,
    service: str = "",
    signature: int = 0,
    paging: PagedResponse | None = None,
) -> tuple[CallDescriptor, VerificationDescriptor]:
    """Project one binding into a call descriptor and a verification descriptor.

    Args:
        shape (MethodShape): The shape of the method.
        method (MethodDescriptor): The method.
        binding (Binding): The bound parameters and request plan.
        registry (NameRegistry): Names of the current generation pass.
        service (str, optional): The service the method belongs to. Defaults to "".
        signature (int, optional): The index of the signature among the method's signatures. Defaults to 0.
        paging (PagedResponse | None, optional): The paging fields of a paged method. Defaults to None.

    Returns:
        tuple[CallDescriptor, VerificationDescriptor]: The two descriptors.
    """
    method_name = registry.method_name(service, method.name, signature)
    result = _result_kind(shape)
    delivery = RequestDelivery.STREAM if shape.streams_requests else RequestDelivery.ARGUMENT

    paging_plan = None
    if shape.paged and paging is not None and binding.page_size is not None:
        paging_plan = PagingPlan(
            paging.page_size, binding.page_size.name, paging.response_page_token, paging.response_list
        )

    call = CallDescriptor(
        service=service,
        rpc_name=method.name,
        method_name=method_name,
        transport=shape.streaming_kind,
        parameters=binding.parameters,
        request=binding.request,
        delivery=delivery,
        result=result,
        input_type=method.input_type,
        output_type=method.output_type,
        paging=paging_plan,
    )

    extensions: list[VerificationExtension] = []
    if binding.page_size is not None and paging is not None:
        extensions.append(PageSizeAssertion(PropertyPath.of(paging.page_size), binding.page_size))
    if delivery == RequestDelivery.STREAM:
        extensions.append(StreamedRequestAssertion(method.input_type))

    pass_through, assertions = _request_checks(binding)
    verification = VerificationDescriptor(
        test_name=registry.test_name(service, method.name, signature),
        method_name=method_name,
        transport_method=call.transport_method,
        arguments=binding.parameters,
        doubles=_doubles(binding.parameters),
        pass_through=pass_through,
        assertions=assertions,
        extensions=tuple(extensions),
        result=ResultExpectation(result, identity=result != ResultKind.OPERATION),
    )

    logger.debug(f"Projected {service}.{method.name} to {method_name} ({call.transport_method})")
    return call, verification


def _build(construction: MessageConstruction, arguments: Mapping[str, Any]) -> dict[str, Any]:
    message: dict[str, Any] = {}
    for entry in construction.fields:
        if isinstance(entry, MessageConstruction):
            message[entry.field_name] = _build(entry, arguments)
        else:
            message[entry.field_name] = arguments[entry.parameter.name]
    return message


def replay(call: CallDescriptor, arguments: Mapping[str, Any]) -> Any:
    """Assemble the request of a call from argument values, the way the generated client does.

    Args:
        call (CallDescriptor): The call.
        arguments (Mapping[str, Any]): Argument values keyed by parameter name.

    Returns:
        Any: The request as nested dictionaries, or the passed through message.
    """
    plan = call.request
    if isinstance(plan, PassThrough):
        request = arguments[plan.parameter.name]
        if not plan.overrides:
            return request
        return {**request, **{o.field_name: arguments[o.parameter.name] for o in plan.overrides}}
    return _build(plan, arguments)


def sample_arguments(verification: VerificationDescriptor) -> dict[str, Any]:
    """Materialize the sample of every argument, keyed by parameter name."""
    return {p.name: materialize(p.sample) for p in verification.arguments}


_MISSING = object()


def _access(request: Any, accessor: PropertyPath) -> Any:
    value = request
    for segment in accessor:
        if not isinstance(value, Mapping) or segment not in value:
            return _MISSING
        value = value[segment]
    return value


def verify(verification: VerificationDescriptor, request: Any, arguments: Mapping[str, Any]) -> list[str]:
    """Evaluate the request checks of a verification descriptor.

    Args:
        verification (VerificationDescriptor): The verification.
        request (Any): The assembled request.
        arguments (Mapping[str, Any]): The argument values the request was assembled from.

    Returns:
        list[str]: A message per failed check; empty if the request passes.
    """
    failures: list[str] = []

    check = verification.pass_through
    if check is not None:
        expected = arguments[check.parameter.name]
        if not check.ignored:
            if request is not expected:
                failures.append(f"request is not the '{check.parameter.name}' argument")
        elif not isinstance(request, Mapping) or {
            k: v for k, v in request.items() if k not in check.ignored
        } != expected:
            failures.append(f"request does not carry the fields of the '{check.parameter.name}' argument")

    for assertion in verification.assertions:
        actual = _access(request, assertion.accessor)
        expected = arguments[assertion.parameter.name]
        if actual is _MISSING:
            failures.append(f"request has no field '{assertion.accessor}'")
        elif assertion.identity and actual is not expected:
            failures.append(f"request.{assertion.accessor} is not the '{assertion.parameter.name}' argument")
        elif not assertion.identity and actual != expected:
            failures.append(f"request.{assertion.accessor} == {actual!r}, expected {expected!r}")

    page_size = verification.page_size
    if page_size is not None:
        actual = _access(request, page_size.accessor)
        if actual != arguments[page_size.parameter.name]:
            failures.append(f"request.{page_size.accessor} == {actual!r}, expected the page size argument")

    return failures
