"""Tests for projecting bindings into call and verification descriptors."""

from __future__ import annotations

import pytest

from capnp_client_generator.binder import bind
from capnp_client_generator.config import FlatteningConfig, PagedResponse
from capnp_client_generator.paths import PropertyPath
from capnp_client_generator.projector import (
    NameRegistry,
    PageSizeAssertion,
    RequestDelivery,
    ResultKind,
    StreamedRequestAssertion,
    TestDouble,
    TransportMethod,
    project,
    replay,
    sample_arguments,
    verify,
)
from capnp_client_generator.schema import MethodDescriptor
from capnp_client_generator.shape import classify

PAGING = PagedResponse("pageSize", "nextPageToken", "books")


def project_method(method, schema, flattening=None, paging=None, long_running=False, registry=None):
    shape = classify(method, flattening, paging, long_running)
    binding = bind(shape, flattening, method, schema, paging)
    return project(shape, method, binding, registry or NameRegistry(), "Library", 0, paging)


class TestProject:
    def test_whole_message(self, schema, create_book):
        call, verification = project_method(create_book, schema)

        assert call.method_name == "create_book"
        assert call.rpc_name == "createBook"
        assert call.transport_method == TransportMethod.UNARY
        assert call.delivery == RequestDelivery.ARGUMENT
        assert call.result == ResultKind.VALUE
        assert call.paging is None

        assert verification.test_name == "test_library_create_book"
        assert verification.pass_through.parameter.name == "request"
        assert verification.pass_through.ignored == ()
        assert verification.assertions == ()
        assert verification.doubles == (TestDouble("request", "CreateBookRequest"),)
        assert verification.extensions == ()
        assert verification.result.identity

    def test_flattened(self, schema, create_book):
        _, verification = project_method(create_book, schema, FlatteningConfig.of("name", "settings.timeout"))

        assert verification.pass_through is None
        assert [(str(a.accessor), a.parameter.name, a.identity) for a in verification.assertions] == [
            ("name", "name", False),
            ("settings.timeout", "timeout", False),
        ]
        assert verification.doubles == ()

    def test_flattened_message_is_checked_by_identity(self, schema, create_book):
        _, verification = project_method(create_book, schema, FlatteningConfig.of("book"))
        (assertion,) = verification.assertions
        assert assertion.identity
        assert verification.doubles == (TestDouble("book", "Book"),)

    def test_paged(self, schema, list_books):
        call, verification = project_method(list_books, schema, FlatteningConfig.of("parent"), PAGING)

        assert call.transport_method == TransportMethod.PAGED
        assert call.result == ResultKind.PAGED
        assert call.paging.page_size_field == "pageSize"
        assert call.paging.page_size_parameter == "page_size"
        assert call.paging.response_list == "books"

        assert [str(a.accessor) for a in verification.assertions] == ["parent"]
        assert verification.page_size == PageSizeAssertion(PropertyPath.of("pageSize"), call.parameters[-1])
        assert verification.page_size.expected == 14

    def test_long_running(self, schema, create_book):
        call, verification = project_method(create_book, schema, long_running=True)
        assert call.transport_method == TransportMethod.LONG_RUNNING
        assert call.result == ResultKind.OPERATION
        assert not verification.result.identity

    def test_bidi_streaming(self, schema, chat):
        call, verification = project_method(chat, schema)
        assert call.transport_method == TransportMethod.BIDI_STREAMING
        assert call.delivery == RequestDelivery.STREAM
        assert call.result == ResultKind.STREAM
        assert verification.extensions == (StreamedRequestAssertion("CreateBookRequest"),)
        assert verification.streams_request

    def test_server_streaming(self, schema, watch):
        call, verification = project_method(watch, schema)
        assert call.transport_method == TransportMethod.SERVER_STREAMING
        assert call.delivery == RequestDelivery.ARGUMENT
        assert not verification.streams_request


CONSISTENCY_CASES = [
    ("createBook", None, None, False),
    ("createBook", FlatteningConfig.of("name", "settings.timeout"), None, False),
    ("createBook", FlatteningConfig.of("tags", "labels", "results", "book", "handle", "payload"), None, False),
    ("createBook", FlatteningConfig.of("filter.settings.mode", "filter.author", "settings.retries"), None, False),
    ("createBook", None, None, True),
    ("listBooks", None, PAGING, False),
    ("listBooks", FlatteningConfig.of("parent", "filter.author"), PAGING, False),
    ("chat", FlatteningConfig.of("name"), None, False),
    ("upload", None, None, False),
    ("watch", FlatteningConfig.of("parent"), None, False),
]


@pytest.mark.parametrize("rpc, flattening, paging, long_running", CONSISTENCY_CASES)
def test_replay_satisfies_verification(schema, library, rpc, flattening, paging, long_running):
    """Assembling the request from the verification's own samples never fails its checks."""
    call, verification = project_method(library.method(rpc), schema, flattening, paging, long_running)

    arguments = sample_arguments(verification)
    assert list(arguments) == [p.name for p in call.parameters]
    assert verify(verification, replay(call, arguments), arguments) == []


class TestVerify:
    def test_detects_wrong_value(self, schema, create_book):
        call, verification = project_method(create_book, schema, FlatteningConfig.of("name", "settings.timeout"))
        arguments = sample_arguments(verification)
        request = replay(call, arguments)
        request["settings"]["timeout"] = 3

        failures = verify(verification, request, arguments)
        assert failures == ["request.settings.timeout == 3, expected 2"]

    def test_detects_missing_field(self, schema, create_book):
        call, verification = project_method(create_book, schema, FlatteningConfig.of("settings.timeout"))
        arguments = sample_arguments(verification)
        assert verify(verification, {}, arguments) == ["request has no field 'settings.timeout'"]

    def test_detects_copied_request(self, schema, create_book):
        call, verification = project_method(create_book, schema)
        arguments = sample_arguments(verification)
        request = dict(replay(call, arguments))
        assert verify(verification, request, arguments) == ["request is not the 'request' argument"]

    def test_detects_wrong_page_size(self, schema, list_books):
        call, verification = project_method(list_books, schema, paging=PAGING)
        arguments = sample_arguments(verification)
        request = replay(call, arguments)
        assert request["pageSize"] == 14
        request["pageSize"] = 15
        assert len(verify(verification, request, arguments)) == 1


class TestNameRegistry:
    def test_stable_names(self):
        registry = NameRegistry()
        assert registry.method_name("Library", "createBook") == "create_book"
        assert registry.method_name("Library", "createBook") == "create_book"
        assert registry.method_name("Library", "createBook", 1) == "create_book_1"
        assert registry.method_name("Library", "createBook", 2) == "create_book_2"

    def test_method_names_are_per_service(self):
        registry = NameRegistry()
        assert registry.method_name("Library", "createBook") == "create_book"
        assert registry.method_name("Archive", "createBook") == "create_book"

    def test_rpc_names_that_collide_after_conversion(self):
        registry = NameRegistry()
        assert registry.method_name("Library", "createBook") == "create_book"
        assert registry.method_name("Library", "create_book") == "create_book_1"

    def test_test_names_are_unique_per_pass(self):
        registry = NameRegistry()
        assert registry.test_name("Library", "createBook") == "test_library_create_book"
        assert registry.test_name("library", "createBook") == "test_library_create_book_1"
        assert registry.test_name("Library", "createBook") == "test_library_create_book"

    def test_registry_is_threaded_through_projection(self, schema, create_book):
        registry = NameRegistry()
        first, _ = project_method(create_book, schema, registry=registry)
        shape = classify(create_book, FlatteningConfig.of("name"))
        binding = bind(shape, FlatteningConfig.of("name"), create_book, schema)
        second, verification = project(shape, create_book, binding, registry, "Library", 1)
        assert (first.method_name, second.method_name) == ("create_book", "create_book_1")
        assert verification.test_name == "test_library_create_book_1"


def test_method_without_service(schema):
    method = MethodDescriptor("ping", "Book", "Book")
    call, verification = project(classify(method), method, bind(classify(method), None, method, schema), NameRegistry())
    assert call.service == ""
    assert verification.test_name == "test__ping"
