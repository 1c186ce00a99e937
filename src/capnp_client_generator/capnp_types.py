"""Types definitions that are common in capnproto schemas and generated clients."""

from __future__ import annotations

from typing import Literal

CAPNP_TYPE_TO_PYTHON = {
    "void": "None",
    "bool": "bool",
    "int8": "int",
    "int16": "int",
    "int32": "int",
    "int64": "int",
    "uint8": "int",
    "uint16": "int",
    "uint32": "int",
    "uint64": "int",
    "float32": "float",
    "float64": "float",
    "text": "str",
    "data": "bytes",
}

# Display name of the result struct that capnp uses for `-> stream` methods.
STREAM_RESULT_NAME = "StreamResult"


class CapnpFieldType:
    """Types of capnproto fields."""

    GROUP = "group"
    SLOT = "slot"


class CapnpElementType:
    """Types of capnproto elements."""

    ENUM = "enum"
    STRUCT = "struct"
    CONST = "const"
    LIST = "list"
    ANY_POINTER = "anyPointer"
    INTERFACE = "interface"


class FieldKind:
    """Semantic kinds of message fields, as seen by the client generator."""

    SCALAR = "scalar"
    ENUM = "enum"
    MESSAGE = "message"
    REPEATED = "repeated"
    MAP = "map"


FieldKindName = Literal["scalar", "enum", "message", "repeated", "map"]


class StreamingKind:
    """Streaming kinds of a remote method."""

    UNARY = "unary"
    CLIENT_STREAMING = "client_streaming"
    SERVER_STREAMING = "server_streaming"
    BIDI_STREAMING = "bidi_streaming"


StreamingKindName = Literal["unary", "client_streaming", "server_streaming", "bidi_streaming"]
