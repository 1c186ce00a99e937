"""Classification of remote methods into calling shapes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from capnp_client_generator.capnp_types import StreamingKind, StreamingKindName
from capnp_client_generator.errors import ShapeConflictError
from capnp_client_generator.schema import MethodDescriptor

if TYPE_CHECKING:
    from capnp_client_generator.config import FlatteningConfig, PagedResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MethodShape:
    """How a method is called, on four independent axes.

    `paged` and `long_running` only ever hold for unary methods, and never together.
    """

    streaming_kind: StreamingKindName
    flattened: bool
    paged: bool
    long_running: bool

    @property
    def is_unary(self) -> bool:
        return self.streaming_kind == StreamingKind.UNARY

    @property
    def streams_requests(self) -> bool:
        """Whether requests are delivered over an outbound stream."""
        return self.streaming_kind in (StreamingKind.CLIENT_STREAMING, StreamingKind.BIDI_STREAMING)


def streaming_kind(method: MethodDescriptor) -> StreamingKindName:
    """Derive the streaming kind from the two streaming flags of a method."""
    if method.client_streaming and method.server_streaming:
        return StreamingKind.BIDI_STREAMING
    elif method.client_streaming:
        return StreamingKind.CLIENT_STREAMING
    elif method.server_streaming:
        return StreamingKind.SERVER_STREAMING
    return StreamingKind.UNARY


def classify(
    method: MethodDescriptor,
    flattening: FlatteningConfig | None = None,
    paging: PagedResponse | None = None,
    long_running: bool = False,
) -> MethodShape:
    """Classify a method and its configuration into a single shape.

    Args:
        method (MethodDescriptor): The method.
        flattening (FlatteningConfig | None, optional): The flattening of one signature. Defaults to None.
        paging (PagedResponse | None, optional): The paging configuration. Defaults to None.
        long_running (bool, optional): Whether the method returns an operation handle. Defaults to False.

    Returns:
        MethodShape: The shape of the method.

    Raises:
        ShapeConflictError: If paging or long running is set on a streaming method, or both are set.
    """
    kind = streaming_kind(method)
    flattened = flattening is not None and bool(flattening.paths)
    paged = paging is not None

    if paged and kind != StreamingKind.UNARY:
        raise ShapeConflictError(method.name, f"paging is only supported for unary methods, not {kind}")
    if long_running and paged:
        raise ShapeConflictError(method.name, "a method cannot be both paged and long running")
    if long_running and kind != StreamingKind.UNARY:
        raise ShapeConflictError(method.name, f"long running is only supported for unary methods, not {kind}")

    shape = MethodShape(kind, flattened, paged, long_running)
    logger.debug(f"Classified {method.name} as {shape}")
    return shape
