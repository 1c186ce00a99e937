"""Errors raised while resolving and binding remote methods.

Every error carries enough context (method name, dotted path) to locate the
misconfiguration in the schema or config without re-running the generator.
"""

from __future__ import annotations


class GenerationError(Exception):
    """Base class for per-method generation failures."""


class ResolutionError(GenerationError):
    """Raised when a property path cannot be resolved against a message.

    Attributes:
        path: The full dotted path that was being resolved.
        segment: The offending segment.
        message_name: The message on which the segment was looked up.
    """

    def __init__(self, path: str, segment: str, message_name: str, reason: str):
        self.path = path
        self.segment = segment
        self.message_name = message_name
        super().__init__(f"Cannot resolve '{path}': {reason}")


class UnknownFieldError(ResolutionError):
    """A path segment is not present on the message."""

    def __init__(self, path: str, segment: str, message_name: str):
        super().__init__(path, segment, message_name, f"message '{message_name}' has no field '{segment}'")


class InvalidPathSegmentError(ResolutionError):
    """A non-terminal path segment does not resolve to a message-kind field."""

    def __init__(self, path: str, segment: str, message_name: str, kind: str):
        self.kind = kind
        super().__init__(
            path,
            segment,
            message_name,
            f"segment '{segment}' of message '{message_name}' is a {kind} field and cannot be descended into",
        )


class ShapeConflictError(GenerationError):
    """Mutually exclusive shape markers are set on the same method."""

    def __init__(self, method_name: str, reason: str):
        self.method_name = method_name
        super().__init__(f"Method '{method_name}': {reason}")


class MissingEnumDefaultError(GenerationError):
    """An enum has no declared values, so no sample value can be synthesized."""

    def __init__(self, enum_name: str, field_name: str):
        self.enum_name = enum_name
        self.field_name = field_name
        super().__init__(f"Enum '{enum_name}' of field '{field_name}' declares no values.")


class ParameterBindingError(GenerationError):
    """Binding the parameters of a method failed.

    The original failure, if any, is chained as `__cause__`.
    """

    def __init__(self, method_name: str, path: str | None, reason: str):
        self.method_name = method_name
        self.path = path
        location = f" (path '{path}')" if path else ""
        super().__init__(f"Method '{method_name}'{location}: {reason}")


class ConfigurationError(GenerationError):
    """The generator configuration is malformed."""
