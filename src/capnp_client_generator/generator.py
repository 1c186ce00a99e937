"""The batch generation pass over all methods of a set of services."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
import sys

if sys.version_info >= (3, 12):
    from typing import override
else:
    from typing_extensions import override

from capnp_client_generator.binder import Binding, bind
from capnp_client_generator.config import FlatteningConfig, GeneratorConfig, MethodConfig, ServiceConfig
from capnp_client_generator.documentation import MethodDocumentation, document
from capnp_client_generator.errors import GenerationError
from capnp_client_generator.projector import CallDescriptor, NameRegistry, VerificationDescriptor, project
from capnp_client_generator.schema import MethodDescriptor, SchemaAccessor, ServiceDescriptor
from capnp_client_generator.shape import MethodShape, classify

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Diagnostic:
    """A method that was excluded from the generated output, and why."""

    service: str
    method: str
    error: str
    message: str

    @override
    def __str__(self) -> str:
        return f"{self.service}.{self.method}: {self.error}: {self.message}"


@dataclass(frozen=True)
class GeneratedMethod:
    """One generated signature of a method."""

    shape: MethodShape
    binding: Binding
    call: CallDescriptor
    verification: VerificationDescriptor
    documentation: MethodDocumentation


@dataclass
class ServiceGeneration:
    service: ServiceDescriptor
    methods: list[GeneratedMethod] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


def apply_overrides(method: MethodDescriptor, config: MethodConfig) -> MethodDescriptor:
    """Apply the streaming overrides of the configuration to a method."""
    changes = {}
    if config.client_streaming is not None:
        changes["client_streaming"] = config.client_streaming
    if config.server_streaming is not None:
        changes["server_streaming"] = config.server_streaming
    return replace(method, **changes) if changes else method


def _generate_method(
    service: ServiceDescriptor,
    method: MethodDescriptor,
    config: MethodConfig,
    accessor: SchemaAccessor,
    registry: NameRegistry,
) -> list[GeneratedMethod]:
    # Shape conflicts are detected before any path is bound.
    classify(method, None, config.paging, config.long_running)

    signatures: list[FlatteningConfig | None] = [None, *config.flattening]
    bound: list[tuple[MethodShape, Binding]] = []
    for flattening in signatures:
        shape = classify(method, flattening, config.paging, config.long_running)
        bound.append((shape, bind(shape, flattening, method, accessor, config.paging)))

    generated = []
    for index, (shape, binding) in enumerate(bound):
        call, verification = project(shape, method, binding, registry, service.name, index, config.paging)
        generated.append(GeneratedMethod(shape, binding, call, verification, document(call, binding, config.samples)))
    return generated


def generate_service(
    service: ServiceDescriptor,
    accessor: SchemaAccessor,
    config: ServiceConfig | None = None,
    registry: NameRegistry | None = None,
) -> ServiceGeneration:
    """Generate all methods of a service.

    A method that fails is recorded as a diagnostic and excluded, the remaining
    methods are still generated.

    Args:
        service (ServiceDescriptor): The service.
        accessor (SchemaAccessor): Schema lookups.
        config (ServiceConfig | None, optional): The configuration of the service. Defaults to None.
        registry (NameRegistry | None, optional): Names of the current pass. Defaults to a new registry.

    Returns:
        ServiceGeneration: The generated methods and diagnostics.
    """
    config = config or ServiceConfig()
    registry = registry or NameRegistry()
    result = ServiceGeneration(service)

    for method in service.methods:
        method_config = config.method(method.name)
        method = apply_overrides(method, method_config)
        try:
            result.methods.extend(_generate_method(service, method, method_config, accessor, registry))
        except GenerationError as e:
            diagnostic = Diagnostic(service.name, method.name, type(e).__name__, str(e))
            logger.warning(f"Skipping {service.name}.{method.name}: {e}")
            result.diagnostics.append(diagnostic)

    unknown = sorted(set(config.methods) - {m.name for m in service.methods})
    for name in unknown:
        logger.warning(f"Configuration for unknown method {service.name}.{name} is ignored.")

    logger.debug(f"Generated {len(result.methods)} method(s) for {service.name}")
    return result


def generate(
    services: Iterable[ServiceDescriptor],
    accessor: SchemaAccessor,
    config: GeneratorConfig | None = None,
) -> list[ServiceGeneration]:
    """Run one generation pass over several services, sharing one name registry."""
    config = config or GeneratorConfig()
    registry = NameRegistry()
    return [generate_service(s, accessor, config.service(s.name), registry) for s in services]
