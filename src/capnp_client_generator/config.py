"""Per-service, per-method generator configuration loaded from YAML."""

from __future__ import annotations

import logging
import pathlib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from capnp_client_generator.errors import ConfigurationError
from capnp_client_generator.paths import PropertyPath

logger = logging.getLogger(__name__)

_SERVICE_KEYS = {"methods"}
_METHOD_KEYS = {"flattening", "paging", "long_running", "client_streaming", "server_streaming", "samples"}
_PAGING_KEYS = {"page_size", "response_page_token", "response_list"}
_FLATTENED_PATH_KEYS = {"path", "nested"}


@dataclass(frozen=True)
class FlattenedPath:
    """A flattened path, optionally with sub-paths relative to its terminal message."""

    path: PropertyPath
    nested: tuple[FlattenedPath, ...] = ()

    def expand(self) -> list[PropertyPath]:
        """Return the leaf paths of this entry, rooted at the method input message."""
        if not self.nested:
            return [self.path]
        leaves: list[PropertyPath] = []
        for sub_path in self.nested:
            leaves.extend(self.path.child(leaf) for leaf in sub_path.expand())
        return leaves


@dataclass(frozen=True)
class FlatteningConfig:
    """The flattened paths of one method signature, in declaration order."""

    paths: tuple[FlattenedPath, ...] = ()

    @classmethod
    def of(cls, *paths: str | PropertyPath | FlattenedPath) -> FlatteningConfig:
        """Create a flattening from dotted strings, paths or flattened path entries."""
        entries = []
        for path in paths:
            if isinstance(path, str):
                path = PropertyPath.parse(path)
            if isinstance(path, PropertyPath):
                path = FlattenedPath(path)
            entries.append(path)
        return cls(tuple(entries))

    def leaf_paths(self) -> list[PropertyPath]:
        leaves: list[PropertyPath] = []
        for entry in self.paths:
            leaves.extend(entry.expand())
        return leaves


@dataclass(frozen=True)
class PagedResponse:
    """Names the paging fields of a method.

    Attributes:
        page_size: The page size field of the input message.
        response_page_token: The next page token field of the output message.
        response_list: The repeated result field of the output message.
    """

    page_size: str
    response_page_token: str
    response_list: str


@dataclass(frozen=True)
class SampleMethod:
    """Sample values for the documentation of a method, as source text keyed by dotted path."""

    parameters: Mapping[str, str] = field(default_factory=dict)

    def value_for(self, path: PropertyPath | str) -> str | None:
        return self.parameters.get(str(path))


@dataclass(frozen=True)
class MethodConfig:
    """Configuration of a single method.

    Attributes:
        flattening: One flattening per additional generated signature.
        paging: The paging fields, if the method is paged.
        long_running: Whether the method returns an operation handle.
        client_streaming: Overrides the client streaming flag of the schema, if set.
        server_streaming: Overrides the server streaming flag of the schema, if set.
        samples: Documentation samples.
    """

    flattening: tuple[FlatteningConfig, ...] = ()
    paging: PagedResponse | None = None
    long_running: bool = False
    client_streaming: bool | None = None
    server_streaming: bool | None = None
    samples: tuple[SampleMethod, ...] = ()


@dataclass(frozen=True)
class ServiceConfig:
    """Configuration of a service, keyed by method name."""

    methods: Mapping[str, MethodConfig] = field(default_factory=dict)

    def method(self, name: str) -> MethodConfig:
        return self.methods.get(name) or MethodConfig()


@dataclass(frozen=True)
class GeneratorConfig:
    """Configuration of all services, keyed by service name."""

    services: Mapping[str, ServiceConfig] = field(default_factory=dict)

    def service(self, name: str) -> ServiceConfig:
        return self.services.get(name) or ServiceConfig()


def _to_builtin(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _to_builtin(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_to_builtin(v) for v in value]
    return value


def _check_keys(data: Any, allowed: set[str], where: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{where}: expected a mapping, got {type(data).__name__}.")
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigurationError(f"{where}: unknown key(s) {', '.join(unknown)}.")
    return data


def _parse_path(value: Any, where: str) -> PropertyPath:
    if not isinstance(value, str):
        raise ConfigurationError(f"{where}: expected a dotted path, got {value!r}.")
    try:
        return PropertyPath.parse(value)
    except ValueError as e:
        raise ConfigurationError(f"{where}: {e}") from e


def _parse_flattened_path(value: Any, where: str) -> FlattenedPath:
    if isinstance(value, str):
        return FlattenedPath(_parse_path(value, where))

    data = _check_keys(value, _FLATTENED_PATH_KEYS, where)
    if "path" not in data:
        raise ConfigurationError(f"{where}: nested flattening needs a 'path'.")
    path = _parse_path(data["path"], where)
    nested = data.get("nested") or []
    if not isinstance(nested, list):
        raise ConfigurationError(f"{where}: 'nested' must be a list.")
    return FlattenedPath(path, tuple(_parse_flattened_path(n, f"{where}.{path}") for n in nested))


def _parse_flattening(value: Any, where: str) -> tuple[FlatteningConfig, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigurationError(f"{where}: 'flattening' must be a list of path lists.")

    signatures = []
    for index, paths in enumerate(value):
        signature_where = f"{where}.flattening[{index}]"
        if not isinstance(paths, list):
            raise ConfigurationError(f"{signature_where}: expected a list of paths.")
        signatures.append(FlatteningConfig(tuple(_parse_flattened_path(p, signature_where) for p in paths)))
    return tuple(signatures)


def _parse_paging(value: Any, where: str) -> PagedResponse | None:
    if value is None:
        return None
    data = _check_keys(value, _PAGING_KEYS, f"{where}.paging")
    missing = sorted(_PAGING_KEYS - set(data))
    if missing:
        raise ConfigurationError(f"{where}.paging: missing key(s) {', '.join(missing)}.")
    return PagedResponse(
        page_size=str(data["page_size"]),
        response_page_token=str(data["response_page_token"]),
        response_list=str(data["response_list"]),
    )


def _parse_samples(value: Any, where: str) -> tuple[SampleMethod, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigurationError(f"{where}: 'samples' must be a list.")

    samples = []
    for index, sample in enumerate(value):
        sample_where = f"{where}.samples[{index}]"
        data = _check_keys(sample, {"parameters"}, sample_where)
        parameters = data.get("parameters") or {}
        if not isinstance(parameters, dict):
            raise ConfigurationError(f"{sample_where}: 'parameters' must be a mapping.")
        samples.append(SampleMethod({str(_parse_path(str(k), sample_where)): str(v) for k, v in parameters.items()}))
    return tuple(samples)


def _parse_flag(data: dict[str, Any], key: str, where: str) -> bool | None:
    value = data.get(key)
    if value is not None and not isinstance(value, bool):
        raise ConfigurationError(f"{where}: '{key}' must be a boolean.")
    return value


def parse_method_config(data: Any, where: str = "method") -> MethodConfig:
    """Parse the configuration of a single method from builtin data."""
    data = _check_keys(data, _METHOD_KEYS, where)
    return MethodConfig(
        flattening=_parse_flattening(data.get("flattening"), where),
        paging=_parse_paging(data.get("paging"), where),
        long_running=bool(_parse_flag(data, "long_running", where)),
        client_streaming=_parse_flag(data, "client_streaming", where),
        server_streaming=_parse_flag(data, "server_streaming", where),
        samples=_parse_samples(data.get("samples"), where),
    )


def parse_config(data: Any) -> GeneratorConfig:
    """Parse a generator configuration from builtin data.

    Args:
        data (Any): The loaded YAML document.

    Returns:
        GeneratorConfig: The parsed configuration.

    Raises:
        ConfigurationError: If the document contains unknown keys or malformed values.
    """
    root = _check_keys(data, {"services"}, "config")
    services_data = root.get("services") or {}
    if not isinstance(services_data, dict):
        raise ConfigurationError("config: 'services' must be a mapping.")

    services: dict[str, ServiceConfig] = {}
    for service_name, service_data in services_data.items():
        service = _check_keys(service_data, _SERVICE_KEYS, service_name)
        methods_data = service.get("methods") or {}
        if not isinstance(methods_data, dict):
            raise ConfigurationError(f"{service_name}: 'methods' must be a mapping.")
        services[service_name] = ServiceConfig(
            {name: parse_method_config(m, f"{service_name}.{name}") for name, m in methods_data.items()}
        )
    return GeneratorConfig(services)


def load_config(path: str | pathlib.Path) -> GeneratorConfig:
    """Load a generator configuration from a YAML file.

    Args:
        path (str | pathlib.Path): The YAML file.

    Returns:
        GeneratorConfig: The parsed configuration.

    Raises:
        ConfigurationError: If the file is not valid YAML or not a valid configuration.
    """
    yaml = YAML(typ="safe")
    path = pathlib.Path(path)
    try:
        with path.open("r", encoding="utf-8") as file:
            data = yaml.load(file)
    except YAMLError as e:
        raise ConfigurationError(f"{path}: {e}") from e

    config = parse_config(_to_builtin(data))
    logger.info(f"Loaded configuration for {len(config.services)} service(s) from {path}.")
    return config
